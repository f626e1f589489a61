"""
Helpers for turning exceptions into log lines and client-facing diagnostics
without ever raising themselves.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to string, falling back to repr and then the type name
    when the object's own conversions fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception for a diagnostic body.

    Exception groups are flattened into ``main (Sub-exceptions: A: x; B: y)``.
    Exceptions with an empty message are described by their type name.
    """
    if exception is None:
        return "None"

    main_str = _safe_str(exception) or type(exception).__name__
    subs = _sub_exceptions(exception)
    if not subs:
        return main_str

    parts = []
    for sub_exc in subs:
        parts.append(f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}")
    return f"{main_str} (Sub-exceptions: {'; '.join(parts)})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, one line per sub-exception for exception groups.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[Fallback]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{prefix} Exception with {len(subs)} sub-exceptions: {_safe_str(exception)}",
            )
            for i, sub_exc in enumerate(subs):
                logger.log(
                    level,
                    f"{prefix} Sub-exception {i+1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                    exc_info=sub_exc,
                )
        else:
            logger.log(
                level,
                f"{prefix} Exception: {_safe_str(exception)}",
                exc_info=exception if exception is not None else False,
            )
    except Exception:
        # Logging must never take a request down with it
        try:
            logger.log(logging.ERROR, f"{prefix} Exception (logging failed)")
        except Exception:
            pass
