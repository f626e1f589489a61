"""
Target resolution for inbound requests.

A request is routed either by its explicit ``/<segment>/<name>`` prefix or,
for requests arriving without that prefix (typically absolute-path assets
requested by a page served through the router), by inspecting the
``Referer`` and ``Origin`` headers.
"""

import re
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
from urllib.parse import unquote_to_bytes, urlsplit

from port_router.app_proxy.errors import TargetNotFoundError
from port_router.models import RouterConfig, Target

_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_NAME_TERMINATORS = re.compile(r"[/?#]")


@dataclass(frozen=True)
class Route:
    target: Target
    # Backend path, still percent-encoded, always starting with "/"
    path: str
    fallback: bool = False


def decode_target_name(raw: str) -> Optional[str]:
    """Percent-decode a name segment. Returns None for malformed input."""
    if _MALFORMED_ESCAPE.search(raw):
        return None
    try:
        return unquote_to_bytes(raw).decode("utf-8")
    except UnicodeDecodeError:
        return None


def split_proxy_path(raw_path: str, segment: str) -> Optional[Tuple[str, str]]:
    """
    Split ``/<segment>/<name>[/<rest>]`` into the raw name and the backend path.

    The backend path keeps its leading slash; an empty remainder becomes "/".
    Returns None when the path does not carry the reserved prefix.
    """
    prefix = f"/{segment}/"
    if not raw_path.startswith(prefix):
        return None
    raw_name, sep, rest = raw_path[len(prefix):].partition("/")
    if not raw_name:
        return None
    return raw_name, f"/{rest}" if sep else "/"


def resolve_prefixed(config: RouterConfig, raw_path: str, segment: str) -> Route:
    split = split_proxy_path(raw_path, segment)
    if split is None:
        raise TargetNotFoundError(f"Not found: {raw_path}")
    raw_name, path = split
    name = decode_target_name(raw_name)
    target = config.find_target(name) if name is not None else None
    if target is None:
        raise TargetNotFoundError(f"Unknown target: {raw_name}")
    return Route(target=target, path=path)


def _name_from_referer(referer: str, segment: str) -> Tuple[bool, Optional[str]]:
    marker = f"/{segment}/"
    pos = referer.find(marker)
    if pos == -1:
        return False, None
    remaining = referer[pos + len(marker):]
    match = _NAME_TERMINATORS.search(remaining)
    raw_name = remaining[: match.start()] if match else remaining
    return True, decode_target_name(raw_name)


def _port_matches(value: str, port: int) -> bool:
    if not value:
        return False
    try:
        return urlsplit(value).port == port
    except ValueError:
        return False


def resolve_fallback(
    config: RouterConfig, raw_path: str, headers: Mapping[str, str], segment: str
) -> Route:
    """
    Resolve a request that lacks the reserved prefix.

    A ``Referer`` pointing into ``/<segment>/<name>`` wins. Otherwise, when
    ``Origin`` or ``Referer`` names the router's own port, the first
    registered target is used. That default is a best-effort guess for pages
    served from the router root, not a routing guarantee.
    """
    referer = headers.get("referer") or ""
    origin = headers.get("origin") or ""

    has_marker, name = _name_from_referer(referer, segment)
    if has_marker:
        target = config.find_target(name) if name is not None else None
    elif _port_matches(origin, config.router_port) or _port_matches(
        referer, config.router_port
    ):
        target = config.default_target()
    else:
        target = None

    if target is None:
        raise TargetNotFoundError(f"Not found: {raw_path}")
    return Route(target=target, path=raw_path or "/", fallback=True)
