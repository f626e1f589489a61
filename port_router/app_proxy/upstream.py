import asyncio
import logging
from typing import Optional

import httpx

from port_router.app_proxy.errors import UpstreamConnectionError, UpstreamTimeoutError
from port_router.models import Target
from port_router.utils.exception_logging import format_exception_message

logger = logging.getLogger("uvicorn.error")


def create_client(
    timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    Create the shared, pooled client used for every backend.

    Redirects are returned to the browser as-is. Proxy environment
    variables are ignored. Connect, write and pool waits are bounded by
    ``timeout``; body reads are not.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, read=None),
        follow_redirects=False,
        trust_env=False,
        transport=transport,
    )


def _format_seconds(timeout: float) -> str:
    return f"{timeout:g}"


async def send_upstream(
    client: httpx.AsyncClient,
    upstream_request: httpx.Request,
    target: Target,
    timeout: float,
) -> httpx.Response:
    """
    Send a request to the backend and wait at most ``timeout`` seconds for
    its response head. The body is left unread for the caller to stream.

    A single attempt is made; failures are not retried.

    Raises:
        UpstreamTimeoutError: no response within ``timeout``.
        UpstreamConnectionError: connection or protocol failure.
    """
    try:
        return await asyncio.wait_for(
            client.send(upstream_request, stream=True), timeout=timeout
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        logger.error(
            f"[Upstream] Timeout: {upstream_request.url} ({_format_seconds(timeout)}s)"
        )
        raise UpstreamTimeoutError(
            f"Timeout: backend server {target.name}:{target.port} "
            f"did not respond within {_format_seconds(timeout)} seconds",
            target,
        ) from e
    except httpx.HTTPError as e:
        details = format_exception_message(e) or type(e).__name__
        logger.error(f"[Upstream] Proxy error: {upstream_request.url} -> {details}")
        raise UpstreamConnectionError(
            f"Proxy error: cannot connect to backend server {target.name}:{target.port}\n"
            f"Details: {details}",
            target,
        ) from e
