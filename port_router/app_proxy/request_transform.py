import re
from typing import Iterable, Optional, Tuple, Union
from urllib.parse import urlsplit

import httpx
from fastapi import Request

from port_router.app_proxy.errors import BadProxyRequestError
from port_router.app_proxy.routing import Route
from port_router.models import Target

# The router talks to every backend over loopback
FORWARDED_FOR = "127.0.0.1"

_INVALID_HEADER_CHARS = re.compile(r"[\r\n\x00]")

RawHeaders = Iterable[Tuple[Union[str, bytes], Union[str, bytes]]]


def build_target_url(target: Target, path: str, query: str = "") -> str:
    """Construct the backend URL; the query string is appended unchanged."""
    if not path.startswith("/"):
        path = "/" + path
    url = f"http://{target.authority}{path}"
    if query:
        url = f"{url}?{query}"
    return url


def rewrite_referer(referer: str, port: int) -> Optional[str]:
    """
    Point a Referer at the backend authority, keeping its path and query.
    Returns None when the value does not parse as a URI.
    """
    try:
        parts = urlsplit(referer)
    except ValueError:
        return None
    if not parts.netloc and not parts.path.startswith("/"):
        return None
    rewritten = f"http://localhost:{port}{parts.path or '/'}"
    if parts.query:
        rewritten = f"{rewritten}?{parts.query}"
    return rewritten


def _checked(name: str, value: str) -> str:
    if _INVALID_HEADER_CHARS.search(value):
        raise BadProxyRequestError(f"Invalid value for header {name}")
    return value


def prepare_headers(raw_headers: RawHeaders, target: Target, scheme: str) -> httpx.Headers:
    """
    Prepare headers for forwarding to the backend.

    Every inbound header is kept except the ones rewritten here:
    Accept-Encoding is dropped so bodies arrive uncompressed, Host, Origin
    and Referer are re-pointed at the backend, and X-Forwarded-* describe
    the original request. Applying this twice yields the same headers.
    """
    headers = httpx.Headers(list(raw_headers))

    original_host = headers.get("host") or "localhost"
    # Already forwarded once: keep the recorded original host
    if original_host == target.authority and "x-forwarded-host" in headers:
        original_host = headers["x-forwarded-host"]

    if "accept-encoding" in headers:
        del headers["accept-encoding"]

    headers["host"] = target.authority
    headers["x-forwarded-for"] = FORWARDED_FOR
    headers["x-forwarded-proto"] = _checked("x-forwarded-proto", scheme)
    headers["x-forwarded-host"] = _checked("x-forwarded-host", original_host)

    if "origin" in headers:
        headers["origin"] = f"http://{target.authority}"

    referer = headers.get("referer")
    if referer is not None:
        rewritten = rewrite_referer(referer, target.port)
        if rewritten is not None:
            headers["referer"] = _checked("referer", rewritten)

    return headers


def _has_body(request: Request) -> bool:
    return "content-length" in request.headers or "transfer-encoding" in request.headers


def build_upstream_request(
    client: httpx.AsyncClient, request: Request, route: Route
) -> httpx.Request:
    """Build the outbound request for a resolved route, streaming the body."""
    target_url = build_target_url(route.target, route.path, request.url.query)
    headers = prepare_headers(request.headers.raw, route.target, request.url.scheme)
    try:
        return client.build_request(
            method=request.method,
            url=target_url,
            headers=headers,
            content=request.stream() if _has_body(request) else None,
        )
    except httpx.InvalidURL as e:
        raise BadProxyRequestError(
            f"Invalid backend URL for {route.target.name}: {e}", route.target
        ) from e
