import logging
from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response
from opentelemetry import trace

from port_router.app_proxy.errors import ProxyError
from port_router.app_proxy.request_transform import (
    build_target_url,
    build_upstream_request,
)
from port_router.app_proxy.rewrite import build_response
from port_router.app_proxy.routing import Route, resolve_fallback, resolve_prefixed
from port_router.app_proxy.upstream import send_upstream
from port_router.utils.exception_logging import log_exception_with_details
from port_router.utils.traced_requests import traced_request
from port_router.vars import PROXY_SEGMENT, PROXY_TIMEOUT

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def get_raw_path(request: Request) -> str:
    """The request path as sent by the client, percent-encoding intact."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.decode("latin-1").split("?", 1)[0]
    return quote(request.url.path)


def error_response(error: ProxyError) -> Response:
    return PlainTextResponse(error.message, status_code=error.status_code)


async def forward_to_target(request: Request, route: Route) -> Response:
    """
    Forward a routed request to its backend and transform the answer.

    Request-scoped failures (bad outbound request, connection failure,
    timeout, unreadable body) come back as plain-text error responses.
    """
    label = "[Fallback]" if route.fallback else "[Proxy]"
    client = request.app.state.http_client
    target_url = build_target_url(route.target, route.path, request.url.query)

    with traced_request(
        tracer,
        operation="proxy_request",
        target=route.target,
        start_message=f"{label} {request.method} {get_raw_path(request)} -> {target_url}",
        extra_attrs={
            "proxy.target_url": target_url,
            "proxy.method": request.method,
            "proxy.fallback": route.fallback,
        },
    ) as span:
        try:
            upstream_request = build_upstream_request(client, request, route)
            upstream = await send_upstream(
                client, upstream_request, route.target, PROXY_TIMEOUT
            )
            span.set_attribute("proxy.status_code", upstream.status_code)
            logger.info(
                f"{label} {route.target.name} answered {upstream.status_code} "
                f"({upstream.headers.get('content-type') or 'no content-type'})"
            )
            return await build_response(
                upstream, route, request.method, request.url.query, PROXY_SEGMENT
            )
        except ProxyError as e:
            span.set_attribute("proxy.error", type(e).__name__)
            log_exception_with_details(logger, label, e, level=logging.WARNING)
            return error_response(e)


@router.api_route(f"/{PROXY_SEGMENT}/{{target_name}}", methods=PROXY_METHODS)
@router.api_route(f"/{PROXY_SEGMENT}/{{target_name}}/{{path:path}}", methods=PROXY_METHODS)
async def proxy_handler(request: Request):
    """Proxy ``/<segment>/<name>/...`` to the named target."""
    try:
        route = resolve_prefixed(
            request.app.state.config, get_raw_path(request), PROXY_SEGMENT
        )
    except ProxyError as e:
        logger.info(f"[Proxy] {request.method} {get_raw_path(request)}: {e.message}")
        return error_response(e)
    return await forward_to_target(request, route)


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def fallback_handler(request: Request):
    """Route requests without the reserved prefix using Referer/Origin."""
    try:
        route = resolve_fallback(
            request.app.state.config,
            get_raw_path(request),
            request.headers,
            PROXY_SEGMENT,
        )
    except ProxyError as e:
        logger.info(f"[Fallback] {request.method} {get_raw_path(request)}: {e.message}")
        return error_response(e)
    return await forward_to_target(request, route)
