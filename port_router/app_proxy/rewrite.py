"""
Response transformation: header filtering and in-body rewriting of
absolute-root paths so that pages served under ``/<segment>/<name>`` keep
loading their resources through the router.

Rewriting is a literal string substitution, not a parse. Every pattern below
ends in ``/``; the target prefix is inserted right before that slash, and a
repair pass then collapses ``<pattern><prefix>/<segment>/`` back to
``<pattern>/<segment>/`` so paths that already pointed into the router are
not prefixed twice. Running a rewrite over its own output changes nothing.
"""

import logging
import re
from enum import Enum
from typing import Iterable, List, Tuple

import httpx
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from port_router.app_proxy.errors import ResponseBodyError
from port_router.app_proxy.routing import Route
from port_router.utils.exception_logging import format_exception_message

logger = logging.getLogger("uvicorn.error")

HTML_PATTERNS = (
    'src="/',
    'href="/',
    "src='/",
    "href='/",
    "fetch('/",
    'fetch("/',
    ".open('GET', '/",
    ".open('POST', '/",
    '.open("GET", "/',
    '.open("POST", "/',
)

CSS_PATTERNS = (
    "url('/",
    'url("/',
    "url(/",
    "@import '/",
    '@import "/',
)

JS_PATTERNS = (
    "from '/",
    'from "/',
    "import('/",
    'import("/',
)

SCRIPT_SUFFIXES = (".js", ".mjs", ".ts", ".tsx")
STYLE_SUFFIXES = (".css",)

# Declared types too vague to override a .css/.js style suffix
GENERIC_CONTENT_TYPES = ("", "application/octet-stream", "text/plain")

# Vite's pre-bundled dependencies are already resolved; rewriting corrupts them
PREBUNDLED_DEPENDENCY_MARKER = "/node_modules/.vite/deps/"

CSP_META_OPENERS = (
    '<meta http-equiv="Content-Security-Policy"',
    "<meta http-equiv='Content-Security-Policy'",
)

# Never copied from the backend response
DROPPED_RESPONSE_HEADERS = {
    "content-security-policy",
    "content-security-policy-report-only",
    "transfer-encoding",
    "connection",
    "keep-alive",
}

# Additionally dropped once the body has been buffered and rewritten
REWRITTEN_BODY_HEADERS = {"content-length", "content-encoding"}

CORP_HEADER = "cross-origin-resource-policy"

_HTML_OPEN_TAG = re.compile(r"<html[^>]*>", re.IGNORECASE)
_HEAD_TAG = re.compile(r"<head>", re.IGNORECASE)


class ContentKind(str, Enum):
    HTML = "html"
    CSS = "css"
    JAVASCRIPT = "javascript"
    OTHER = "other"


def _has_suffix(path: str, query: str, suffixes: Tuple[str, ...]) -> bool:
    return path.endswith(suffixes) or (bool(query) and query.endswith(suffixes))


def classify_content(content_type: str, path: str, query: str = "") -> ContentKind:
    """
    Decide how a body is treated.

    The declared MIME type wins. The path or query suffix only decides when
    no type, or a generic one, was declared.
    """
    content_type = (content_type or "").lower()
    if "text/html" in content_type:
        return ContentKind.HTML
    if "css" in content_type:
        return ContentKind.CSS
    if "javascript" in content_type or "typescript" in content_type:
        return ContentKind.JAVASCRIPT
    if content_type.split(";", 1)[0].strip() not in GENERIC_CONTENT_TYPES:
        return ContentKind.OTHER
    if _has_suffix(path, query, STYLE_SUFFIXES):
        return ContentKind.CSS
    if _has_suffix(path, query, SCRIPT_SUFFIXES):
        return ContentKind.JAVASCRIPT
    return ContentKind.OTHER


def is_prebundled_dependency(path: str) -> bool:
    return PREBUNDLED_DEPENDENCY_MARKER in path


def prefix_patterns(text: str, patterns: Iterable[str], prefix: str, segment: str) -> str:
    """Insert ``prefix`` after the leading slash of each pattern, then repair."""
    patterns = tuple(patterns)
    for pattern in patterns:
        head = pattern[:-1]
        text = text.replace(pattern, f"{head}{prefix}/")
    for pattern in patterns:
        head = pattern[:-1]
        text = text.replace(f"{head}{prefix}/{segment}/", f"{head}/{segment}/")
    return text


def insert_base_tag(html: str, base_href: str) -> str:
    """
    Insert ``<base href=...>`` right after the first ``<head>``.

    Without a head element one is synthesized after the opening ``<html>``
    tag. Documents that already carry the same base tag are left alone.
    """
    base_tag = f'<base href="{base_href}">'
    if base_tag in html:
        return html

    pos = html.find("<head>")
    if pos != -1:
        insert_pos = pos + len("<head>")
    else:
        match = _HEAD_TAG.search(html)
        if match:
            insert_pos = match.end()
        else:
            match = _HTML_OPEN_TAG.search(html)
            if not match:
                return html
            return f"{html[:match.end()]}<head>{base_tag}</head>{html[match.end():]}"

    return f"{html[:insert_pos]}{base_tag}{html[insert_pos:]}"


def strip_csp_meta(html: str) -> str:
    """Remove every ``<meta http-equiv="Content-Security-Policy" ...>`` element."""
    for opener in CSP_META_OPENERS:
        while True:
            start = html.find(opener)
            if start == -1:
                break
            end = html.find(">", start)
            if end == -1:
                break
            html = html[:start] + html[end + 1:]
    return html


def rewrite_html(text: str, prefix: str, segment: str) -> str:
    text = insert_base_tag(text, f"{prefix}/")
    text = strip_csp_meta(text)
    return prefix_patterns(text, HTML_PATTERNS, prefix, segment)


def rewrite_css(text: str, prefix: str, segment: str) -> str:
    return prefix_patterns(text, CSS_PATTERNS, prefix, segment)


def rewrite_js(text: str, prefix: str, segment: str) -> str:
    return prefix_patterns(text, JS_PATTERNS, prefix, segment)


_REWRITERS = {
    ContentKind.HTML: rewrite_html,
    ContentKind.CSS: rewrite_css,
    ContentKind.JAVASCRIPT: rewrite_js,
}


def rewrite_body(
    kind: ContentKind, body: bytes, prefix: str, segment: str, path: str = "/"
) -> bytes:
    """
    Rewrite a buffered body of the given kind.

    The body is decoded as UTF-8 with replacement characters for invalid
    sequences, so malformed input may change length; callers recompute
    Content-Length.
    """
    rewriter = _REWRITERS.get(kind)
    if rewriter is None:
        return body
    if kind is ContentKind.JAVASCRIPT and is_prebundled_dependency(path):
        return body
    text = body.decode("utf-8", errors="replace")
    return rewriter(text, prefix, segment).encode("utf-8")


def filter_response_headers(
    headers: httpx.Headers, rewritten: bool
) -> List[Tuple[bytes, bytes]]:
    """
    Copy raw backend headers for the client, repeated headers included.

    CSP headers are dropped and Cross-Origin-Resource-Policy defaults to
    ``cross-origin`` so proxied pages can load their proxied sub-resources
    under cross-origin isolation.
    """
    dropped = DROPPED_RESPONSE_HEADERS
    if rewritten:
        dropped = dropped | REWRITTEN_BODY_HEADERS

    result = []
    for name, value in headers.raw:
        name = name.lower()
        if name.decode("latin-1") not in dropped:
            result.append((name, value))
    if CORP_HEADER not in headers:
        result.append((CORP_HEADER.encode("latin-1"), b"cross-origin"))
    return result


async def build_response(
    upstream: httpx.Response,
    route: Route,
    method: str,
    query: str,
    segment: str,
) -> Response:
    """
    Turn a streamed backend response into the response for the client.

    HTML, CSS and JavaScript bodies are buffered and rewritten; everything
    else, and any HEAD response, is streamed through byte for byte.
    """
    content_type = upstream.headers.get("content-type", "")
    kind = classify_content(content_type, route.path, query)

    if method == "HEAD" or kind is ContentKind.OTHER:
        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        response.raw_headers = filter_response_headers(upstream.headers, rewritten=False)
        return response

    target = route.target
    try:
        body = await upstream.aread()
    except httpx.HTTPError as e:
        logger.error(f"[Rewrite] Failed to read {kind.value} body from {target.name}: {e}")
        raise ResponseBodyError(
            f"Failed to read {kind.value} response from backend server "
            f"{target.name}:{target.port}\nDetails: {format_exception_message(e)}",
            target,
        ) from e
    finally:
        await upstream.aclose()

    prefix = target.proxy_prefix(segment)
    rewritten = rewrite_body(kind, body, prefix, segment, route.path)
    logger.debug(
        f"[Rewrite] {kind.value} body for {target.name}: {len(body)} -> {len(rewritten)} bytes"
    )

    response = Response(content=rewritten, status_code=upstream.status_code)
    response.raw_headers.extend(filter_response_headers(upstream.headers, rewritten=True))
    return response
