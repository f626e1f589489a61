from typing import Optional

from port_router.models import Target


class ProxyError(Exception):
    """Request-scoped failure that is answered with a plain-text diagnostic."""

    status_code = 500

    def __init__(self, message: str, target: Optional[Target] = None):
        super().__init__(message)
        self.message = message
        self.target = target


class TargetNotFoundError(ProxyError):
    status_code = 404


class BadProxyRequestError(ProxyError):
    status_code = 400


class UpstreamConnectionError(ProxyError):
    status_code = 502


class UpstreamTimeoutError(ProxyError):
    status_code = 504


class ResponseBodyError(ProxyError):
    status_code = 500
