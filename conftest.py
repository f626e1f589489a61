# Make `import port_router.*` resolve to this checkout when running pytest
# from the repository root without an editable install.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
from fastapi import Request  # noqa: E402
from starlette.datastructures import Headers  # noqa: E402

from port_router.models import RouterConfig, Target  # noqa: E402


@pytest.fixture
def router_config():
    """Two targets behind a router on port 8080."""
    return RouterConfig(
        router_port=8080,
        targets=[
            Target(name="alpha", port=4000, description="Alpha dev server"),
            Target(name="beta", port=4001, description="Beta dev server"),
        ],
    )


@pytest.fixture
def alpha(router_config):
    return router_config.targets[0]


@pytest.fixture
def mock_request():
    """Factory for mock FastAPI Request objects."""

    def _create_request(
        method="GET",
        raw_path="/proxy/alpha/",
        query="",
        headers=None,
        scheme="http",
    ):
        if headers is None:
            headers = {"host": "localhost:8080"}
        request = Mock(spec=Request)
        request.method = method
        request.scope = {"raw_path": raw_path.encode("latin-1")}
        request.url.path = raw_path
        request.url.query = query
        request.url.scheme = scheme
        request.headers = Headers(headers=headers)
        return request

    return _create_request
