import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "port-router")
CONFIG_FILE = os.environ.get("CONFIG_FILE", "config.toml")

# Reserved path segment separating proxied traffic from the selector page
PROXY_SEGMENT = os.environ.get("PROXY_SEGMENT", "proxy").strip("/") or "proxy"
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "10"))

BIND_HOST = os.environ.get("BIND_HOST", "127.0.0.1")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

METRICS_PATH = os.getenv("METRICS_PATH", "/_port_router/metrics")
