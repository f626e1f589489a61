"""
Tests for target resolution: explicit prefix routing and the Referer/Origin
fallback used for assets requested without the prefix.
"""

import pytest

from port_router.app_proxy.errors import TargetNotFoundError
from port_router.app_proxy.routing import (
    decode_target_name,
    resolve_fallback,
    resolve_prefixed,
    split_proxy_path,
)
from port_router.models import RouterConfig, Target


class TestSplitProxyPath:
    def test_name_only(self):
        assert split_proxy_path("/proxy/alpha", "proxy") == ("alpha", "/")

    def test_name_with_trailing_slash(self):
        assert split_proxy_path("/proxy/alpha/", "proxy") == ("alpha", "/")

    def test_nested_rest(self):
        assert split_proxy_path("/proxy/alpha/api/v1/users", "proxy") == (
            "alpha",
            "/api/v1/users",
        )

    def test_rest_keeps_encoding(self):
        assert split_proxy_path("/proxy/alpha/a%20b/c%2Fd", "proxy") == (
            "alpha",
            "/a%20b/c%2Fd",
        )

    def test_without_prefix(self):
        assert split_proxy_path("/assets/app.js", "proxy") is None

    def test_empty_name(self):
        assert split_proxy_path("/proxy/", "proxy") is None
        assert split_proxy_path("/proxy//x", "proxy") is None

    def test_prefix_must_be_a_whole_segment(self):
        assert split_proxy_path("/proxyish/alpha", "proxy") is None

    def test_custom_segment(self):
        assert split_proxy_path("/apps/alpha/x", "apps") == ("alpha", "/x")


class TestDecodeTargetName:
    def test_plain(self):
        assert decode_target_name("alpha") == "alpha"

    def test_percent_encoded(self):
        assert decode_target_name("my%20app") == "my app"

    def test_utf8(self):
        assert decode_target_name("%E3%83%95%E3%83%AD%E3%83%B3%E3%83%88") == "フロント"

    def test_malformed_escape(self):
        assert decode_target_name("al%zzpha") is None
        assert decode_target_name("alpha%") is None

    def test_invalid_utf8(self):
        assert decode_target_name("%ff%fe") is None


class TestResolvePrefixed:
    def test_known_target(self, router_config):
        route = resolve_prefixed(router_config, "/proxy/beta/index.html", "proxy")
        assert route.target.name == "beta"
        assert route.path == "/index.html"
        assert route.fallback is False

    def test_root_is_normalized(self, router_config):
        route = resolve_prefixed(router_config, "/proxy/alpha", "proxy")
        assert route.path == "/"

    def test_unknown_target(self, router_config):
        with pytest.raises(TargetNotFoundError) as exc_info:
            resolve_prefixed(router_config, "/proxy/gamma/", "proxy")
        assert exc_info.value.status_code == 404

    def test_malformed_name_is_not_found(self, router_config):
        with pytest.raises(TargetNotFoundError):
            resolve_prefixed(router_config, "/proxy/al%zzpha/", "proxy")

    def test_encoded_name(self):
        config = RouterConfig(
            router_port=8080, targets=[Target(name="my app", port=3000)]
        )
        route = resolve_prefixed(config, "/proxy/my%20app/static/x.css", "proxy")
        assert route.target.port == 3000
        assert route.path == "/static/x.css"

    def test_exact_match_only(self, router_config):
        with pytest.raises(TargetNotFoundError):
            resolve_prefixed(router_config, "/proxy/Alpha/", "proxy")


class TestResolveFallback:
    def test_referer_names_target(self, router_config):
        headers = {"referer": "http://localhost:8080/proxy/beta/page"}
        route = resolve_fallback(router_config, "/assets/app.js", headers, "proxy")
        assert route.target.name == "beta"
        assert route.path == "/assets/app.js"
        assert route.fallback is True

    def test_referer_with_name_at_end(self, router_config):
        headers = {"referer": "http://localhost:8080/proxy/alpha"}
        route = resolve_fallback(router_config, "/logo.png", headers, "proxy")
        assert route.target.name == "alpha"

    def test_referer_with_query_after_name(self, router_config):
        headers = {"referer": "http://localhost:8080/proxy/beta?tab=1"}
        route = resolve_fallback(router_config, "/logo.png", headers, "proxy")
        assert route.target.name == "beta"

    def test_referer_with_unknown_target(self, router_config):
        headers = {"referer": "http://localhost:8080/proxy/gamma/page"}
        with pytest.raises(TargetNotFoundError):
            resolve_fallback(router_config, "/logo.png", headers, "proxy")

    def test_referer_with_malformed_name(self, router_config):
        headers = {"referer": "http://localhost:8080/proxy/%zz/page"}
        with pytest.raises(TargetNotFoundError):
            resolve_fallback(router_config, "/logo.png", headers, "proxy")

    def test_origin_on_router_port_defaults_to_first_target(self, router_config):
        headers = {"origin": "http://localhost:8080"}
        route = resolve_fallback(router_config, "/api/data", headers, "proxy")
        assert route.target.name == "alpha"

    def test_referer_on_router_port_defaults_to_first_target(self, router_config):
        headers = {"referer": "http://localhost:8080/"}
        route = resolve_fallback(router_config, "/favicon.ico", headers, "proxy")
        assert route.target.name == "alpha"

    def test_other_port_is_not_found(self, router_config):
        headers = {"origin": "http://localhost:9999", "referer": "http://example.com/"}
        with pytest.raises(TargetNotFoundError):
            resolve_fallback(router_config, "/api/data", headers, "proxy")

    def test_port_is_compared_not_substring(self, router_config):
        headers = {"origin": "http://localhost:80801"}
        with pytest.raises(TargetNotFoundError):
            resolve_fallback(router_config, "/api/data", headers, "proxy")

    def test_no_headers(self, router_config):
        with pytest.raises(TargetNotFoundError):
            resolve_fallback(router_config, "/api/data", {}, "proxy")

    def test_empty_registry(self):
        config = RouterConfig(router_port=8080, targets=[])
        with pytest.raises(TargetNotFoundError):
            resolve_fallback(config, "/x", {"origin": "http://localhost:8080"}, "proxy")
