"""Tests for pagewatch.utils.url: origin and extension URL helpers."""

from __future__ import annotations

import pytest

from pagewatch.utils import url

# ── is_extension_url ────────────────────────────────────────────


class TestIsExtensionUrl:
    """Tests for is_extension_url()."""

    @pytest.mark.parametrize(
        "value",
        [
            "chrome-extension://abc/script.js",
            "moz-extension://0f1e-22/content.css",
            "safari-web-extension://ABC/x.png",
            "  CHROME-EXTENSION://abc/",
        ],
    )
    def test_extension_schemes(self, value: str) -> None:
        assert url.is_extension_url(value)

    @pytest.mark.parametrize("value", ["https://example.com", "data:text/html,x", "", None, "/relative/path"])
    def test_other_values(self, value: str | None) -> None:
        assert not url.is_extension_url(value)


# ── extract_hostname ────────────────────────────────────────────


class TestExtractHostname:
    """Tests for extract_hostname()."""

    def test_simple_url(self) -> None:
        assert url.extract_hostname("https://www.example.com/path") == "www.example.com"

    def test_port_is_dropped(self) -> None:
        assert url.extract_hostname("http://example.com:8080/") == "example.com"

    def test_no_host(self) -> None:
        assert url.extract_hostname("not a url") == ""

    def test_malformed_ipv6(self) -> None:
        assert url.extract_hostname("http://[::1/") == ""


# ── origin_from_url ─────────────────────────────────────────────


class TestOriginFromUrl:
    """Tests for origin_from_url()."""

    def test_absolute_url(self) -> None:
        assert url.origin_from_url("https://cdn.example.com/a.js") == "https://cdn.example.com"

    def test_relative_url_resolves_against_base(self) -> None:
        assert url.origin_from_url("/static/app.js", "https://example.com/page") == "https://example.com"

    def test_protocol_relative(self) -> None:
        assert url.origin_from_url("//cdn.test/x.js", "https://example.com/") == "https://cdn.test"

    def test_default_port_dropped(self) -> None:
        assert url.origin_from_url("https://example.com:443/") == "https://example.com"

    def test_custom_port_kept(self) -> None:
        assert url.origin_from_url("http://example.com:8080/") == "http://example.com:8080"

    def test_host_lowercased(self) -> None:
        assert url.origin_from_url("https://EXAMPLE.com/") == "https://example.com"

    def test_extension_url(self) -> None:
        assert url.origin_from_url("chrome-extension://abc/x.js") == "chrome-extension://abc"

    @pytest.mark.parametrize("value", ["", None, "javascript:alert(1)", "data:text/plain,hi", "http://[::1/"])
    def test_no_origin(self, value: str | None) -> None:
        assert url.origin_from_url(value) == ""


# ── origin_kind ─────────────────────────────────────────────────


class TestOriginKind:
    """Tests for origin_kind()."""

    def test_empty_is_unknown(self) -> None:
        assert url.origin_kind("", "https://example.com") == "unknown"

    def test_extension(self) -> None:
        assert url.origin_kind("moz-extension://abc", "https://example.com") == "extension"

    def test_same_page(self) -> None:
        assert url.origin_kind("https://example.com", "https://example.com") == "page"

    def test_external(self) -> None:
        assert url.origin_kind("https://evil.test", "https://example.com") == "external"


# ── css_urls ────────────────────────────────────────────────────


class TestCssUrls:
    """Tests for css_urls()."""

    def test_quoted_and_unquoted(self) -> None:
        style = "background: url('a.png'); mask: url(\"b.svg\"); cursor: url(c.cur)"
        assert url.css_urls(style) == ["a.png", "b.svg", "c.cur"]

    def test_extension_reference(self) -> None:
        assert url.css_urls("background-image: URL( chrome-extension://abc/bg.png )") == [
            "chrome-extension://abc/bg.png"
        ]

    def test_empty(self) -> None:
        assert url.css_urls("") == []
        assert url.css_urls(None) == []
        assert url.css_urls("color: red") == []


# ── Internal origin normalisation ───────────────────────────────


class TestNormalizeInternalOrigin:
    """Tests for normalize_internal_origin()."""

    def test_reduces_to_origin(self) -> None:
        assert url.normalize_internal_origin("chrome-extension://ABC/js/x.js?q=1") == "chrome-extension://abc/"

    def test_web_url_rejected(self) -> None:
        assert url.normalize_internal_origin("https://example.com/x.js") is None

    def test_missing_host_rejected(self) -> None:
        assert url.normalize_internal_origin("moz-extension:///x.js") is None


class TestNormalizeOriginPattern:
    """Tests for normalize_origin_pattern()."""

    def test_strips_wildcard(self) -> None:
        assert url.normalize_origin_pattern("moz-extension://abc/*") == "moz-extension://abc/"

    def test_adds_trailing_slash(self) -> None:
        assert url.normalize_origin_pattern("chrome-extension://abc") == "chrome-extension://abc/"

    def test_lowercases(self) -> None:
        assert url.normalize_origin_pattern("Chrome-Extension://ABC/") == "chrome-extension://abc/"

    def test_empty(self) -> None:
        assert url.normalize_origin_pattern(None) == ""
