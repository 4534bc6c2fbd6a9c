"""Tests for pagewatch.engine.attribution: matching extension origins to add-ons."""

from __future__ import annotations

from pagewatch.engine import attribution
from pagewatch.models.inventory import ExtensionRecord


def _extension(ext_id: str, *patterns: str, name: str = "") -> ExtensionRecord:
    return ExtensionRecord(id=ext_id, name=name or ext_id, version="1.0", install_type="normal", host_permissions=list(patterns))


class TestMatchesInternalOrigin:
    """Tests for matches_internal_origin()."""

    def test_wildcard_pattern(self) -> None:
        assert attribution.matches_internal_origin(["moz-extension://abc/*"], "moz-extension://abc/")

    def test_pattern_without_path(self) -> None:
        assert attribution.matches_internal_origin(["chrome-extension://abc"], "chrome-extension://abc/")

    def test_web_patterns_ignored(self) -> None:
        assert not attribution.matches_internal_origin(["<all_urls>", "https://*/*"], "chrome-extension://abc/")

    def test_different_host(self) -> None:
        assert not attribution.matches_internal_origin(["chrome-extension://abc/*"], "chrome-extension://abd/")

    def test_empty_origin(self) -> None:
        assert not attribution.matches_internal_origin(["chrome-extension://abc/*"], "")


class TestResolveSourceExtensions:
    """Tests for resolve_source_extensions()."""

    def test_matching_extension(self) -> None:
        extensions = [_extension("one", "chrome-extension://abc/*", name="Toolbar"), _extension("two", "https://*/*")]
        result = attribution.resolve_source_extensions(["chrome-extension://ABC/inject.js"], extensions)
        assert [(e.id, e.name, e.version, e.install_type, e.matched_origin) for e in result] == [
            ("one", "Toolbar", "1.0", "normal", "chrome-extension://abc/")
        ]

    def test_each_extension_once_with_first_origin(self) -> None:
        extensions = [_extension("one", "moz-extension://a/*", "moz-extension://b/*")]
        result = attribution.resolve_source_extensions(["moz-extension://b/x.js", "moz-extension://a/y.js"], extensions)
        assert len(result) == 1
        assert result[0].matched_origin == "moz-extension://b/"

    def test_several_extensions(self) -> None:
        extensions = [_extension("one", "moz-extension://a/*"), _extension("two", "moz-extension://b/*")]
        result = attribution.resolve_source_extensions(["moz-extension://a/1", "moz-extension://b/2"], extensions)
        assert [e.id for e in result] == ["one", "two"]

    def test_no_extension_urls(self) -> None:
        extensions = [_extension("one", "moz-extension://a/*")]
        assert attribution.resolve_source_extensions(["https://example.com/x.js", "garbage"], extensions) == []

    def test_no_extensions(self) -> None:
        assert attribution.resolve_source_extensions(["moz-extension://a/x"], []) == []
