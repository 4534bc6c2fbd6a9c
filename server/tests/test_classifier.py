"""Tests for pagewatch.collector.classifier: levels, reasons and monotonicity."""

from __future__ import annotations

import itertools

import pytest

from pagewatch.collector import classifier
from pagewatch.collector.window import EvidenceWindow

EVIDENCE_FIELDS = (
    "script_adds",
    "inline_scripts",
    "iframe_adds",
    "link_changes",
    "src_changes",
    "action_changes",
    "inline_handlers",
)


def _window(**evidence: int) -> EvidenceWindow:
    window = EvidenceWindow()
    for name, value in evidence.items():
        setattr(window.evidence, name, value)
    return window


class TestLevels:
    """Tests for level_rank() and max_level()."""

    def test_order(self) -> None:
        assert classifier.level_rank("low") < classifier.level_rank("medium") < classifier.level_rank("high")

    def test_unknown_ranks_low(self) -> None:
        assert classifier.level_rank("critical") == 0

    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [("low", "medium", "medium"), ("high", "medium", "high"), ("low", "low", "low")],
    )
    def test_max_level(self, a: str, b: str, expected: str) -> None:
        assert classifier.max_level(a, b) == expected


class TestClassify:
    """Tests for classify()."""

    def test_empty_window_is_low(self) -> None:
        result = classifier.classify(EvidenceWindow())
        assert result.level == "low"
        assert result.reasons == ()

    def test_extension_url_is_high(self) -> None:
        window = _window()
        window.record_extension_url("moz-extension://abc/x.js")
        result = classifier.classify(window)
        assert result.level == "high"
        assert result.reasons == (classifier.REASON_EXTENSION_URLS,)

    @pytest.mark.parametrize(
        ("field", "reason"),
        [
            ("script_adds", classifier.REASON_SCRIPTS),
            ("inline_scripts", classifier.REASON_SCRIPTS),
            ("iframe_adds", classifier.REASON_IFRAMES),
            ("link_changes", classifier.REASON_LINKS),
            ("src_changes", classifier.REASON_LINKS),
            ("action_changes", classifier.REASON_FORM_ACTIONS),
            ("inline_handlers", classifier.REASON_INLINE_HANDLERS),
        ],
    )
    def test_medium_rules(self, field: str, reason: str) -> None:
        result = classifier.classify(_window(**{field: 1}))
        assert result.level == "medium"
        assert result.reasons == (reason,)

    def test_script_reason_appears_once(self) -> None:
        result = classifier.classify(_window(script_adds=2, inline_scripts=1))
        assert result.reasons.count(classifier.REASON_SCRIPTS) == 1

    def test_volume_adds_reason_without_escalating(self) -> None:
        window = _window()
        window.counts.added = 20
        window.counts.removed = 5
        result = classifier.classify(window)
        assert result.level == "low"
        assert result.reasons == (classifier.REASON_VOLUME,)

    def test_volume_below_threshold(self) -> None:
        window = _window()
        window.counts.added = 24
        assert classifier.classify(window).reasons == ()

    def test_reasons_capped_in_rule_order(self) -> None:
        window = _window(**{name: 1 for name in EVIDENCE_FIELDS})
        window.record_extension_url("chrome-extension://abc/")
        window.counts.added = 100
        result = classifier.classify(window)
        assert result.level == "high"
        assert len(result.reasons) == classifier.MAX_REASONS
        assert result.reasons[0] == classifier.REASON_EXTENSION_URLS
        assert classifier.REASON_VOLUME not in result.reasons
        assert len(set(result.reasons)) == len(result.reasons)


class TestMonotonicity:
    """Adding evidence of any type never lowers the level."""

    @pytest.mark.parametrize("base", list(itertools.combinations(EVIDENCE_FIELDS, 2)))
    def test_adding_evidence_never_lowers(self, base: tuple[str, str]) -> None:
        window = _window(**{name: 1 for name in base})
        before = classifier.level_rank(classifier.classify(window).level)
        for name in EVIDENCE_FIELDS:
            setattr(window.evidence, name, getattr(window.evidence, name) + 1)
            window.counts.added += 30
            after = classifier.level_rank(classifier.classify(window).level)
            assert after >= before
            before = after
        window.record_extension_url("moz-extension://abc/")
        assert classifier.classify(window).level == "high"
