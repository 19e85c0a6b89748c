"""Tests for status inference and summary composition."""
from __future__ import annotations

import itertools

from release_pilot.digest import compose_summary, digest_title, draft_custom_highlight, infer_status
from release_pilot.mock_data import mock_highlights, mock_metrics
from release_pilot.models import HealthMetric


def _metric(status: str, label: str = "Metric") -> HealthMetric:
    return HealthMetric(
        id=f"mt-{label}-{status}",
        label=label,
        value="1",
        delta="+0",
        trend="flat",
        status=status,
    )


class TestInferStatus:
    def test_critical_wins_in_any_order(self):
        metrics = [_metric("healthy"), _metric("warning"), _metric("critical")]
        for ordering in itertools.permutations(metrics):
            assert infer_status(list(ordering)) == "critical"

    def test_warning_without_critical(self):
        metrics = [_metric("healthy"), _metric("warning"), _metric("healthy")]
        for ordering in itertools.permutations(metrics):
            assert infer_status(list(ordering)) == "warning"

    def test_all_healthy(self):
        assert infer_status([_metric("healthy"), _metric("healthy")]) == "healthy"

    def test_empty_is_healthy(self):
        assert infer_status([]) == "healthy"

    def test_mock_metrics_are_warning(self):
        assert infer_status(mock_metrics()) == "warning"


class TestComposeSummary:
    def test_uses_first_highlight_metric_and_incident(self):
        summary = compose_summary(
            mock_highlights(),
            mock_metrics(),
            ["Rollback at 02:00"],
            "warning",
        )
        assert summary == (
            "Status WARNING: Unified release timeline shipped and Crash-free sessions "
            "sits at 99.4%. Notable incident: Rollback at 02:00"
        )

    def test_placeholders_when_empty(self):
        summary = compose_summary([], [], [], "healthy")
        assert summary.startswith("Status HEALTHY: latest release shipped and key metric")
        assert summary.endswith("No blocking incidents reported.")


class TestHelpers:
    def test_digest_title(self):
        assert digest_title("launchpad") == "Launchpad daily release brief"

    def test_custom_highlight(self):
        highlight = draft_custom_highlight("Dark mode", "Design")
        assert highlight.title == "Dark mode"
        assert highlight.owner == "Design"
        assert highlight.tags == ["custom"]
        assert highlight.impact == "TBD"
