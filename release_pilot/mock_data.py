"""Canned digests used for seeding and as provider fallbacks."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from release_pilot.models import DigestEntry, HealthMetric, ReleaseHighlight

MOCK_DIGEST_IDS = ("dg-2025-11-21", "dg-2025-11-20")
MOCK_TITLE = "Launchpad daily release brief"


def mock_highlights(now: datetime | None = None) -> list[ReleaseHighlight]:
    """Return the canned release highlights."""
    now = now or datetime.now(UTC)
    return [
        ReleaseHighlight(
            id="hl-001",
            title="Unified release timeline",
            description="Daily timeline page now links PRs, incidents, and Jira epics.",
            impact="Gives PMs a single source of truth for release readiness.",
            shipped_at=now,
            owner="Launchpad Core",
            tags=["release", "visibility", "platform"],
        ),
        ReleaseHighlight(
            id="hl-002",
            title="Slack acknowledgement workflow",
            description=(
                "Stakeholders can acknowledge digests directly from Slack, "
                "feeding back to the dashboard."
            ),
            impact="Improves accountability and provides read receipts for PM leadership.",
            shipped_at=now - timedelta(hours=4),
            owner="Eng Productivity",
            tags=["slack", "automation"],
        ),
        ReleaseHighlight(
            id="hl-003",
            title="Realtime health card API",
            description="New MCP tool queries observability APIs to build per-release health cards.",
            impact="PMs can spot regression signals without leaving the digest.",
            shipped_at=now - timedelta(hours=24),
            owner="Telemetry",
            tags=["mcp", "metrics", "api"],
        ),
    ]


def mock_metrics() -> list[HealthMetric]:
    """Return the canned health metrics."""
    return [
        HealthMetric(
            id="mt-001",
            label="Crash-free sessions",
            value="99.4%",
            delta="+0.3pp",
            trend="up",
            status="healthy",
            target="99.0%",
            note="Spike from mobile beta cohort resolved.",
        ),
        HealthMetric(
            id="mt-002",
            label="Deployment success rate",
            value="96%",
            delta="-2pp",
            trend="down",
            status="warning",
            target="98%",
            note="Two rollbacks triggered auto-pauses; fix shipping today.",
        ),
        HealthMetric(
            id="mt-003",
            label="Active workspaces",
            value="1,240",
            delta="+4%",
            trend="up",
            status="healthy",
            note="Growth driven by new onboarding flow AB test.",
        ),
    ]


def mock_incidents() -> list[str]:
    """Return the canned incident list."""
    return [
        "Two deploy rollbacks between 02:00-04:00 UTC due to config drift; "
        "auto-pauses cleared.",
    ]


def mock_digests(now: datetime | None = None) -> list[DigestEntry]:
    """Return the built-in digests, newest first."""
    now = now or datetime.now(UTC)
    highlights = mock_highlights(now)
    metrics = mock_metrics()
    recovered = [
        metric.model_copy(
            update={"value": "98%", "delta": "+1pp", "trend": "up", "status": "healthy"},
        )
        if metric.id == "mt-002"
        else metric
        for metric in metrics
    ]
    return [
        DigestEntry(
            id=MOCK_DIGEST_IDS[0],
            product_id="launchpad",
            title=MOCK_TITLE,
            summary=(
                "Top-line metrics remain healthy while deployment reliability is "
                "under watch. Slack acknowledgement workflow is live and adoption "
                "is trending up."
            ),
            date=now,
            status="warning",
            highlights=highlights,
            metrics=metrics,
            incidents=mock_incidents(),
            sources=[
                "mcp://releases/fetch-latest?product=launchpad",
                "mcp://metrics/health-card?product=launchpad",
                "slack://eng-announce/threads/abc123",
            ],
        ),
        DigestEntry(
            id=MOCK_DIGEST_IDS[1],
            product_id="launchpad",
            title=MOCK_TITLE,
            summary=(
                "Feature flags cleaned up across three services and error budget "
                "stayed comfortable."
            ),
            date=now - timedelta(hours=24),
            status="healthy",
            highlights=highlights[:2],
            metrics=recovered,
            incidents=[],
            sources=[
                "mcp://releases/fetch-latest?product=launchpad&day=-1",
                "pagerduty://incidents/closed?since=24h",
            ],
        ),
    ]
