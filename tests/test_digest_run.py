"""Tests for the digest aggregation run."""
from __future__ import annotations

from unittest.mock import patch

import requests
from sqlalchemy.exc import OperationalError

from release_pilot.digest import infer_status, trigger_digest_run
from release_pilot.models import DigestDraft, DigestEntry
from release_pilot.store import DigestStore


class SpyStore:
    """Records writes instead of persisting them."""

    def __init__(self, existing: list[DigestEntry] | None = None) -> None:
        self.created: list[DigestDraft] = []
        self.existing = existing or []

    def create(self, draft: DigestDraft) -> DigestEntry:
        self.created.append(draft)
        return DigestEntry(
            **draft.model_dump(exclude={"date"}),
            id=f"dg-spy-{len(self.created)}",
            date=draft.date or "2025-11-21T00:00:00Z",
        )

    def find_recent(self, limit: int) -> list[DigestEntry]:
        return self.existing[:limit]

    def count(self) -> int:
        return len(self.existing)


class FailingStore(SpyStore):
    def create(self, draft: DigestDraft) -> DigestEntry:
        raise OperationalError("INSERT INTO digests", {}, Exception("database is locked"))


def _all_configured(make_settings):
    return make_settings(
        GITHUB_TOKEN="token",
        DATADOG_API_KEY="api",
        DATADOG_APP_KEY="app",
        INCIDENTS_API_URL="https://incidents.example.com",
        INCIDENTS_API_KEY="key",
    )


class TestDryRun:
    def test_never_writes(self, settings):
        spy = SpyStore()
        result = trigger_digest_run(settings, spy, "launchpad", dry_run=True)
        assert result.ok
        assert spy.created == []
        assert result.digest is not None
        assert result.digest.id.startswith("dg-preview-")

    def test_preview_id_is_fresh(self, settings, store: DigestStore):
        persisted = trigger_digest_run(settings, store, "launchpad")
        preview = trigger_digest_run(settings, store, "launchpad", dry_run=True)
        assert persisted.digest is not None
        assert preview.digest is not None
        assert preview.digest.id != persisted.digest.id
        assert store.count() == 1


class TestPersistedRun:
    def test_persists_exactly_one_record(self, settings):
        spy = SpyStore()
        result = trigger_digest_run(settings, spy, "launchpad")
        assert result.ok
        assert len(spy.created) == 1
        draft = spy.created[0]
        assert draft.status == infer_status(draft.metrics)
        assert result.digest is not None
        assert result.digest.id == "dg-spy-1"

    def test_stored_status_matches_metrics(self, settings, store: DigestStore):
        result = trigger_digest_run(settings, store, "launchpad")
        assert result.ok
        (stored,) = store.find_recent(5)
        assert stored.status == infer_status(stored.metrics)
        assert stored.status == "warning"
        assert stored.title == "Launchpad daily release brief"
        assert stored.summary.startswith("Status WARNING: Unified release timeline shipped")

    def test_sources_keep_fetch_order(self, settings):
        result = trigger_digest_run(settings, SpyStore(), "launchpad", dry_run=True)
        assert result.sources == [
            "mock://releases?product=launchpad",
            "mock://metrics?product=launchpad",
            "mock://incidents?product=launchpad",
        ]
        assert result.digest is not None
        assert result.digest.sources == result.sources


class TestFailures:
    def test_all_providers_failing_still_succeeds(self, make_settings):
        settings = _all_configured(make_settings)
        spy = SpyStore()
        with patch("release_pilot.sources.requests.get") as mock_get:
            mock_get.side_effect = requests.ConnectionError("network down")
            result = trigger_digest_run(settings, spy, "launchpad")
        assert result.ok
        assert result.sources is not None
        assert len(result.sources) == 3
        for source in result.sources:
            assert "mock" in source or "fallback" in source
        assert result.digest is not None
        assert [h.id for h in result.digest.highlights] == ["hl-001", "hl-002", "hl-003"]
        assert len(spy.created) == 1

    def test_storage_failure_reported(self, settings):
        result = trigger_digest_run(settings, FailingStore(), "launchpad")
        assert not result.ok
        assert result.digest is None
        assert "database is locked" in (result.error or "")
        assert result.duration_ms >= 0

    def test_result_serializes_camel_case(self, settings):
        result = trigger_digest_run(settings, SpyStore(), "launchpad", dry_run=True)
        payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
        assert payload["ok"] is True
        assert "durationMs" in payload
        assert payload["digest"]["productId"] == "launchpad"
        assert "shippedAt" in payload["digest"]["highlights"][0]
