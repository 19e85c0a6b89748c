"""Tests for digest persistence and seeding."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from release_pilot.digest import ensure_seed_data, get_latest_digest, list_digests
from release_pilot.mock_data import MOCK_DIGEST_IDS, mock_digests, mock_highlights, mock_metrics
from release_pilot.models import DigestDraft
from release_pilot.store import DigestStore


def _draft(date: datetime | None = None, summary: str = "All good.") -> DigestDraft:
    return DigestDraft(
        product_id="launchpad",
        title="Launchpad daily release brief",
        summary=summary,
        status="warning",
        highlights=mock_highlights(datetime(2025, 11, 21, 8, 30, tzinfo=UTC)),
        metrics=mock_metrics(),
        incidents=["Rollback at 02:00"],
        sources=["mock://releases?product=launchpad"],
        date=date,
    )


class TestRoundTrip:
    def test_create_then_find_recent(self, store: DigestStore):
        draft = _draft(datetime(2025, 11, 21, 9, 0, tzinfo=UTC))
        created = store.create(draft)
        (found,) = store.find_recent(1)
        assert found == created
        assert found.model_dump(exclude={"id", "date"}) == draft.model_dump(exclude={"date"})
        assert found.date.isoformat() == "2025-11-21T09:00:00+00:00"

    def test_json_timestamps_are_iso(self, store: DigestStore):
        store.create(_draft(datetime(2025, 11, 21, 9, 0, tzinfo=UTC)))
        payload = store.find_recent(1)[0].model_dump(mode="json", by_alias=True)
        assert payload["date"] == "2025-11-21T09:00:00Z"
        assert payload["highlights"][0]["shippedAt"] == "2025-11-21T08:30:00Z"

    def test_create_assigns_id_and_date(self, store: DigestStore):
        before = datetime.now(UTC)
        created = store.create(_draft())
        assert created.id.startswith("dg-")
        assert created.date >= before - timedelta(seconds=1)


class TestQueries:
    def test_find_recent_is_newest_first(self, store: DigestStore):
        base = datetime(2025, 11, 1, tzinfo=UTC)
        for day in (3, 1, 2):
            store.create(_draft(base + timedelta(days=day), summary=f"day {day}"))
        assert [d.summary for d in store.find_recent(5)] == ["day 3", "day 2", "day 1"]
        assert [d.summary for d in store.find_recent(2)] == ["day 3", "day 2"]
        assert store.count() == 3

    def test_upsert_skips_existing_id(self, store: DigestStore):
        digest = mock_digests()[0]
        assert store.upsert(digest) is True
        assert store.upsert(digest) is False
        assert store.count() == 1


class TestSeeding:
    def test_seeds_empty_store_once(self, store: DigestStore):
        assert ensure_seed_data(store) == 2
        assert ensure_seed_data(store) == 0
        assert store.count() == 2

    def test_skips_non_empty_store(self, store: DigestStore):
        store.create(_draft())
        assert ensure_seed_data(store) == 0
        assert store.count() == 1

    def test_list_digests_seeds(self, store: DigestStore):
        digests = list_digests(store)
        assert [d.id for d in digests] == list(MOCK_DIGEST_IDS)

    def test_latest_is_head(self, store: DigestStore):
        latest = get_latest_digest(store)
        assert latest is not None
        assert latest.id == MOCK_DIGEST_IDS[0]
        assert latest.status == "warning"
