"""Digest aggregation: fetch, grade, summarize and store one run."""
from __future__ import annotations

import concurrent.futures
import time
from datetime import UTC, datetime
from uuid import uuid4

from loguru import logger

from release_pilot.config import Settings
from release_pilot.mock_data import mock_digests
from release_pilot.models import (
    DigestDraft,
    DigestEntry,
    DigestRunResult,
    DigestStatus,
    HealthMetric,
    ReleaseHighlight,
)
from release_pilot.sources import (
    FetchResult,
    fetch_health_metrics,
    fetch_incidents,
    fetch_release_highlights,
)
from release_pilot.store import DigestStore

DEFAULT_LIST_LIMIT = 5
STATUS_RANK: dict[DigestStatus, int] = {"healthy": 0, "warning": 1, "critical": 2}
UNEXPECTED_RUN_ERROR = "Unexpected error while running digest"


def log_elapsed(message: str, start: float, **fields: object) -> None:
    """Log elapsed time with additional fields."""
    elapsed = f"{time.perf_counter() - start:.2f}s"
    logger.info(
        "{message} (elapsed {elapsed})",
        message=message,
        elapsed=elapsed,
        **fields,
    )


def infer_status(metrics: list[HealthMetric]) -> DigestStatus:
    """Return the worst status among ``metrics``; healthy when there are none."""
    return max(
        (metric.status for metric in metrics),
        key=STATUS_RANK.__getitem__,
        default="healthy",
    )


def compose_summary(
    highlights: list[ReleaseHighlight],
    metrics: list[HealthMetric],
    incidents: list[str],
    status: DigestStatus,
) -> str:
    """Render the one-paragraph digest synopsis."""
    top_highlight = highlights[0].title if highlights else "latest release"
    if metrics:
        metric_label, metric_value = metrics[0].label, metrics[0].value
    else:
        metric_label, metric_value = "key metric", "n/a"
    incident_note = (
        f"Notable incident: {incidents[0]}" if incidents else "No blocking incidents reported."
    )
    return (
        f"Status {status.upper()}: {top_highlight} shipped and {metric_label} "
        f"sits at {metric_value}. {incident_note}"
    )


def digest_title(product_id: str) -> str:
    """Return the display title for a product's digest."""
    return f"{product_id.capitalize()} daily release brief"


def preview_id() -> str:
    """Return a synthetic id for a digest that is never stored."""
    return f"dg-preview-{int(time.time() * 1000)}-{uuid4().hex[:6]}"


def draft_custom_highlight(title: str, owner: str) -> ReleaseHighlight:
    """Create a highlight drafted by hand rather than fetched."""
    return ReleaseHighlight(
        id=str(uuid4()),
        title=title,
        description="Custom highlight added via chat interface.",
        impact="TBD",
        shipped_at=datetime.now(UTC),
        owner=owner,
        tags=["custom"],
    )


def fetch_all_sources(
    settings: Settings,
    product_id: str,
) -> tuple[
    FetchResult[list[ReleaseHighlight]],
    FetchResult[list[HealthMetric]],
    FetchResult[list[str]],
]:
    """Fetch releases, metrics and incidents concurrently."""
    start = time.perf_counter()
    with concurrent.futures.ThreadPoolExecutor(max_workers=3) as executor:
        releases = executor.submit(fetch_release_highlights, settings, product_id)
        metrics = executor.submit(fetch_health_metrics, settings, product_id)
        incidents = executor.submit(fetch_incidents, settings, product_id)
        results = releases.result(), metrics.result(), incidents.result()
    log_elapsed("Fetched sources", start, product=product_id)
    return results


def trigger_digest_run(
    settings: Settings,
    store: DigestStore,
    product_id: str,
    *,
    dry_run: bool = False,
) -> DigestRunResult:
    """Aggregate one digest, storing it unless ``dry_run`` is set.

    Provider failures are absorbed by the fetchers; anything that still
    escapes (a storage failure, typically) is reported as ``ok=False``.
    """
    started = time.perf_counter()

    def elapsed_ms() -> int:
        return int((time.perf_counter() - started) * 1000)

    logger.info("Starting digest run", product=product_id, dry_run=dry_run)
    try:
        releases, metrics, incidents = fetch_all_sources(settings, product_id)
        status = infer_status(metrics.payload)
        summary = compose_summary(
            releases.payload,
            metrics.payload,
            incidents.payload,
            status,
        )
        sources = [releases.source, metrics.source, incidents.source]
        draft = DigestDraft(
            product_id=product_id,
            title=digest_title(product_id),
            summary=summary,
            status=status,
            highlights=releases.payload,
            metrics=metrics.payload,
            incidents=incidents.payload,
            sources=sources,
        )
        if dry_run:
            digest = DigestEntry(
                **draft.model_dump(exclude={"date"}),
                id=preview_id(),
                date=datetime.now(UTC),
            )
        else:
            digest = store.create(draft)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Digest run failed", product=product_id)
        return DigestRunResult(
            ok=False,
            error=str(exc) or UNEXPECTED_RUN_ERROR,
            duration_ms=elapsed_ms(),
        )
    result = DigestRunResult(ok=True, digest=digest, sources=sources, duration_ms=elapsed_ms())
    logger.info(
        "Digest run complete",
        id=digest.id,
        status=status,
        dry_run=dry_run,
        duration_ms=result.duration_ms,
    )
    return result


def ensure_seed_data(store: DigestStore) -> int:
    """Insert the built-in digests into an empty store; return how many were added."""
    if store.count() > 0:
        return 0
    added = sum(store.upsert(digest) for digest in mock_digests())
    if added:
        logger.info("Seeded digest store", count=added)
    return added


def list_digests(store: DigestStore, limit: int = DEFAULT_LIST_LIMIT) -> list[DigestEntry]:
    """Return the most recent digests, seeding an empty store first."""
    ensure_seed_data(store)
    return store.find_recent(limit)


def get_latest_digest(store: DigestStore) -> DigestEntry | None:
    """Return the newest digest, if any."""
    digests = list_digests(store, 1)
    return digests[0] if digests else None
