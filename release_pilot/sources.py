"""Provider fetchers for releases, health metrics and incidents.

Every fetcher degrades to canned data instead of failing: missing
credentials yield a ``mock`` result, a failed or malformed live call yields a
``fallback`` result. Both carry the same canned payload.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Generic, Literal, TypeVar, cast

import requests
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, computed_field

from release_pilot.config import Settings
from release_pilot.mock_data import mock_highlights, mock_incidents, mock_metrics
from release_pilot.models import CamelModel, DigestStatus, HealthMetric, ReleaseHighlight, Trend

GITHUB_API_URL = "https://api.github.com"
GITHUB_RELEASES_PER_PAGE = 10
INCIDENTS_LIMIT = 5
METRICS_WINDOW_SECONDS = 24 * 60 * 60
HTTP_ERROR_THRESHOLD = 400
FALLBACK_SUFFIX = " (fallback)"

JSONDict = dict[str, object]
JSONList = list[object]
SourceKind = Literal["releases", "metrics", "incidents"]
SourceOrigin = Literal["live", "mock", "fallback"]
PayloadT = TypeVar("PayloadT")


def ensure_dict(value: object, _context: str) -> JSONDict:
    """Return a dictionary value or raise."""
    if isinstance(value, dict):
        return cast("JSONDict", value)
    raise TypeError


def ensure_list(value: object, _context: str) -> JSONList:
    """Return a list value or raise."""
    if isinstance(value, list):
        return cast("JSONList", value)
    raise TypeError


def ensure_str(value: object, _context: str, default: str = "") -> str:
    """Return a string value or a default."""
    if isinstance(value, str):
        return value
    if value is None:
        return default
    raise TypeError


class ProviderRequestError(RuntimeError):
    """Raised when a provider API call fails."""

    def __init__(self, status_code: int, text: str) -> None:
        """Create a provider request error."""
        super().__init__(f"Provider request failed ({status_code}): {text}")


class FetchResult(CamelModel, Generic[PayloadT]):
    """Payload from one provider, tagged with how it was obtained."""

    origin: SourceOrigin
    uri: str
    captured_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    payload: PayloadT

    @computed_field
    def source(self) -> str:
        """Provenance string recorded on the digest."""
        if self.origin == "fallback":
            return f"{self.uri}{FALLBACK_SUFFIX}"
        return self.uri


class MetricQuery(BaseModel):
    """A Datadog query tracked as a health metric."""

    label: str
    query: str
    target: str
    unit: str = ""
    healthy_at: float | None = None
    warning_at: float | None = None


def mock_uri(kind: SourceKind, product_id: str) -> str:
    """Return the provenance URI used for canned data."""
    return f"mock://{kind}?product={product_id}"


def mock_result(kind: SourceKind, product_id: str, payload: PayloadT) -> FetchResult[PayloadT]:
    """Wrap canned data for an unconfigured provider."""
    logger.warning(
        "Provider not configured, using mock data",
        kind=kind,
        product=product_id,
    )
    return FetchResult(
        origin="mock",
        uri=mock_uri(kind, product_id),
        payload=payload,
    )


def fetch_with_fallback(
    kind: SourceKind,
    uri: str,
    call: Callable[[], PayloadT],
    fallback: Callable[[], PayloadT],
) -> FetchResult[PayloadT]:
    """Run a live provider call, substituting canned data on any failure."""
    start = time.perf_counter()
    try:
        payload = call()
    except (
        requests.RequestException,
        ProviderRequestError,
        ValidationError,
        TypeError,
        ValueError,
        KeyError,
        IndexError,
    ) as exc:
        logger.warning(
            "Provider call failed, using fallback data",
            kind=kind,
            uri=uri,
            error=f"{type(exc).__name__}: {exc}",
        )
        return FetchResult(origin="fallback", uri=uri, payload=fallback())
    logger.info(
        "Provider call completed",
        kind=kind,
        uri=uri,
        elapsed=f"{time.perf_counter() - start:.2f}s",
    )
    return FetchResult(origin="live", uri=uri, payload=payload)


def get_json(
    url: str,
    headers: dict[str, str],
    params: dict[str, str | int],
    timeout: float,
) -> object:
    """GET a JSON document, raising on HTTP errors."""
    response = requests.get(url, headers=headers, params=params, timeout=timeout)
    if response.status_code >= HTTP_ERROR_THRESHOLD:
        raise ProviderRequestError(response.status_code, response.text)
    return response.json()


# --- releases -------------------------------------------------------------


def split_repo(settings: Settings, product_id: str) -> tuple[str, str]:
    """Resolve the GitHub owner and repository name."""
    full_name = settings.github_repo or f"{product_id}/{product_id}"
    owner, _, repo = full_name.partition("/")
    return owner, repo or owner


def parse_release(node: object) -> ReleaseHighlight:
    """Convert a GitHub release object into a highlight."""
    release = ensure_dict(node, "release")
    prerelease = bool(release.get("prerelease"))
    author = ensure_dict(release.get("author") or {}, "release.author")
    release_id = release.get("id")
    if not isinstance(release_id, int):
        raise TypeError
    shipped_at = ensure_str(release.get("published_at"), "release.published_at") or ensure_str(
        release.get("created_at"),
        "release.created_at",
    )
    return ReleaseHighlight(
        id=f"gh-{release_id}",
        title=ensure_str(release.get("name"), "release.name")
        or ensure_str(release.get("tag_name"), "release.tag_name"),
        description=ensure_str(release.get("body"), "release.body") or "Release notes",
        impact="Beta release" if prerelease else "Production release",
        shipped_at=datetime.fromisoformat(shipped_at),
        owner=ensure_str(author.get("login"), "author.login") or "GitHub",
        tags=["prerelease"] if prerelease else ["production"],
    )


def fetch_release_highlights(
    settings: Settings,
    product_id: str,
) -> FetchResult[list[ReleaseHighlight]]:
    """Fetch the latest GitHub releases as highlights."""
    token = settings.resolved_github_token
    if not token:
        return mock_result("releases", product_id, mock_highlights())
    owner, repo = split_repo(settings, product_id)

    def call() -> list[ReleaseHighlight]:
        data = get_json(
            f"{GITHUB_API_URL}/repos/{owner}/{repo}/releases",
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
            },
            {"per_page": GITHUB_RELEASES_PER_PAGE},
            settings.http_timeout,
        )
        return [parse_release(node) for node in ensure_list(data, "releases")]

    return fetch_with_fallback(
        "releases",
        f"github://repos/{owner}/{repo}/releases",
        call,
        mock_highlights,
    )


# --- metrics --------------------------------------------------------------


def metric_queries(product_id: str) -> list[MetricQuery]:
    """Return the Datadog queries tracked for a product."""
    return [
        MetricQuery(
            label="Crash-free sessions",
            query=(
                f"100 - sum:session.crash{{env:production,service:{product_id}}} / "
                f"sum:session.count{{env:production,service:{product_id}}} * 100"
            ),
            target="99.0%",
            unit="%",
            healthy_at=99.0,
            warning_at=95.0,
        ),
        MetricQuery(
            label="Deployment success rate",
            query=(
                "avg:kubernetes_state.deployment.replicas_available"
                f"{{kube_deployment:{product_id}}} / "
                "avg:kubernetes_state.deployment.replicas_desired"
                f"{{kube_deployment:{product_id}}} * 100"
            ),
            target="98.0%",
            unit="%",
            healthy_at=95.0,
            warning_at=90.0,
        ),
        MetricQuery(
            label="Active workspaces",
            query=f"count:trace.servlet.request{{env:production,service:{product_id}}}",
            target="1000+",
        ),
    ]


def series_points(data: object) -> list[float]:
    """Extract the non-null values of the first Datadog series."""
    series = ensure_list(ensure_dict(data, "query").get("series") or [], "series")
    if not series:
        return []
    pointlist = ensure_list(ensure_dict(series[0], "series[0]").get("pointlist") or [], "pointlist")
    values: list[float] = []
    for point in pointlist:
        value = ensure_list(point, "point")[1]
        if value is None:
            continue
        if not isinstance(value, int | float):
            raise TypeError
        values.append(float(value))
    return values


def metric_trend(current: float, previous: float) -> Trend:
    """Compare the latest two points of a series."""
    if current > previous:
        return "up"
    if current < previous:
        return "down"
    return "flat"


def metric_status(metric: MetricQuery, value: float) -> DigestStatus:
    """Grade a value against the metric's thresholds."""
    if metric.healthy_at is None or value >= metric.healthy_at:
        return "healthy"
    if metric.warning_at is not None and value >= metric.warning_at:
        return "warning"
    return "critical"


def build_health_metric(metric: MetricQuery, points: list[float]) -> HealthMetric:
    """Turn a series of points into a health metric snapshot."""
    current = points[-1] if points else 0.0
    previous = points[-2] if len(points) > 1 else current
    # percentages move in percentage points, counts in absolute units
    delta = f"{current - previous:+.1f}pp" if metric.unit == "%" else f"{current - previous:+.0f}"
    return HealthMetric(
        id="dd-" + "-".join(metric.label.lower().split()),
        label=metric.label,
        value=f"{current:.1f}{metric.unit}" if metric.unit else f"{current:.0f}",
        delta=delta,
        trend=metric_trend(current, previous),
        status=metric_status(metric, current),
        target=metric.target,
        note="Last 24h from Datadog",
    )


def fetch_health_metrics(
    settings: Settings,
    product_id: str,
) -> FetchResult[list[HealthMetric]]:
    """Fetch health metrics from Datadog."""
    api_key = settings.datadog_api_key
    app_key = settings.datadog_app_key
    if not api_key or not app_key:
        return mock_result("metrics", product_id, mock_metrics())
    base_url = f"https://api.{settings.datadog_site}"
    headers = {"DD-API-KEY": api_key, "DD-APPLICATION-KEY": app_key}

    def call() -> list[HealthMetric]:
        to_ts = int(time.time())
        from_ts = to_ts - METRICS_WINDOW_SECONDS
        metrics: list[HealthMetric] = []
        for metric in metric_queries(product_id):
            data = get_json(
                f"{base_url}/api/v1/query",
                headers,
                {"from": from_ts, "to": to_ts, "query": metric.query},
                settings.http_timeout,
            )
            metrics.append(build_health_metric(metric, series_points(data)))
        return metrics

    return fetch_with_fallback(
        "metrics",
        f"datadog://api.{settings.datadog_site}/query?service={product_id}",
        call,
        mock_metrics,
    )


# --- incidents ------------------------------------------------------------


def parse_incident(item: object) -> str:
    """Convert an incident item into its display text."""
    if isinstance(item, str):
        return item
    incident = ensure_dict(item, "incident")
    text = ensure_str(incident.get("title"), "incident.title") or ensure_str(
        incident.get("summary"),
        "incident.summary",
    )
    if not text:
        raise ValueError
    return text


def fetch_incidents(settings: Settings, product_id: str) -> FetchResult[list[str]]:
    """Fetch recently resolved incidents."""
    api_url = settings.incidents_api_url
    api_key = settings.incidents_api_key
    if not api_url or not api_key:
        return mock_result("incidents", product_id, mock_incidents())
    endpoint = f"{api_url.rstrip('/')}/incidents"

    def call() -> list[str]:
        data = get_json(
            endpoint,
            {"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
            {"product": product_id, "status": "resolved", "limit": INCIDENTS_LIMIT},
            settings.http_timeout,
        )
        return [parse_incident(item) for item in ensure_list(data, "incidents")]

    return fetch_with_fallback("incidents", endpoint, call, mock_incidents)
