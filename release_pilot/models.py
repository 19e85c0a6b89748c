"""Digest, metric and chat models shared by every surface."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DigestStatus = Literal["healthy", "warning", "critical"]
Trend = Literal["up", "down", "flat"]
ChatRole = Literal["user", "assistant", "system"]


class CamelModel(BaseModel):
    """Model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReleaseHighlight(CamelModel):
    """A shipped change worth calling out in a digest."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    impact: str
    shipped_at: datetime
    owner: str
    tags: list[str] = Field(default_factory=list)


class HealthMetric(CamelModel):
    """Snapshot of one health measurement at digest time."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    value: str
    delta: str
    trend: Trend
    status: DigestStatus
    target: str | None = None
    note: str | None = None


class DigestDraft(CamelModel):
    """Digest fields before the store assigns an id."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    title: str
    summary: str
    status: DigestStatus
    highlights: list[ReleaseHighlight] = Field(default_factory=list)
    metrics: list[HealthMetric] = Field(default_factory=list)
    incidents: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    date: datetime | None = None


class DigestEntry(DigestDraft):
    """A digest as stored and served."""

    id: str
    date: datetime


class DigestRunResult(CamelModel):
    """Outcome of one aggregation attempt."""

    ok: bool
    digest: DigestEntry | None = None
    error: str | None = None
    sources: list[str] | None = None
    duration_ms: int

    @model_validator(mode="after")
    def check_outcome(self) -> DigestRunResult:
        """Require a digest on success and an error on failure, never both."""
        if self.ok and (self.digest is None or self.error is not None):
            raise ValueError("successful run must carry a digest and no error")
        if not self.ok and (self.error is None or self.digest is not None):
            raise ValueError("failed run must carry an error and no digest")
        return self


class ChatMessage(CamelModel):
    """One message in a client-held conversation."""

    id: str
    role: ChatRole
    content: str
    timestamp: datetime
    action_id: str | None = None


class QuickAction(CamelModel):
    """Canned chat prompt offered to clients."""

    id: str
    label: str
    prompt: str
    description: str
