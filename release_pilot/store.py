"""SQLAlchemy-backed digest storage.

Digests are append-only: the store can create and read records, and insert
fixed-id records when they are missing, but never updates one in place.
"""
from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from loguru import logger
from sqlalchemy import JSON, Column, DateTime, String, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from release_pilot.models import DigestDraft, DigestEntry, HealthMetric, ReleaseHighlight

Base = declarative_base()


class DigestRecord(Base):
    __tablename__ = "digests"

    id = Column(String(64), primary_key=True)
    product_id = Column(String(100), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    summary = Column(Text, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    highlights = Column(JSON, nullable=False, default=list)
    metrics = Column(JSON, nullable=False, default=list)
    incidents = Column(JSON, nullable=False, default=list)
    sources = Column(JSON, nullable=False, default=list)

    def to_entry(self) -> DigestEntry:
        """Return the record as a digest model."""
        return DigestEntry(
            id=self.id,
            product_id=self.product_id,
            title=self.title,
            summary=self.summary,
            date=as_utc(self.date),
            status=self.status,
            highlights=[ReleaseHighlight.model_validate(item) for item in self.highlights],
            metrics=[HealthMetric.model_validate(item) for item in self.metrics],
            incidents=list(self.incidents),
            sources=list(self.sources),
        )


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def new_digest_id() -> str:
    """Return a fresh store-assigned digest id."""
    return f"dg-{uuid4().hex[:16]}"


def record_from(entry: DigestDraft, digest_id: str, date: datetime) -> DigestRecord:
    """Build an ORM record from digest fields."""
    return DigestRecord(
        id=digest_id,
        product_id=entry.product_id,
        title=entry.title,
        summary=entry.summary,
        date=as_utc(date),
        status=entry.status,
        highlights=[item.model_dump(mode="json", by_alias=True) for item in entry.highlights],
        metrics=[item.model_dump(mode="json", by_alias=True) for item in entry.metrics],
        incidents=list(entry.incidents),
        sources=list(entry.sources),
    )


class DigestStore:
    """Digest persistence over a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        Base.metadata.create_all(engine)

    def find_recent(self, limit: int) -> list[DigestEntry]:
        """Return up to ``limit`` digests, newest first."""
        with self._sessions() as session:
            records = session.scalars(
                select(DigestRecord).order_by(DigestRecord.date.desc()).limit(limit),
            ).all()
            return [record.to_entry() for record in records]

    def create(self, draft: DigestDraft) -> DigestEntry:
        """Persist a new digest; the id is assigned and the date defaults to now."""
        record = record_from(draft, new_digest_id(), draft.date or datetime.now(UTC))
        with self._sessions() as session:
            session.add(record)
            session.commit()
            entry = record.to_entry()
        logger.info("Digest stored", id=entry.id, product=entry.product_id, status=entry.status)
        return entry

    def count(self) -> int:
        """Return the number of stored digests."""
        with self._sessions() as session:
            return session.scalar(select(func.count()).select_from(DigestRecord)) or 0

    def upsert(self, entry: DigestEntry) -> bool:
        """Insert ``entry`` under its own id unless that id already exists."""
        with self._sessions() as session:
            if session.get(DigestRecord, entry.id) is not None:
                return False
            session.add(record_from(entry, entry.id, entry.date))
            try:
                session.commit()
            except IntegrityError:
                # inserted concurrently by another request
                session.rollback()
                return False
        return True


def create_store(database_url: str) -> DigestStore:
    """Open a store for a SQLAlchemy database URL."""
    if database_url.startswith("sqlite"):
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(database_url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(database_url, pool_pre_ping=True)
    logger.debug("Opened digest store", backend=engine.dialect.name)
    return DigestStore(engine)
