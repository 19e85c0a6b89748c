"""Shared fixtures."""
from __future__ import annotations

from collections.abc import Callable

import pytest

from release_pilot.config import Settings
from release_pilot.store import DigestStore, create_store


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials in the environment out of tests."""
    for field in Settings.model_fields.values():
        if field.alias:
            monkeypatch.delenv(field.alias, raising=False)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build settings from env-style keyword overrides, ignoring any .env file."""

    def factory(**env: object) -> Settings:
        return Settings(_env_file=None, **{"DATABASE_URL": "sqlite://", **env})

    return factory


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


@pytest.fixture
def store() -> DigestStore:
    return create_store("sqlite://")
