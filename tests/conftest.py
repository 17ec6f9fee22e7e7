"""
Pytest configuration and fixtures for chatledger tests.

This module provides shared fixtures for testing the store, repositories,
the normalizer, the sync engine and the API/CLI surfaces.
"""

import json
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Generator, Optional

import pytest

from chatledger.config import settings
from chatledger.db.connection import create_db_engine, init_db
from chatledger.db.store import Store
from chatledger.models.records import ProviderSessionRecord, RawTurn, SourceLocation
from chatledger.pipeline.normalizer import Normalizer

BASE_TIME = datetime(2025, 6, 1, 10, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _no_file_logging(monkeypatch):
    """Keep CLI/API logging setup out of the user's state dir and stdout."""
    monkeypatch.setattr(settings, "log_file_enabled", False)
    monkeypatch.setattr(settings, "log_console_enabled", False)


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    engine = create_db_engine("sqlite://", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(test_engine) -> Store:
    """A fresh store (sync version 0) over the in-memory database."""
    return Store(test_engine, max_retries=0)


def make_turns(*pairs: tuple[str, str], start: datetime = BASE_TIME) -> list[RawTurn]:
    """Build raw turns from (role, content) pairs, one second apart."""
    return [
        RawTurn(role=role, content=content, timestamp=start + timedelta(seconds=i))
        for i, (role, content) in enumerate(pairs)
    ]


def make_record(
    *pairs: tuple[str, str],
    provider: str = "json-export",
    session_id: Optional[str] = "conv-1",
    title: Optional[str] = None,
    model: Optional[str] = "gpt-4o",
) -> ProviderSessionRecord:
    """Build a provider session record from (role, content) pairs."""
    return ProviderSessionRecord(
        provider=provider,
        turns=make_turns(*pairs),
        provider_session_id=session_id,
        title=title,
        model=model,
        source=SourceLocation(provider=provider, uri=f"/exports/{session_id}.json"),
    )


THREE_TURNS = (
    ("user", "How do I reverse a list in Python?"),
    ("assistant", "Use reversed() or slicing with [::-1]."),
    ("user", "Which one is faster?"),
)


@pytest.fixture
def record_factory() -> Callable[..., ProviderSessionRecord]:
    return make_record


@pytest.fixture
def normalizer(store: Store) -> Normalizer:
    return Normalizer(store, allow_branching=True)


@pytest.fixture
def sample_session_id(normalizer: Normalizer) -> uuid.UUID:
    """A three-turn session harvested into the store."""
    outcome = normalizer.normalize(make_record(*THREE_TURNS))
    return outcome.session_id


def export_session(
    session_id: str,
    pairs: list[tuple[str, str]],
    title: Optional[str] = None,
    **extra: Any,
) -> dict[str, Any]:
    """A session object in the provider-neutral JSON export format."""
    return {
        "id": session_id,
        "title": title,
        "model": "gpt-4o",
        "messages": [
            {
                "role": role,
                "content": content,
                "timestamp": (BASE_TIME + timedelta(seconds=i)).isoformat(),
            }
            for i, (role, content) in enumerate(pairs)
        ],
        **extra,
    }


def write_export(path: Path, sessions: list[dict[str, Any]]) -> Path:
    """Write a JSON export file holding the given session objects."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"sessions": sessions}), encoding="utf-8")
    return path


@pytest.fixture
def api_client(store: Store) -> Generator:
    """Create a test client for FastAPI with the store dependency overridden."""
    from fastapi.testclient import TestClient

    from chatledger.api.app import create_app
    from chatledger.api.deps import get_store

    app = create_app(store)
    app.dependency_overrides[get_store] = lambda: store
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def three_turns() -> tuple[tuple[str, str], ...]:
    return THREE_TURNS


@pytest.fixture
def export_writer() -> Callable[..., Path]:
    """Write `{"sessions": [...]}` export files from session objects."""

    def _write(path: Path, *sessions: dict[str, Any]) -> Path:
        return write_export(path, list(sessions))

    return _write


@pytest.fixture
def export_session_factory() -> Callable[..., dict[str, Any]]:
    return export_session
