"""
Tests for the Alembic migration chain against the ORM metadata.
"""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from chatledger.db.connection import create_db_engine
from chatledger.db.store import Store
from chatledger.models.db import Base
from chatledger.pipeline.normalizer import Normalizer

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def migrated_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", url)
    command.upgrade(config, "head")
    return url


def _plain_tables(engine) -> set[str]:
    return {t for t in inspect(engine).get_table_names() if "_fts" not in t}


def test_upgrade_creates_every_model_table(migrated_url):
    engine = create_db_engine(migrated_url)
    try:
        tables = _plain_tables(engine)
    finally:
        engine.dispose()

    assert set(Base.metadata.tables) <= tables
    assert "alembic_version" in tables


def test_upgrade_creates_search_tables(migrated_url):
    engine = create_db_engine(migrated_url)
    try:
        names = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()

    assert {"messages_fts", "documents_fts", "memories_fts"} <= names


def test_migrated_database_serves_a_store(migrated_url, record_factory, three_turns):
    engine = create_db_engine(migrated_url)
    try:
        store = Store(engine)
        outcome = Normalizer(store).normalize(record_factory(*three_turns))
        hits = store.read(lambda uow: uow.search.search("message", "faster"))
    finally:
        engine.dispose()

    assert outcome.status == "created"
    assert store.sync.current_version() == 5
    assert len(hits) == 1


def test_downgrade_removes_tables(migrated_url):
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", migrated_url)

    command.downgrade(config, "base")

    engine = create_db_engine(migrated_url)
    try:
        assert _plain_tables(engine) == {"alembic_version"}
    finally:
        engine.dispose()
