"""
Tests for CLI commands.
"""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from chatledger.cli import app
from chatledger.db.connection import create_db_engine
from chatledger.db.store import Store

# Disable Rich formatting in tests using NO_COLOR environment variable
runner = CliRunner(env={"NO_COLOR": "1", "TERM": "dumb"})


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def export_dir(tmp_path, export_writer, export_session_factory) -> Path:
    exports = tmp_path / "exports"
    export_writer(
        exports / "chats.json",
        export_session_factory(
            "conv-1", [("user", "How do I profile Python?"), ("assistant", "cProfile")]
        ),
        export_session_factory("conv-2", [("user", "What is a monad?")]),
    )
    return exports


def _invoke(db_url: str, *args: str):
    return runner.invoke(app, ["--db-url", db_url, *args])


def _first_session_id(db_url: str) -> str:
    engine = create_db_engine(db_url)
    try:
        store = Store(engine)
        sessions = store.read(lambda uow: uow.sessions.list_sessions(limit=1))
        return str(sessions[0].id)
    finally:
        engine.dispose()


class TestInitAndVersion:
    def test_init_db(self, db_url):
        """Test that init-db creates the schema."""
        result = _invoke(db_url, "init-db")

        assert result.exit_code == 0
        assert "Database ready" in result.stdout

    def test_version_on_empty_store(self, db_url):
        result = _invoke(db_url, "version")

        assert result.exit_code == 0
        assert "Sync version: 0" in result.stdout


class TestHarvestCommand:
    """Tests for harvest command."""

    def test_harvest_requires_provider(self, db_url):
        result = _invoke(db_url, "harvest")

        assert result.exit_code != 0

    def test_unknown_provider(self, db_url):
        result = _invoke(db_url, "harvest", "myspace")

        assert result.exit_code == 2
        assert "Unknown provider" in result.stdout

    def test_nonexistent_path_fails(self, db_url, tmp_path):
        result = _invoke(
            db_url, "harvest", "json-export", "--path", str(tmp_path / "missing")
        )

        assert result.exit_code == 1
        assert "not found" in result.stdout.lower()

    def test_harvest_directory(self, db_url, export_dir):
        """Test harvesting a directory of exports, then re-harvesting it."""
        first = _invoke(db_url, "harvest", "json-export", "--path", str(export_dir))

        assert first.exit_code == 0
        assert "Sessions created: 2" in first.stdout
        assert "Messages added: 3" in first.stdout

        second = _invoke(db_url, "harvest", "json-export", "--path", str(export_dir))

        assert second.exit_code == 0
        assert "Sessions unchanged: 2" in second.stdout
        assert "Messages added: 0" in second.stdout

    def test_failed_source_sets_exit_code(self, db_url, export_dir):
        (export_dir / "broken.json").write_text("{nope")

        result = _invoke(db_url, "harvest", "json-export", "--path", str(export_dir))

        assert result.exit_code == 1
        assert "Sources failed: 1" in result.stdout
        assert "Sessions created: 2" in result.stdout


class TestCheckpointCommands:
    def test_checkpoint_and_list(self, db_url, export_dir):
        _invoke(db_url, "harvest", "json-export", "--path", str(export_dir))
        session_id = _first_session_id(db_url)

        created = _invoke(db_url, "checkpoint", session_id, "before-refactor")
        listed = _invoke(db_url, "checkpoints", session_id)

        assert created.exit_code == 0
        assert "Checkpoint created" in created.stdout
        assert listed.exit_code == 0
        assert "before-refactor" in listed.stdout
        assert "1 checkpoint(s)" in listed.stdout

    def test_invalid_session_id(self, db_url):
        result = _invoke(db_url, "checkpoint", "not-a-uuid", "x")

        assert result.exit_code == 2
        assert "Invalid session id" in result.stdout

    def test_unknown_session(self, db_url):
        result = _invoke(
            db_url, "checkpoints", "00000000-0000-0000-0000-000000000000"
        )

        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestSearchCommand:
    def test_search_messages(self, db_url, export_dir):
        _invoke(db_url, "harvest", "json-export", "--path", str(export_dir))

        result = _invoke(db_url, "search", "monad")

        assert result.exit_code == 0
        assert "1 match(es)" in result.stdout

    def test_no_matches(self, db_url):
        result = _invoke(db_url, "search", "anything")

        assert result.exit_code == 0
        assert "No matches" in result.stdout

    def test_unknown_kind(self, db_url):
        result = _invoke(db_url, "search", "x", "--kind", "slides")

        assert result.exit_code == 2
