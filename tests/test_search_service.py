"""
Tests for full-text search.
"""

import pytest

from chatledger.db.search import build_match_query
from chatledger.services.search_service import SearchService


@pytest.fixture
def search(store) -> SearchService:
    return SearchService(store)


def test_match_query_quotes_every_token():
    assert build_match_query('reverse "list" OR') == '"reverse" """list""" "OR"'
    assert build_match_query("   ") == ""


class TestMessageSearch:
    def test_finds_harvested_messages(self, search, sample_session_id):
        hits = search.search("message", "reversed slicing")

        assert len(hits) == 1
        assert hits[0].entity["session_id"] == str(sample_session_id)
        assert hits[0].entity["role"] == "assistant"
        assert "reversed()" in hits[0].entity["snippet"]

    def test_best_match_first(self, store, search, normalizer, record_factory):
        normalizer.normalize(
            record_factory(
                ("user", "python python python decorators"),
                session_id="a",
            )
        )
        normalizer.normalize(
            record_factory(("user", "python generators and more"), session_id="b")
        )

        hits = search.search("message", "python")

        assert len(hits) == 2
        assert hits[0].score >= hits[1].score
        assert "decorators" in hits[0].entity["content"]

    def test_operators_in_input_are_literal(self, search, sample_session_id):
        assert search.search("message", "faster OR NEAR(") == []
        assert search.search("message", "") == []

    def test_deleted_session_leaves_no_hits(self, store, search, sample_session_id):
        store.run(lambda uow: uow.sessions.delete(sample_session_id))

        assert search.search("message", "faster") == []


class TestOtherKinds:
    def test_documents_and_memories(self, store, search):
        store.run(
            lambda uow: uow.documents.ingest(
                "runbook.md", "Restart the ingestion worker with systemctl."
            )
        )
        store.run(lambda uow: uow.memories.create(content="User is on call Mondays"))

        documents = search.search("document", "ingestion worker")
        memories = search.search("memory", "call")

        assert [h.entity["name"] for h in documents] == ["runbook.md"]
        assert memories[0].entity["type"] == "semantic"

    def test_unknown_kind(self, search):
        with pytest.raises(ValueError):
            search.search("slides", "anything")

    def test_limit(self, store, search):
        def _seed(uow):
            for i in range(5):
                uow.memories.create(content=f"deploy note {i}")

        store.run(_seed)

        assert len(search.search("memory", "deploy", limit=3)) == 3
