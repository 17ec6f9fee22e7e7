"""
Tests for EmbeddingRepository and vector packing.
"""

import pytest
import sqlite_vec

from chatledger.db.repositories.embedding import pack_vector, unpack_vector
from chatledger.db.store import Store
from chatledger.models.db import EmbeddingSource


def test_vectors_are_packed_as_float32():
    blob = pack_vector([0.5, -1.0, 2.25])

    assert len(blob) == 12
    assert blob == sqlite_vec.serialize_float32([0.5, -1.0, 2.25])
    assert unpack_vector(blob) == [0.5, -1.0, 2.25]


class TestEmbeddingUpsert:
    def test_upsert_overwrites_same_source_and_model(self, store: Store):
        _, created = store.run(
            lambda uow: uow.embeddings.upsert("memory", "m-1", "mini", [1.0, 2.0])
        )
        embedding, created_again = store.run(
            lambda uow: uow.embeddings.upsert(
                EmbeddingSource.MEMORY, "m-1", "mini", [3.0, 4.0, 5.0]
            )
        )

        assert created is True
        assert created_again is False
        assert embedding.dimensions == 3
        assert store.read(lambda uow: uow.embeddings.count()) == 1
        stored = store.read(
            lambda uow: uow.embeddings.get_for_source("memory", "m-1", "mini")
        )
        assert unpack_vector(stored.vector) == [3.0, 4.0, 5.0]

    def test_models_are_stored_side_by_side(self, store: Store):
        def _seed(uow):
            uow.embeddings.upsert("message", "x", "large", [0.0])
            uow.embeddings.upsert("message", "x", "mini", [1.0])

        store.run(_seed)

        models = store.read(
            lambda uow: [
                e.model for e in uow.embeddings.list_for_source("message", "x")
            ]
        )
        assert models == ["large", "mini"]

        removed = store.run(
            lambda uow: uow.embeddings.delete_for_source("message", "x")
        )
        assert removed == 2

    def test_unknown_source_kind_is_rejected(self, store: Store):
        with pytest.raises(ValueError):
            store.run(lambda uow: uow.embeddings.upsert("slide", "x", "mini", [0.0]))
