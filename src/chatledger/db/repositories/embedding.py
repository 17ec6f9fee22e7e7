"""
Embedding repository.

Embeddings are a tagged association over the known source kinds
(EmbeddingSource) plus an opaque source id. The (source_type, source_id,
model) triple is unique: storing again overwrites the vector.
"""

import struct
from typing import List, Optional, Sequence

import sqlite_vec

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import Embedding, EmbeddingSource, utc_now


def pack_vector(values: Sequence[float]) -> bytes:
    """Encode a float vector in sqlite-vec's float32 format (native byte order)."""
    return sqlite_vec.serialize_float32(list(values))


def unpack_vector(blob: bytes) -> list[float]:
    return list(struct.unpack(f"{len(blob) // 4}f", blob))


class EmbeddingRepository(BaseRepository[Embedding]):
    """Repository for Embedding model."""

    def __init__(self, uow):
        super().__init__(Embedding, uow)

    def get_for_source(
        self, source_type: EmbeddingSource, source_id, model: str
    ) -> Optional[Embedding]:
        return (
            self.session.query(Embedding)
            .filter(
                Embedding.source_type == EmbeddingSource(source_type),
                Embedding.source_id == str(source_id),
                Embedding.model == model,
            )
            .first()
        )

    def upsert(
        self,
        source_type: EmbeddingSource,
        source_id,
        model: str,
        vector: Sequence[float],
        metadata: Optional[dict] = None,
    ) -> tuple[Embedding, bool]:
        """
        Store the vector for a source/model pair, replacing any previous one.

        Returns:
            Tuple of (embedding, created)
        """
        source_type = EmbeddingSource(source_type)
        existing = self.get_for_source(source_type, source_id, model)
        if existing is not None:
            existing.vector = pack_vector(vector)
            existing.dimensions = len(vector)
            existing.created_at = utc_now()
            if metadata is not None:
                existing.extra_data = metadata
            self.session.flush()
            return existing, False

        embedding = self.create(
            source_type=source_type,
            source_id=str(source_id),
            model=model,
            dimensions=len(vector),
            vector=pack_vector(vector),
            extra_data=metadata or {},
        )
        return embedding, True

    def list_for_source(
        self, source_type: EmbeddingSource, source_id
    ) -> List[Embedding]:
        return (
            self.session.query(Embedding)
            .filter(
                Embedding.source_type == EmbeddingSource(source_type),
                Embedding.source_id == str(source_id),
            )
            .order_by(Embedding.model)
            .all()
        )

    def delete_for_source(self, source_type: EmbeddingSource, source_id) -> int:
        return (
            self.session.query(Embedding)
            .filter(
                Embedding.source_type == EmbeddingSource(source_type),
                Embedding.source_id == str(source_id),
            )
            .delete(synchronize_session=False)
        )
