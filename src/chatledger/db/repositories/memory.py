"""
Memory repository.
"""

import uuid
from typing import List, Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import Embedding, EmbeddingSource, Memory, utc_now


class MemoryRepository(BaseRepository[Memory]):
    """Repository for Memory model; content is kept in the full-text index."""

    def __init__(self, uow):
        super().__init__(Memory, uow)

    def create(self, **kwargs) -> Memory:
        if "metadata" in kwargs:
            kwargs["extra_data"] = kwargs.pop("metadata")
        memory = super().create(**kwargs)
        self.uow.search.index("memory", memory.id, content=memory.content)
        return memory

    def update_content(self, memory: Memory, content: str) -> Memory:
        memory.content = content
        self.session.flush()
        self.uow.search.index("memory", memory.id, content=content)
        return memory

    def touch(self, memory: Memory) -> Memory:
        """Record an access."""
        memory.access_count += 1
        memory.last_accessed = utc_now()
        self.session.flush()
        return memory

    def list_for_agent(self, agent_id: uuid.UUID) -> List[Memory]:
        return (
            self.session.query(Memory)
            .filter(Memory.agent_id == agent_id)
            .order_by(Memory.importance.desc(), Memory.created_at)
            .all()
        )

    def list_for_session(self, session_id: uuid.UUID) -> List[Memory]:
        return (
            self.session.query(Memory)
            .filter(Memory.session_id == session_id)
            .order_by(Memory.created_at)
            .all()
        )

    def delete(self, id: uuid.UUID) -> bool:
        memory: Optional[Memory] = self.get(id)
        if memory is None:
            return False
        self.session.query(Embedding).filter(
            Embedding.source_type == EmbeddingSource.MEMORY,
            Embedding.source_id == str(id),
        ).delete(synchronize_session=False)
        self.uow.search.remove("memory", id)
        self.session.delete(memory)
        self.session.flush()
        return True
