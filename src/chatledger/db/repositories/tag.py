"""
Tag repository.

Tagging is idempotent: a (entity, tag) pair is stored at most once.
"""

import uuid
from typing import List, Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import AgentTag, DocumentTag, SessionTag, Tag

_JOIN_TABLES = {
    "session": (SessionTag, "session_id"),
    "agent": (AgentTag, "agent_id"),
    "document": (DocumentTag, "document_id"),
}


class TagRepository(BaseRepository[Tag]):
    """Repository for Tag model and its join tables."""

    def __init__(self, uow):
        super().__init__(Tag, uow)

    def _join(self, entity_type: str):
        try:
            return _JOIN_TABLES[entity_type]
        except KeyError:
            raise ValueError(
                f"Cannot tag {entity_type!r}; expected one of {sorted(_JOIN_TABLES)}"
            ) from None

    def get_by_name(self, name: str) -> Optional[Tag]:
        return self.session.query(Tag).filter(Tag.name == name).first()

    def get_or_create(self, name: str, color: Optional[str] = None) -> Tag:
        tag = self.get_by_name(name)
        if tag is None:
            tag = self.create(name=name, color=color)
        return tag

    def tag(self, entity_type: str, entity_id: uuid.UUID, name: str) -> bool:
        """
        Attach a tag to an entity.

        Returns:
            True if a new link was created, False if it already existed
        """
        model, column = self._join(entity_type)
        tag = self.get_or_create(name)
        exists = (
            self.session.query(model)
            .filter(getattr(model, column) == entity_id, model.tag_id == tag.id)
            .first()
        )
        if exists is not None:
            return False
        self.session.add(model(**{column: entity_id, "tag_id": tag.id}))
        self.session.flush()
        return True

    def untag(self, entity_type: str, entity_id: uuid.UUID, name: str) -> bool:
        model, column = self._join(entity_type)
        tag = self.get_by_name(name)
        if tag is None:
            return False
        deleted = (
            self.session.query(model)
            .filter(getattr(model, column) == entity_id, model.tag_id == tag.id)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    def tags_for(self, entity_type: str, entity_id: uuid.UUID) -> List[str]:
        model, column = self._join(entity_type)
        rows = (
            self.session.query(Tag.name)
            .join(model, model.tag_id == Tag.id)
            .filter(getattr(model, column) == entity_id)
            .order_by(Tag.name)
            .all()
        )
        return [row[0] for row in rows]
