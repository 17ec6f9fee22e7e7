"""
Event repository.

Read access to the append-only event log. Rows are only ever inserted by the
sync engine; the model rejects updates and deletes.
"""

from typing import List, Optional

from sqlalchemy import func

from chatledger.db.repositories.base import BaseRepository
from chatledger.exceptions import IntegrityViolation
from chatledger.models.db import Event


class EventRepository(BaseRepository[Event]):
    """Repository for Event model."""

    def __init__(self, uow):
        super().__init__(Event, uow)

    def max_version(self) -> int:
        return self.session.query(func.max(Event.version)).scalar() or 0

    def min_version(self) -> Optional[int]:
        return self.session.query(func.min(Event.version)).scalar()

    def since(self, from_version: int, limit: Optional[int] = None) -> List[Event]:
        """Events with version > from_version, oldest first."""
        query = (
            self.session.query(Event)
            .filter(Event.version > from_version)
            .order_by(Event.version)
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def for_entity(self, entity_type: str, entity_id) -> List[Event]:
        return (
            self.session.query(Event)
            .filter(Event.entity_type == entity_type, Event.entity_id == str(entity_id))
            .order_by(Event.version)
            .all()
        )

    def update(self, id, **kwargs):
        raise IntegrityViolation("Events are append-only")

    def delete(self, id) -> bool:
        raise IntegrityViolation("Events are append-only")
