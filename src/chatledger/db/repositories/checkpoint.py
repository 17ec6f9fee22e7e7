"""
Checkpoint repository.

Checkpoints are insert-only; the model rejects updates at flush time.
"""

import uuid
from typing import List, Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.exceptions import IntegrityViolation
from chatledger.models.db import Checkpoint
from chatledger.sync.serializers import checkpoint_to_dict


class CheckpointRepository(BaseRepository[Checkpoint]):
    """Repository for Checkpoint model."""

    def __init__(self, uow):
        super().__init__(Checkpoint, uow)

    def create(self, actor: Optional[str] = None, **kwargs) -> Checkpoint:
        """
        Insert a checkpoint and publish checkpoint.created.

        The checkpoint's `version` is the version of its own creation event.
        """
        version = self.uow.sync.next_version(self.uow)
        checkpoint = super().create(version=version, **kwargs)
        assigned = self.uow.append_event(
            "checkpoint.created",
            "checkpoint",
            checkpoint.id,
            checkpoint_to_dict(checkpoint),
            actor=actor,
        )
        if assigned != version:
            raise IntegrityViolation(
                f"Checkpoint version {version} does not match event version {assigned}"
            )
        return checkpoint

    def update(self, id, **kwargs):
        raise IntegrityViolation(f"Checkpoint {id} is immutable")

    def list_for_session(self, session_id: uuid.UUID) -> List[Checkpoint]:
        """Checkpoints of a session, oldest first."""
        return (
            self.session.query(Checkpoint)
            .filter(Checkpoint.session_id == session_id)
            .order_by(Checkpoint.created_at, Checkpoint.version)
            .all()
        )

    def latest_for_session(self, session_id: uuid.UUID) -> Optional[Checkpoint]:
        return (
            self.session.query(Checkpoint)
            .filter(Checkpoint.session_id == session_id)
            .order_by(Checkpoint.version.desc())
            .first()
        )
