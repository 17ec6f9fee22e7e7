"""
Workflow repository.

Creating a workflow for a session marks the session agentic in the same
unit of work.
"""

import uuid
from typing import List, Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.exceptions import NotFoundError
from chatledger.models.db import ChatSession, Workflow


class WorkflowRepository(BaseRepository[Workflow]):
    """Repository for Workflow model."""

    def __init__(self, uow):
        super().__init__(Workflow, uow)

    def create(self, actor: Optional[str] = None, **kwargs) -> Workflow:
        session_id = kwargs.get("session_id")
        chat_session = self.session.get(ChatSession, session_id) if session_id else None
        if chat_session is None:
            raise NotFoundError("session", session_id)
        if "metadata" in kwargs:
            kwargs["extra_data"] = kwargs.pop("metadata")

        workflow = super().create(**kwargs)
        self.uow.sessions.update(chat_session, actor=actor, is_agentic=True)
        return workflow

    def list_for_session(self, session_id: uuid.UUID) -> List[Workflow]:
        return (
            self.session.query(Workflow)
            .filter(Workflow.session_id == session_id)
            .order_by(Workflow.created_at)
            .all()
        )
