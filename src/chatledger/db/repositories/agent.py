"""
Agent repository.
"""

import uuid
from typing import Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import Agent, AgentTag, ChatSession, Memory, Workflow, utc_now


class AgentRepository(BaseRepository[Agent]):
    """Repository for Agent model."""

    def __init__(self, uow):
        super().__init__(Agent, uow)

    def get_by_name(self, name: str) -> Optional[Agent]:
        return self.session.query(Agent).filter(Agent.name == name).first()

    def update(self, id: uuid.UUID, **kwargs) -> Optional[Agent]:
        kwargs.setdefault("updated_at", utc_now())
        return super().update(id, **kwargs)

    def delete(self, id: uuid.UUID, actor: Optional[str] = None) -> bool:
        """
        Delete an agent.

        Sessions, memories and workflows that reference it are kept with the
        reference set to NULL; sessions publish session.updated.
        """
        agent = self.get(id)
        if agent is None:
            return False

        sessions = (
            self.session.query(ChatSession).filter(ChatSession.agent_id == id).all()
        )
        for chat_session in sessions:
            self.uow.sessions.update(chat_session, actor=actor, agent_id=None)

        self.session.query(Memory).filter(Memory.agent_id == id).update(
            {Memory.agent_id: None}, synchronize_session=False
        )
        self.session.query(Workflow).filter(Workflow.root_agent_id == id).update(
            {Workflow.root_agent_id: None}, synchronize_session=False
        )
        self.session.query(Workflow).filter(Workflow.current_agent_id == id).update(
            {Workflow.current_agent_id: None}, synchronize_session=False
        )
        self.session.query(AgentTag).filter(AgentTag.agent_id == id).delete(
            synchronize_session=False
        )
        self.session.delete(agent)
        self.session.flush()
        return True
