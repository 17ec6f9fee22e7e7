"""
Session repository.

Owns the derived counters on sessions: `message_count` and `token_count`
are recomputed from live messages inside the unit of work that changed them
and can never be set directly.
"""

import uuid
from datetime import UTC, datetime
from typing import Any, List, Optional

from sqlalchemy import case, func

from chatledger.db.repositories.base import BaseRepository
from chatledger.exceptions import IntegrityViolation
from chatledger.models.db import (
    ChatSession,
    Checkpoint,
    Embedding,
    EmbeddingSource,
    ImportSource,
    Memory,
    Message,
    MessageAttachment,
    SessionTag,
    ShareLink,
    ToolCall,
    Workflow,
    utc_now,
)
from chatledger.sync.serializers import session_to_dict

DERIVED_FIELDS = frozenset({"message_count", "token_count"})
# Fields that are not part of a session's observable change set
_VOLATILE_FIELDS = ("updated_at",)


def _same_instant(a: Optional[datetime], b: Optional[datetime]) -> bool:
    if a is None or b is None:
        return a is b
    if a.tzinfo is None:
        a = a.replace(tzinfo=UTC)
    if b.tzinfo is None:
        b = b.replace(tzinfo=UTC)
    return a == b


def _comparable(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in _VOLATILE_FIELDS}


class SessionRepository(BaseRepository[ChatSession]):
    """Repository for ChatSession model."""

    def __init__(self, uow):
        super().__init__(ChatSession, uow)

    def get_by_provider_id(
        self,
        provider: str,
        provider_session_id: str,
        workspace_id: Optional[uuid.UUID] = None,
    ) -> Optional[ChatSession]:
        """
        Get a session by its provider-native id.

        Args:
            provider: Provider name
            provider_session_id: Provider-native session identifier
            workspace_id: Restrict the lookup to one workspace

        Returns:
            ChatSession instance or None
        """
        query = self.session.query(ChatSession).filter(
            ChatSession.provider == provider,
            ChatSession.provider_session_id == provider_session_id,
        )
        if workspace_id is not None:
            query = query.filter(ChatSession.workspace_id == workspace_id)
        return query.order_by(ChatSession.created_at).first()

    def find_by_heuristic(
        self,
        provider: str,
        title: str,
        model: Optional[str],
        started_at: Optional[datetime],
        workspace_id: Optional[uuid.UUID] = None,
    ) -> Optional[ChatSession]:
        """
        Match a session without a provider id by title, model and start time.

        Only sessions that also lack a provider id are candidates.
        """
        query = self.session.query(ChatSession).filter(
            ChatSession.provider == provider,
            ChatSession.provider_session_id.is_(None),
            ChatSession.title == title,
        )
        if model is not None:
            query = query.filter(ChatSession.model == model)
        else:
            query = query.filter(ChatSession.model.is_(None))
        if workspace_id is not None:
            query = query.filter(ChatSession.workspace_id == workspace_id)

        for candidate in query.order_by(ChatSession.created_at).all():
            if _same_instant(candidate.started_at, started_at):
                return candidate
        return None

    def list_sessions(
        self,
        workspace_id: Optional[uuid.UUID] = None,
        provider: Optional[str] = None,
        archived: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ChatSession]:
        """List sessions, newest first, with optional filters."""
        query = self.session.query(ChatSession)
        if workspace_id is not None:
            query = query.filter(ChatSession.workspace_id == workspace_id)
        if provider is not None:
            query = query.filter(ChatSession.provider == provider)
        if archived is not None:
            query = query.filter(ChatSession.archived == archived)
        query = query.order_by(ChatSession.created_at.desc()).offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def create(self, actor: Optional[str] = None, **kwargs: Any) -> ChatSession:
        """Create a session (counters start at zero) and publish session.created."""
        derived = DERIVED_FIELDS.intersection(kwargs)
        if derived:
            raise IntegrityViolation(
                f"Derived fields cannot be set directly: {sorted(derived)}"
            )
        chat_session = super().create(**kwargs)
        self.uow.append_event(
            "session.created",
            "session",
            chat_session.id,
            session_to_dict(chat_session),
            actor=actor,
        )
        return chat_session

    def update(
        self, chat_session: ChatSession, actor: Optional[str] = None, **fields: Any
    ) -> ChatSession:
        """
        Update plain session attributes and publish session.updated.

        Raises:
            IntegrityViolation: If a derived counter is passed
        """
        derived = DERIVED_FIELDS.intersection(fields)
        if derived:
            raise IntegrityViolation(
                f"Derived fields cannot be set directly: {sorted(derived)}"
            )
        before = _comparable(session_to_dict(chat_session))
        for key, value in fields.items():
            setattr(chat_session, key, value)
        if _comparable(session_to_dict(chat_session)) == before:
            return chat_session

        chat_session.updated_at = utc_now()
        self.session.flush()
        self.uow.append_event(
            "session.updated",
            "session",
            chat_session.id,
            session_to_dict(chat_session),
            actor=actor,
        )
        self.uow.reset_session_baseline(chat_session)
        return chat_session

    def stage(self, chat_session: ChatSession, **fields: Any) -> None:
        """
        Change attributes without publishing yet.

        The change is published together with the recomputed counters when
        the unit of work finalizes (one session.updated at most).
        """
        derived = DERIVED_FIELDS.intersection(fields)
        if derived:
            raise IntegrityViolation(
                f"Derived fields cannot be set directly: {sorted(derived)}"
            )
        self.uow.mark_session_dirty(chat_session)
        for key, value in fields.items():
            setattr(chat_session, key, value)

    def compute_counters(self, session_id: uuid.UUID) -> tuple[int, int]:
        """Return (live message count, sum of live non-null token counts)."""
        count, tokens = (
            self.session.query(
                func.count(Message.id), func.coalesce(func.sum(Message.token_count), 0)
            )
            .filter(Message.session_id == session_id, Message.is_live.is_(True))
            .one()
        )
        return int(count), int(tokens)

    def publish_derived(
        self, chat_session: ChatSession, baseline: dict[str, Any]
    ) -> bool:
        """
        Recompute counters and publish session.updated if anything changed.

        Returns:
            True if an event was appended
        """
        count, tokens = self.compute_counters(chat_session.id)
        chat_session.message_count = count
        chat_session.token_count = tokens
        if _comparable(session_to_dict(chat_session)) == _comparable(baseline):
            return False

        chat_session.updated_at = utc_now()
        self.session.flush()
        self.uow.append_event(
            "session.updated",
            "session",
            chat_session.id,
            session_to_dict(chat_session),
        )
        return True

    def delete(self, id: uuid.UUID, actor: Optional[str] = None) -> bool:
        """
        Delete a session and everything it owns.

        Messages (with attachments, tool calls and their index rows),
        checkpoints, workflows, import provenance and tag links are deleted;
        memories, share links and forked child sessions keep existing with
        their reference set to NULL.
        """
        chat_session = self.get(id)
        if chat_session is None:
            return False

        message_ids = [
            row[0]
            for row in self.session.query(Message.id).filter(Message.session_id == id)
        ]
        self.uow.search.remove_many("message", message_ids)
        if message_ids:
            self.session.query(MessageAttachment).filter(
                MessageAttachment.message_id.in_(message_ids)
            ).delete(synchronize_session=False)
            self.session.query(Embedding).filter(
                Embedding.source_type == EmbeddingSource.MESSAGE,
                Embedding.source_id.in_([str(mid) for mid in message_ids]),
            ).delete(synchronize_session=False)
        self.session.query(ToolCall).filter(ToolCall.session_id == id).delete(
            synchronize_session=False
        )
        self.session.query(Message).filter(Message.session_id == id).update(
            {Message.parent_id: None}, synchronize_session=False
        )
        self.session.query(Message).filter(Message.session_id == id).delete(
            synchronize_session=False
        )
        for model in (Checkpoint, Workflow, ImportSource, SessionTag):
            self.session.query(model).filter(model.session_id == id).delete(
                synchronize_session=False
            )
        for model in (Memory, ShareLink):
            self.session.query(model).filter(model.session_id == id).update(
                {model.session_id: None}, synchronize_session=False
            )

        children = (
            self.session.query(ChatSession)
            .filter(ChatSession.parent_session_id == id)
            .all()
        )
        for child in children:
            self.update(child, actor=actor, parent_session_id=None)

        self.uow.forget_session(id)
        # Owned rows are already gone; keep the ORM from revisiting them
        self.session.expire(chat_session, ["messages", "checkpoints"])
        self.session.delete(chat_session)
        self.session.flush()
        self.uow.append_event(
            "session.deleted", "session", id, {"id": str(id)}, actor=actor
        )
        return True

    def branches(self, session_id: uuid.UUID) -> list[dict[str, Any]]:
        """
        Summarize the branches of a session.

        Returns:
            One entry per branch label: message count, live count and the
            sequence range, ordered by first creation.
        """
        rows = (
            self.session.query(
                Message.branch_label,
                func.count(Message.id),
                func.sum(case((Message.is_live.is_(True), 1), else_=0)),
                func.min(Message.sequence_num),
                func.max(Message.sequence_num),
                func.min(Message.created_at),
            )
            .filter(Message.session_id == session_id)
            .group_by(Message.branch_label)
            .order_by(func.min(Message.created_at))
            .all()
        )
        return [
            {
                "label": label,
                "message_count": int(count),
                "live_count": int(live or 0),
                "first_sequence": first,
                "last_sequence": last,
            }
            for label, count, live, first, last, _created in rows
        ]
