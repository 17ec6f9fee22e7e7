"""
Message repository.

Enforces the message-tree invariants on every insert: a parent must be an
existing message of the same session (so it was created strictly earlier
and no cycle can form), and `sequence_num` is gap-free per
(session, branch_label).
"""

import uuid
from typing import Any, Iterable, List, Optional

from sqlalchemy import func

from chatledger.db.repositories.base import BaseRepository
from chatledger.exceptions import IntegrityViolation
from chatledger.models.db import (
    MAIN_BRANCH,
    ChatSession,
    Embedding,
    EmbeddingSource,
    Message,
    MessageAttachment,
    MessageRole,
    ToolCall,
)
from chatledger.models.records import AttachmentPayload, ToolCallPayload
from chatledger.sync.serializers import message_to_dict
from chatledger.utils.hashing import calculate_content_hash, calculate_turn_hash

VALID_ROLES = frozenset(role.value for role in MessageRole)
# Attributes that may change after insert; content edits create branches
MUTABLE_FIELDS = frozenset({"model", "token_count", "extra_data"})


class MessageRepository(BaseRepository[Message]):
    """Repository for Message model."""

    def __init__(self, uow):
        super().__init__(Message, uow)

    def next_sequence(self, session_id: uuid.UUID, branch_label: str) -> Optional[int]:
        """Next sequence number on a branch, or None if the branch is empty."""
        current = (
            self.session.query(func.max(Message.sequence_num))
            .filter(
                Message.session_id == session_id,
                Message.branch_label == branch_label,
            )
            .scalar()
        )
        return None if current is None else current + 1

    def branch_labels(self, session_id: uuid.UUID) -> list[str]:
        rows = (
            self.session.query(Message.branch_label)
            .filter(Message.session_id == session_id)
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    def add(
        self,
        chat_session: ChatSession,
        *,
        role: str,
        content: str,
        branch_label: str = MAIN_BRANCH,
        parent_id: Optional[uuid.UUID] = None,
        sequence_num: Optional[int] = None,
        content_hash: Optional[str] = None,
        model: Optional[str] = None,
        token_count: Optional[int] = None,
        timestamp=None,
        is_live: bool = True,
        metadata: Optional[dict] = None,
        tool_calls: Iterable[ToolCallPayload] = (),
        attachments: Iterable[AttachmentPayload] = (),
        id: Optional[uuid.UUID] = None,
        actor: Optional[str] = None,
    ) -> Message:
        """
        Insert one message with its tool calls and attachments.

        Args:
            chat_session: Owning session
            role: 'user', 'assistant', 'system' or 'tool'
            content: Message text
            branch_label: Branch the message is written under
            parent_id: Parent message (must belong to the same session)
            sequence_num: Explicit position on the branch (validated)

        Returns:
            The flushed Message

        Raises:
            IntegrityViolation: Unknown role, foreign parent, or a sequence
                number that would leave a gap on the branch
        """
        if role not in VALID_ROLES:
            raise IntegrityViolation(f"Invalid message role {role!r}")

        parent: Optional[Message] = None
        if parent_id is not None:
            parent = self.get(parent_id)
            if parent is None or parent.session_id != chat_session.id:
                raise IntegrityViolation(
                    f"Parent message {parent_id} is not part of session "
                    f"{chat_session.id}"
                )

        expected = self.next_sequence(chat_session.id, branch_label)
        if expected is None:
            expected = parent.sequence_num + 1 if parent is not None else 0
            if sequence_num is not None and sequence_num < 0:
                raise IntegrityViolation("sequence_num must not be negative")
            sequence_num = expected if sequence_num is None else sequence_num
        elif sequence_num is None:
            sequence_num = expected
        elif sequence_num != expected:
            raise IntegrityViolation(
                f"sequence_num {sequence_num} on branch {branch_label!r} "
                f"would break ordering (expected {expected})"
            )

        tool_calls = list(tool_calls)
        if content_hash is None:
            content_hash = calculate_turn_hash(
                role, content, [tc.to_dict() for tc in tool_calls] or None
            )

        self.uow.mark_session_dirty(chat_session)
        message = self.create(
            **({"id": id} if id is not None else {}),
            session_id=chat_session.id,
            role=role,
            content=content,
            model=model,
            token_count=token_count,
            timestamp=timestamp,
            parent_id=parent_id,
            branch_label=branch_label,
            sequence_num=sequence_num,
            content_hash=content_hash,
            is_live=is_live,
            extra_data=metadata or {},
        )

        for payload in tool_calls:
            self.session.add(
                ToolCall(
                    message_id=message.id,
                    session_id=chat_session.id,
                    tool_name=payload.tool_name,
                    arguments=payload.arguments,
                    result=payload.result,
                    success=payload.success,
                )
            )
        for attachment in attachments:
            body = attachment.content or attachment.url or ""
            self.session.add(
                MessageAttachment(
                    message_id=message.id,
                    type=attachment.type,
                    name=attachment.name,
                    mime_type=attachment.mime_type,
                    size_bytes=len(attachment.content.encode("utf-8"))
                    if attachment.content is not None
                    else None,
                    content=attachment.content,
                    url=attachment.url,
                    checksum=calculate_content_hash(body),
                )
            )
        self.session.flush()

        self.uow.search.index("message", message.id, content=content)
        self.uow.append_event(
            "message.created",
            "message",
            message.id,
            message_to_dict(message),
            actor=actor,
        )
        return message

    def set_live(
        self, message: Message, is_live: bool, actor: Optional[str] = None
    ) -> bool:
        """Move a message on or off the active path. Returns True if changed."""
        if message.is_live == is_live:
            return False
        chat_session = self.session.get(ChatSession, message.session_id)
        self.uow.mark_session_dirty(chat_session)
        message.is_live = is_live
        self.session.flush()
        self.uow.append_event(
            "message.updated",
            "message",
            message.id,
            message_to_dict(message),
            actor=actor,
        )
        return True

    def update(
        self, message: Message, actor: Optional[str] = None, **fields: Any
    ) -> Message:
        """
        Update mutable message attributes (model, token_count, metadata).

        Raises:
            IntegrityViolation: For content, role, tree or ordering fields
        """
        if "metadata" in fields:
            fields["extra_data"] = fields.pop("metadata")
        immutable = set(fields) - MUTABLE_FIELDS
        if immutable:
            raise IntegrityViolation(
                f"Message fields cannot be changed in place: {sorted(immutable)}"
            )
        changed = {k: v for k, v in fields.items() if getattr(message, k) != v}
        if not changed:
            return message

        chat_session = self.session.get(ChatSession, message.session_id)
        self.uow.mark_session_dirty(chat_session)
        for key, value in changed.items():
            setattr(message, key, value)
        self.session.flush()
        self.uow.append_event(
            "message.updated",
            "message",
            message.id,
            message_to_dict(message),
            actor=actor,
        )
        return message

    def delete(self, id: uuid.UUID, actor: Optional[str] = None) -> bool:
        """
        Delete one message.

        Children are kept and detached (parent_id set to NULL, published as
        message.updated); attachments, tool calls, embeddings and the index
        row go with the message.
        """
        message = self.get(id)
        if message is None:
            return False

        chat_session = self.session.get(ChatSession, message.session_id)
        self.uow.mark_session_dirty(chat_session)

        for child in self.children(id):
            child.parent_id = None
            self.session.flush()
            self.uow.append_event(
                "message.updated",
                "message",
                child.id,
                message_to_dict(child),
                actor=actor,
            )

        self.session.query(MessageAttachment).filter(
            MessageAttachment.message_id == id
        ).delete(synchronize_session=False)
        self.session.query(ToolCall).filter(ToolCall.message_id == id).delete(
            synchronize_session=False
        )
        self.session.query(Embedding).filter(
            Embedding.source_type == EmbeddingSource.MESSAGE,
            Embedding.source_id == str(id),
        ).delete(synchronize_session=False)
        self.uow.search.remove("message", id)
        self.session.expire(message, ["attachments", "tool_calls"])
        self.session.delete(message)
        self.session.flush()
        self.uow.append_event(
            "message.deleted", "message", id, {"id": str(id)}, actor=actor
        )
        return True

    def get_for_session(
        self, session_id: uuid.UUID, branch_label: Optional[str] = None
    ) -> List[Message]:
        """All messages of a session (optionally one branch), in branch order."""
        query = self.session.query(Message).filter(Message.session_id == session_id)
        if branch_label is not None:
            query = query.filter(Message.branch_label == branch_label)
        return query.order_by(
            Message.branch_label, Message.sequence_num
        ).all()

    def children(self, message_id: uuid.UUID) -> List[Message]:
        return (
            self.session.query(Message)
            .filter(Message.parent_id == message_id)
            .order_by(Message.created_at)
            .all()
        )

    def roots(self, session_id: uuid.UUID) -> List[Message]:
        return (
            self.session.query(Message)
            .filter(Message.session_id == session_id, Message.parent_id.is_(None))
            .order_by(Message.created_at)
            .all()
        )

    def path_to(self, message: Message) -> List[Message]:
        """Messages from the root down to (and including) `message`."""
        path = [message]
        seen = {message.id}
        current = message
        while current.parent_id is not None:
            current = self.get(current.parent_id)
            if current is None or current.id in seen:
                raise IntegrityViolation(f"Broken parent chain at message {message.id}")
            seen.add(current.id)
            path.append(current)
        path.reverse()
        return path

    def live_path(self, session_id: uuid.UUID) -> List[Message]:
        """The session's active path, root first."""
        live = (
            self.session.query(Message)
            .filter(Message.session_id == session_id, Message.is_live.is_(True))
            .all()
        )
        if not live:
            return []
        live_parents = {m.parent_id for m in live if m.parent_id is not None}
        leaves = [m for m in live if m.id not in live_parents]
        leaf = max(leaves, key=lambda m: m.sequence_num)
        return self.path_to(leaf)

    def count_for_session(self, session_id: uuid.UUID, live_only: bool = False) -> int:
        query = self.session.query(func.count(Message.id)).filter(
            Message.session_id == session_id
        )
        if live_only:
            query = query.filter(Message.is_live.is_(True))
        return query.scalar() or 0
