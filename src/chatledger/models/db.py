"""
SQLAlchemy database models for chatledger.

These models represent the canonical, provider-neutral schema that all
harvested chat sessions are normalized into, plus the append-only event log
that drives incremental sync.
"""

import enum
import uuid
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from chatledger.exceptions import IntegrityViolation

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")

MAIN_BRANCH = "main"


def utc_now() -> datetime:
    """Current UTC time (microsecond precision, used for ordering)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class MessageRole(str, enum.Enum):
    """Role of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class EmbeddingSource(str, enum.Enum):
    """Kinds of rows an embedding can be attached to."""

    MESSAGE = "message"
    MEMORY = "memory"
    DOCUMENT = "document"
    CHUNK = "chunk"


class Workspace(Base):
    """Logical project grouping for sessions."""

    __tablename__ = "workspaces"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    provider: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, index=True
    )  # Primary provider for this workspace
    provider_workspace_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    git_repo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    git_branch: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    sessions: Mapped[list["ChatSession"]] = relationship(back_populates="workspace")

    def __repr__(self) -> str:
        return f"<Workspace(id={self.id}, name={self.name!r}, path={self.path!r})>"


class Agent(Base):
    """Reusable agent configuration referenced by sessions and memories."""

    __tablename__ = "agents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    instruction: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="assistant")
    model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, index=True
    )
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=0.7)
    max_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tools: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    sub_agents: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, name={self.name!r})>"


class ChatSession(Base):
    """One conversation harvested from a provider (table: sessions)."""

    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="SET NULL"), nullable=True, index=True
    )
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True, index=True
    )
    provider: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    provider_session_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Derived from live messages; only written by the session repository
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_estimate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # Earliest turn timestamp (identity heuristic)
    archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    is_agentic: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    parent_session_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )  # Forked sessions

    # Branch whose path currently holds the live messages
    active_branch: Mapped[str] = mapped_column(
        String(100), nullable=False, default=MAIN_BRANCH
    )
    # Checksum of the last reconciled provider turn sequence
    content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    __table_args__ = (
        Index("idx_sessions_provider_session", "provider", "provider_session_id"),
    )

    workspace: Mapped[Optional["Workspace"]] = relationship(back_populates="sessions")
    messages: Mapped[list["Message"]] = relationship(
        back_populates="session",
        order_by="Message.created_at",
        passive_deletes=True,
    )
    checkpoints: Mapped[list["Checkpoint"]] = relationship(
        back_populates="session",
        order_by="Checkpoint.version",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ChatSession(id={self.id}, "
            f"provider={self.provider!r}, "
            f"provider_session_id={self.provider_session_id!r})>"
        )


class Message(Base):
    """One conversation turn."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    token_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
    timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # Provider-reported turn time
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True, index=True
    )
    branch_label: Mapped[str] = mapped_column(
        String(100), nullable=False, default=MAIN_BRANCH
    )
    sequence_num: Mapped[int] = mapped_column(Integer, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    is_live: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint(
            "session_id", "branch_label", "sequence_num", name="uq_message_branch_seq"
        ),
        Index("idx_messages_branch", "session_id", "branch_label", "sequence_num"),
    )

    session: Mapped["ChatSession"] = relationship(back_populates="messages")
    attachments: Mapped[list["MessageAttachment"]] = relationship(
        back_populates="message", passive_deletes=True
    )
    tool_calls: Mapped[list["ToolCall"]] = relationship(
        back_populates="message", passive_deletes=True
    )

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, role={self.role!r}, "
            f"branch={self.branch_label!r}, seq={self.sequence_num})>"
        )


class MessageAttachment(Base):
    """File, image or URL attached to a message."""

    __tablename__ = "message_attachments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    message_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    message: Mapped["Message"] = relationship(back_populates="attachments")


class ToolCall(Base):
    """Tool invocation recorded on an assistant message."""

    __tablename__ = "tool_calls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    message_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tool_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    arguments: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    success: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    message: Mapped["Message"] = relationship(back_populates="tool_calls")


class Workflow(Base):
    """Multi-agent workflow execution linked to a session."""

    __tablename__ = "workflows"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # 'sequential', 'parallel', 'loop', 'swarm'
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="pending", index=True
    )
    root_agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True
    )
    current_agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True
    )
    iteration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_iterations: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    state: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )


class Memory(Base):
    """Long-term knowledge entry, optionally tied to an agent/session/workspace."""

    __tablename__ = "memories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="semantic", index=True
    )
    source: Mapped[str] = mapped_column(
        String(50), nullable=False, default="conversation", index=True
    )
    importance: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    access_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True, index=True
    )
    session_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    workspace_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="SET NULL"), nullable=True, index=True
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )


class Embedding(Base):
    """Vector for one (source kind, source id, model) triple."""

    __tablename__ = "embeddings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_type: Mapped[EmbeddingSource] = mapped_column(
        Enum(
            EmbeddingSource,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    source_id: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    dimensions: Mapped[int] = mapped_column(Integer, nullable=False)
    vector: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint(
            "source_type", "source_id", "model", name="uq_embedding_source_model"
        ),
        Index("idx_embeddings_source", "source_type", "source_id"),
    )


class Document(Base):
    """Knowledge-base document, deduplicated by content hash."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # 'text', 'markdown', 'pdf', 'code', 'url'
    source_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_hash: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    token_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_indexed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    chunks: Mapped[list["DocumentChunk"]] = relationship(
        back_populates="document",
        order_by="DocumentChunk.chunk_index",
        passive_deletes=True,
    )


class DocumentChunk(Base):
    """Positioned slice of a document's content."""

    __tablename__ = "document_chunks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_offset: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_offset: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_document_chunk_index"),
    )

    document: Mapped["Document"] = relationship(back_populates="chunks")


class Checkpoint(Base):
    """Immutable point-in-time snapshot of a session."""

    __tablename__ = "checkpoints"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True
    )  # Stamped value, not a foreign key: checkpoints never change
    message_count: Mapped[int] = mapped_column(Integer, nullable=False)
    session_snapshot: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(
        Integer, nullable=False
    )  # Sync version of the checkpoint.created event
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
    git_commit: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    git_branch: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )

    session: Mapped["ChatSession"] = relationship(back_populates="checkpoints")

    def __repr__(self) -> str:
        return f"<Checkpoint(id={self.id}, name={self.name!r}, version={self.version})>"


class ShareLink(Base):
    """Shared-conversation URL and the session it was imported into."""

    __tablename__ = "share_links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True
    )
    provider: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    share_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    imported: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    imported_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )


class ImportSource(Base):
    """Provenance of one (re-)import of a session."""

    __tablename__ = "import_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # 'file', 'database', 'api', 'share_link'
    source_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_provider: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    import_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    extra_data: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )


class Tag(Base):
    """Organizational label."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    color: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class SessionTag(Base):
    __tablename__ = "session_tags"

    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class AgentTag(Base):
    __tablename__ = "agent_tags"

    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class DocumentTag(Base):
    __tablename__ = "document_tags"

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )


class Event(Base):
    """
    Append-only change record.

    Written only by the sync engine, inside the same transaction as the
    mutation it describes. `version` is the global sync counter.
    """

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    actor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )

    __table_args__ = (Index("idx_events_entity", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return (
            f"<Event(version={self.version}, type={self.event_type!r}, "
            f"entity={self.entity_type}:{self.entity_id})>"
        )


@event.listens_for(Checkpoint, "before_update")
def _reject_checkpoint_update(mapper, connection, target) -> None:
    raise IntegrityViolation(f"Checkpoint {target.id} is immutable")


@event.listens_for(Event, "before_update")
def _reject_event_update(mapper, connection, target) -> None:
    raise IntegrityViolation(f"Event {target.version} is append-only")


@event.listens_for(Event, "before_delete")
def _reject_event_delete(mapper, connection, target) -> None:
    raise IntegrityViolation(f"Event {target.version} is append-only")
