"""
API schemas for chatledger.

Pydantic models for request/response validation. Sync payloads are
consumed by remote clients and use camelCase field names on the wire.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

# ===== Sync Schemas =====


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, emits camelCase."""

    class Config:
        populate_by_name = True


class VersionResponse(BaseModel):
    version: int


class EventResponse(CamelModel):
    """One entry of the event log."""

    id: int
    version: int
    event_type: str = Field(alias="eventType")
    entity_type: Optional[str] = Field(default=None, alias="entityType")
    entity_id: Optional[str] = Field(default=None, alias="entityId")
    actor: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class DeltaResponse(CamelModel):
    """Events after a client's cursor."""

    from_version: int = Field(alias="fromVersion")
    to_version: int = Field(alias="toVersion")
    current_version: int = Field(alias="currentVersion")
    has_more: bool = Field(alias="hasMore")
    events: list[EventResponse]


class SnapshotResponse(CamelModel):
    """Full bootstrap state at one version."""

    version: int
    workspaces: list[dict[str, Any]]
    sessions: list[dict[str, Any]]
    messages: list[dict[str, Any]]
    checkpoints: list[dict[str, Any]]


class ClientEventRequest(CamelModel):
    """Event submitted by a sync client."""

    event_type: str = Field(alias="eventType", min_length=1)
    entity_type: Optional[str] = Field(default=None, alias="entityType")
    entity_id: Optional[str] = Field(default=None, alias="entityId")
    data: dict[str, Any] = Field(default_factory=dict)
    actor: Optional[str] = None
    base_version: Optional[int] = Field(default=None, alias="baseVersion")


class ClientEventResponse(CamelModel):
    accepted: bool = True
    version: int
    events: list[EventResponse]


# ===== Session Schemas =====


class SessionResponse(BaseModel):
    """Response schema for Session."""

    id: str
    workspace_id: Optional[str] = None
    agent_id: Optional[str] = None
    provider: str
    provider_session_id: Optional[str] = None
    title: str
    model: Optional[str] = None
    message_count: int
    token_count: int
    cost_estimate: float = 0.0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    started_at: Optional[str] = None
    archived: bool
    is_agentic: bool
    parent_session_id: Optional[str] = None
    active_branch: str
    content_hash: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionListResponse(BaseModel):
    items: list[SessionResponse]
    total: int


class MessageResponse(BaseModel):
    """Response schema for Message."""

    id: str
    session_id: str
    role: str
    content: str
    model: Optional[str] = None
    token_count: Optional[int] = None
    created_at: Optional[str] = None
    timestamp: Optional[str] = None
    parent_id: Optional[str] = None
    branch_label: str
    sequence_num: int
    content_hash: Optional[str] = None
    is_live: bool
    metadata: dict[str, Any] = Field(default_factory=dict)


class BranchResponse(BaseModel):
    label: str
    message_count: int
    live_count: int
    first_sequence: Optional[int] = None
    last_sequence: Optional[int] = None


# ===== Checkpoint Schemas =====


class CheckpointCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    git_commit: Optional[str] = None
    git_branch: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CheckpointResponse(BaseModel):
    """Checkpoint metadata (the frozen state is served separately)."""

    id: str
    session_id: str
    name: str
    description: Optional[str] = None
    message_id: Optional[str] = None
    message_count: int
    version: int
    created_at: Optional[str] = None
    git_commit: Optional[str] = None
    git_branch: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ===== Search Schemas =====


class SearchHitResponse(BaseModel):
    kind: str
    entity_id: str
    score: float
    entity: dict[str, Any]


class SearchResponse(BaseModel):
    query: str
    kind: str
    hits: list[SearchHitResponse]
