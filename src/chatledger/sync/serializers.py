"""
Dictionary serializers for sync-relevant entities.

The same functions produce event payloads (at mutation time) and snapshot
rows (at read time), so a replayed event log and a snapshot compare equal.
"""

import uuid
from datetime import UTC, datetime
from typing import Any, Optional

from chatledger.models.db import ChatSession, Checkpoint, Event, Message, Workspace


def iso(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC; naive values (SQLite round-trips) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def uid(value: Optional[uuid.UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def workspace_to_dict(workspace: Workspace) -> dict[str, Any]:
    return {
        "id": uid(workspace.id),
        "name": workspace.name,
        "path": workspace.path,
        "provider": workspace.provider,
        "provider_workspace_id": workspace.provider_workspace_id,
        "git_repo": workspace.git_repo,
        "git_branch": workspace.git_branch,
        "created_at": iso(workspace.created_at),
        "updated_at": iso(workspace.updated_at),
        "metadata": dict(workspace.extra_data or {}),
    }


def session_to_dict(chat_session: ChatSession) -> dict[str, Any]:
    return {
        "id": uid(chat_session.id),
        "workspace_id": uid(chat_session.workspace_id),
        "agent_id": uid(chat_session.agent_id),
        "provider": chat_session.provider,
        "provider_session_id": chat_session.provider_session_id,
        "title": chat_session.title,
        "model": chat_session.model,
        "message_count": chat_session.message_count,
        "token_count": chat_session.token_count,
        "cost_estimate": chat_session.cost_estimate,
        "created_at": iso(chat_session.created_at),
        "updated_at": iso(chat_session.updated_at),
        "started_at": iso(chat_session.started_at),
        "archived": chat_session.archived,
        "is_agentic": chat_session.is_agentic,
        "parent_session_id": uid(chat_session.parent_session_id),
        "active_branch": chat_session.active_branch,
        "content_hash": chat_session.content_hash,
        "metadata": dict(chat_session.extra_data or {}),
    }


def message_to_dict(message: Message) -> dict[str, Any]:
    return {
        "id": uid(message.id),
        "session_id": uid(message.session_id),
        "role": message.role,
        "content": message.content,
        "model": message.model,
        "token_count": message.token_count,
        "created_at": iso(message.created_at),
        "timestamp": iso(message.timestamp),
        "parent_id": uid(message.parent_id),
        "branch_label": message.branch_label,
        "sequence_num": message.sequence_num,
        "content_hash": message.content_hash,
        "is_live": message.is_live,
        "metadata": dict(message.extra_data or {}),
    }


def checkpoint_to_dict(checkpoint: Checkpoint) -> dict[str, Any]:
    # The serialized session blob is served by the checkpoint API, not synced
    return {
        "id": uid(checkpoint.id),
        "session_id": uid(checkpoint.session_id),
        "name": checkpoint.name,
        "description": checkpoint.description,
        "message_id": uid(checkpoint.message_id),
        "message_count": checkpoint.message_count,
        "version": checkpoint.version,
        "created_at": iso(checkpoint.created_at),
        "git_commit": checkpoint.git_commit,
        "git_branch": checkpoint.git_branch,
        "metadata": dict(checkpoint.extra_data or {}),
    }


def event_to_dict(event: Event) -> dict[str, Any]:
    return {
        "id": event.id,
        "version": event.version,
        "event_type": event.event_type,
        "entity_type": event.entity_type,
        "entity_id": event.entity_id,
        "actor": event.actor,
        "data": event.data,
        "created_at": iso(event.created_at),
    }
