"""
Client-originated event ingestion.

Remote writers do not append raw events for replicated entities: each
accepted client event is applied as the equivalent repository mutation,
which appends its own event(s) in the same transaction. Event types for
entities outside the replicated state (audit or orchestration notes) are
appended as-is.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from chatledger.checkpoints import create_checkpoint
from chatledger.db.store import Store, UnitOfWork
from chatledger.exceptions import IntegrityViolation, NotFoundError
from chatledger.sync.replay import COLLECTIONS
from chatledger.sync.serializers import event_to_dict

logger = logging.getLogger(__name__)

# Session attributes a client may change
CLIENT_SESSION_FIELDS = frozenset({"title", "archived", "is_agentic", "model"})
# Message attributes a client may change (content edits branch instead)
CLIENT_MESSAGE_FIELDS = frozenset({"model", "token_count", "metadata"})


@dataclass
class ClientEvent:
    """One event posted by a sync client."""

    event_type: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    actor: Optional[str] = None
    base_version: Optional[int] = None  # Client's view of the entity


def _uuid(value: Optional[str], entity_type: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(entity_type, value) from None


def _restricted(data: dict[str, Any], allowed: frozenset) -> dict[str, Any]:
    unknown = set(data) - allowed
    if unknown:
        raise IntegrityViolation(f"Fields not writable by clients: {sorted(unknown)}")
    if not data:
        raise IntegrityViolation("Update carries no fields")
    return dict(data)


def _check_base_version(
    uow: UnitOfWork, entity_type: str, event: ClientEvent
) -> None:
    if event.base_version is None or not event.entity_id:
        return
    history = uow.events.for_entity(entity_type, event.entity_id)
    if history and history[-1].version > event.base_version:
        raise IntegrityViolation(
            f"{entity_type} {event.entity_id} changed at version "
            f"{history[-1].version}, after the client's base version "
            f"{event.base_version}"
        )


def _session_updated(uow: UnitOfWork, event: ClientEvent) -> None:
    session_id = _uuid(event.entity_id, "session")
    chat_session = uow.sessions.get(session_id)
    if chat_session is None:
        raise NotFoundError("session", session_id)
    fields = _restricted(event.data, CLIENT_SESSION_FIELDS)
    uow.sessions.update(chat_session, actor=event.actor, **fields)


def _session_deleted(uow: UnitOfWork, event: ClientEvent) -> None:
    session_id = _uuid(event.entity_id, "session")
    if not uow.sessions.delete(session_id, actor=event.actor):
        raise NotFoundError("session", session_id)


def _message_updated(uow: UnitOfWork, event: ClientEvent) -> None:
    message_id = _uuid(event.entity_id, "message")
    message = uow.messages.get(message_id)
    if message is None:
        raise NotFoundError("message", message_id)
    fields = _restricted(event.data, CLIENT_MESSAGE_FIELDS)
    uow.messages.update(message, actor=event.actor, **fields)


def _checkpoint_created(uow: UnitOfWork, event: ClientEvent) -> None:
    session_id = _uuid(event.data.get("session_id"), "session")
    name = event.data.get("name")
    if not name:
        raise IntegrityViolation("checkpoint.created requires a name")
    create_checkpoint(
        uow,
        session_id,
        name,
        description=event.data.get("description"),
        git_commit=event.data.get("git_commit"),
        git_branch=event.data.get("git_branch"),
        metadata=event.data.get("metadata"),
        actor=event.actor,
    )


def _workspace_updated(uow: UnitOfWork, event: ClientEvent) -> None:
    workspace_id = _uuid(event.entity_id, "workspace")
    if uow.workspaces.get(workspace_id) is None:
        raise NotFoundError("workspace", workspace_id)
    fields = _restricted(event.data, frozenset({"name", "git_repo", "git_branch"}))
    uow.workspaces.update(workspace_id, actor=event.actor, **fields)


HANDLERS: dict[str, Callable[[UnitOfWork, ClientEvent], None]] = {
    "session.updated": _session_updated,
    "session.deleted": _session_deleted,
    "message.updated": _message_updated,
    "checkpoint.created": _checkpoint_created,
    "workspace.updated": _workspace_updated,
}


def apply_client_event(uow: UnitOfWork, event: ClientEvent) -> None:
    """
    Apply one client event inside the caller's unit of work.

    Raises:
        IntegrityViolation: Unsupported event for a replicated entity,
            non-writable fields, or a write based on a stale view
        NotFoundError: The target entity does not exist
    """
    entity_type = event.entity_type or event.event_type.split(".", 1)[0]
    if entity_type not in COLLECTIONS:
        uow.append_event(
            event.event_type,
            event.entity_type,
            event.entity_id,
            event.data,
            actor=event.actor,
        )
        return

    handler = HANDLERS.get(event.event_type)
    if handler is None:
        raise IntegrityViolation(
            f"Clients cannot submit {event.event_type!r} for {entity_type} entities"
        )
    _check_base_version(uow, entity_type, event)
    handler(uow, event)


def ingest_client_event(store: Store, event: ClientEvent) -> list[dict[str, Any]]:
    """
    Apply a client event in its own transaction.

    Returns:
        The events appended for it, in version order
    """

    def _ingest(uow: UnitOfWork) -> list[dict[str, Any]]:
        apply_client_event(uow, event)
        # Counter changes are published before the events are collected
        uow.finalize()
        return [event_to_dict(e) for e in uow.pending_events]

    events = store.run(_ingest)
    logger.info(
        f"Accepted client event {event.event_type} from {event.actor or 'anonymous'} "
        f"({len(events)} event(s) appended)"
    )
    return events
