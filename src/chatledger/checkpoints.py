"""
Checkpoint (version snapshot) service.

A checkpoint freezes a session's full state at one point in time: the
session row, every message on every branch (with its live flag), branch
summaries and tags. Checkpoints are never modified; restoring from one is
left to the caller, who can read the frozen state with `load_snapshot()`.
"""

import json
import logging
import uuid
from typing import Any, Optional

from chatledger.db.store import Store, UnitOfWork
from chatledger.exceptions import NotFoundError
from chatledger.models.db import Checkpoint
from chatledger.sync.serializers import message_to_dict, session_to_dict

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = 1


def build_session_state(uow: UnitOfWork, session_id: uuid.UUID) -> dict[str, Any]:
    """Serializable state of one session as stored right now."""
    chat_session = uow.sessions.get(session_id)
    if chat_session is None:
        raise NotFoundError("session", session_id)
    messages = uow.messages.get_for_session(session_id)
    return {
        "format": SNAPSHOT_FORMAT,
        "session": session_to_dict(chat_session),
        "messages": [message_to_dict(m) for m in messages],
        "branches": uow.sessions.branches(session_id),
        "tags": uow.tags.tags_for("session", session_id),
    }


def create_checkpoint(
    uow: UnitOfWork,
    session_id: uuid.UUID,
    name: str,
    description: Optional[str] = None,
    git_commit: Optional[str] = None,
    git_branch: Optional[str] = None,
    metadata: Optional[dict] = None,
    actor: Optional[str] = None,
) -> Checkpoint:
    """
    Snapshot a session inside the caller's unit of work.

    The checkpoint is stamped with the last message on the session's live
    path and its current live message count.

    Raises:
        NotFoundError: If the session does not exist
    """
    # Publish pending counter changes so the snapshot sees final values
    uow.finalize()
    state = build_session_state(uow, session_id)
    live_path = uow.messages.live_path(session_id)
    checkpoint = uow.checkpoints.create(
        session_id=session_id,
        name=name,
        description=description,
        message_id=live_path[-1].id if live_path else None,
        message_count=state["session"]["message_count"],
        session_snapshot=json.dumps(state, sort_keys=True),
        git_commit=git_commit,
        git_branch=git_branch,
        extra_data=metadata or {},
        actor=actor,
    )
    logger.info(
        f"Created checkpoint {checkpoint.name!r} for session {session_id} "
        f"at version {checkpoint.version}"
    )
    return checkpoint


class CheckpointService:
    """Creates and reads checkpoints through the storage engine."""

    def __init__(self, store: Store):
        self.store = store

    def create(
        self,
        session_id: uuid.UUID,
        name: str,
        description: Optional[str] = None,
        git_commit: Optional[str] = None,
        git_branch: Optional[str] = None,
        metadata: Optional[dict] = None,
        actor: Optional[str] = None,
    ) -> Checkpoint:
        """Snapshot a session in its own transaction."""
        return self.store.run(
            lambda uow: create_checkpoint(
                uow,
                session_id,
                name,
                description=description,
                git_commit=git_commit,
                git_branch=git_branch,
                metadata=metadata,
                actor=actor,
            )
        )

    def list_for_session(self, session_id: uuid.UUID) -> list[Checkpoint]:
        """Checkpoints for a session, oldest first."""

        def _list(uow: UnitOfWork) -> list[Checkpoint]:
            if uow.sessions.get(session_id) is None:
                raise NotFoundError("session", session_id)
            return uow.checkpoints.list_for_session(session_id)

        return self.store.read(_list)

    def get(self, checkpoint_id: uuid.UUID) -> Checkpoint:
        def _get(uow: UnitOfWork) -> Checkpoint:
            checkpoint = uow.checkpoints.get(checkpoint_id)
            if checkpoint is None:
                raise NotFoundError("checkpoint", checkpoint_id)
            return checkpoint

        return self.store.read(_get)

    def load_snapshot(self, checkpoint_id: uuid.UUID) -> dict[str, Any]:
        """The frozen session state recorded by a checkpoint."""
        return json.loads(self.get(checkpoint_id).session_snapshot)
