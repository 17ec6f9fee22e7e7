"""
Session API routes.

Read access to canonical sessions, their messages per branch and their
checkpoints, plus deletion and checkpoint creation.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from chatledger.api.deps import get_checkpoints, get_store
from chatledger.api.schemas import (
    BranchResponse,
    CheckpointCreate,
    CheckpointResponse,
    MessageResponse,
    SessionListResponse,
    SessionResponse,
)
from chatledger.checkpoints import CheckpointService
from chatledger.db.store import Store, UnitOfWork
from chatledger.exceptions import NotFoundError
from chatledger.sync.serializers import (
    checkpoint_to_dict,
    message_to_dict,
    session_to_dict,
)

router = APIRouter()


def _require_session(uow: UnitOfWork, session_id: UUID):
    chat_session = uow.sessions.get(session_id)
    if chat_session is None:
        raise NotFoundError("session", session_id)
    return chat_session


@router.get("", response_model=SessionListResponse)
def list_sessions(
    workspace_id: Optional[UUID] = None,
    provider: Optional[str] = None,
    archived: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: Store = Depends(get_store),
) -> SessionListResponse:
    """List sessions, newest first."""

    def _list(uow: UnitOfWork) -> dict[str, Any]:
        rows = uow.sessions.list_sessions(
            workspace_id=workspace_id,
            provider=provider,
            archived=archived,
            limit=limit,
            offset=offset,
        )
        return {
            "items": [session_to_dict(s) for s in rows],
            "total": uow.sessions.count(),
        }

    return SessionListResponse.model_validate(store.read(_list))


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(session_id: UUID, store: Store = Depends(get_store)) -> SessionResponse:
    data = store.read(lambda uow: session_to_dict(_require_session(uow, session_id)))
    return SessionResponse.model_validate(data)


@router.delete("/{session_id}", status_code=204)
def delete_session(
    session_id: UUID,
    actor: Optional[str] = None,
    store: Store = Depends(get_store),
) -> Response:
    """Delete a session with its messages and checkpoints."""

    def _delete(uow: UnitOfWork) -> None:
        if not uow.sessions.delete(session_id, actor=actor):
            raise NotFoundError("session", session_id)

    store.run(_delete)
    return Response(status_code=204)


@router.get("/{session_id}/messages", response_model=list[MessageResponse])
def get_messages(
    session_id: UUID,
    branch: Optional[str] = Query(None, description="Only this branch label"),
    live: bool = Query(False, description="Only the live path, root first"),
    store: Store = Depends(get_store),
) -> list[MessageResponse]:
    """Messages of a session: the live path, one branch, or everything."""

    def _messages(uow: UnitOfWork) -> list[dict[str, Any]]:
        _require_session(uow, session_id)
        if live:
            rows = uow.messages.live_path(session_id)
        else:
            rows = uow.messages.get_for_session(session_id, branch)
        return [message_to_dict(m) for m in rows]

    return [MessageResponse.model_validate(m) for m in store.read(_messages)]


@router.get("/{session_id}/branches", response_model=list[BranchResponse])
def get_branches(
    session_id: UUID, store: Store = Depends(get_store)
) -> list[BranchResponse]:
    def _branches(uow: UnitOfWork) -> list[dict[str, Any]]:
        _require_session(uow, session_id)
        return uow.sessions.branches(session_id)

    return [BranchResponse.model_validate(b) for b in store.read(_branches)]


@router.get("/{session_id}/checkpoints", response_model=list[CheckpointResponse])
def list_checkpoints(
    session_id: UUID,
    checkpoints: CheckpointService = Depends(get_checkpoints),
) -> list[CheckpointResponse]:
    """Checkpoints of a session, oldest first."""
    return [
        CheckpointResponse.model_validate(checkpoint_to_dict(c))
        for c in checkpoints.list_for_session(session_id)
    ]


@router.post(
    "/{session_id}/checkpoints", response_model=CheckpointResponse, status_code=201
)
def create_checkpoint(
    session_id: UUID,
    body: CheckpointCreate,
    actor: Optional[str] = None,
    checkpoints: CheckpointService = Depends(get_checkpoints),
) -> CheckpointResponse:
    checkpoint = checkpoints.create(
        session_id,
        body.name,
        description=body.description,
        git_commit=body.git_commit,
        git_branch=body.git_branch,
        metadata=body.metadata,
        actor=actor,
    )
    return CheckpointResponse.model_validate(checkpoint_to_dict(checkpoint))


@router.get("/{session_id}/checkpoints/{checkpoint_id}/snapshot")
def get_checkpoint_snapshot(
    session_id: UUID,
    checkpoint_id: UUID,
    checkpoints: CheckpointService = Depends(get_checkpoints),
) -> dict[str, Any]:
    """The frozen session state recorded by a checkpoint."""
    checkpoint = checkpoints.get(checkpoint_id)
    if checkpoint.session_id != session_id:
        raise NotFoundError("checkpoint", checkpoint_id)
    return checkpoints.load_snapshot(checkpoint_id)
