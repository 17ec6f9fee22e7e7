"""
Workspace repository.
"""

import uuid
from pathlib import Path
from typing import List, Optional

from chatledger.db.repositories.base import BaseRepository
from chatledger.models.db import ChatSession, Document, Memory, Workspace, utc_now
from chatledger.sync.serializers import session_to_dict, workspace_to_dict


class WorkspaceRepository(BaseRepository[Workspace]):
    """Repository for Workspace model."""

    def __init__(self, uow):
        super().__init__(Workspace, uow)

    def get_by_path(
        self, path: Optional[str], provider: Optional[str] = None
    ) -> Optional[Workspace]:
        """
        Get workspace by filesystem path and primary provider.

        Args:
            path: Workspace path (None matches path-less workspaces)
            provider: Primary provider (None matches provider-less workspaces)

        Returns:
            Workspace instance or None
        """
        query = self.session.query(Workspace)
        query = query.filter(
            Workspace.path == path if path is not None else Workspace.path.is_(None)
        )
        query = query.filter(
            Workspace.provider == provider
            if provider is not None
            else Workspace.provider.is_(None)
        )
        return query.order_by(Workspace.created_at).first()

    def get_by_name(self, name: str) -> Optional[Workspace]:
        return (
            self.session.query(Workspace)
            .filter(Workspace.name == name)
            .order_by(Workspace.created_at)
            .first()
        )

    def list_workspaces(
        self, limit: Optional[int] = None, offset: int = 0
    ) -> List[Workspace]:
        query = (
            self.session.query(Workspace).order_by(Workspace.created_at).offset(offset)
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def create(self, actor: Optional[str] = None, **kwargs) -> Workspace:
        """Create a workspace and publish workspace.created."""
        workspace = super().create(**kwargs)
        self.uow.append_event(
            "workspace.created",
            "workspace",
            workspace.id,
            workspace_to_dict(workspace),
            actor=actor,
        )
        return workspace

    def get_or_create(
        self,
        path: Optional[str],
        provider: Optional[str] = None,
        name: Optional[str] = None,
        **kwargs,
    ) -> tuple[Workspace, bool]:
        """
        Get the workspace for a (path, provider) pair, creating it on first use.

        Args:
            path: Filesystem path of the project (may be None)
            provider: Primary provider for the workspace
            name: Display name (defaults to the last path component)

        Returns:
            Tuple of (workspace, created)
        """
        workspace = self.get_by_path(path, provider)
        if workspace is not None:
            return workspace, False

        if not name:
            name = Path(path).name if path else (provider or "default")
        workspace = self.create(name=name, path=path, provider=provider, **kwargs)
        return workspace, True

    def update(
        self, id: uuid.UUID, actor: Optional[str] = None, **fields
    ) -> Optional[Workspace]:
        """Update workspace attributes and publish workspace.updated if changed."""
        workspace = self.get(id)
        if workspace is None:
            return None
        changed = {k: v for k, v in fields.items() if getattr(workspace, k) != v}
        if not changed:
            return workspace
        for key, value in changed.items():
            setattr(workspace, key, value)
        workspace.updated_at = utc_now()
        self.session.flush()
        self.uow.append_event(
            "workspace.updated",
            "workspace",
            workspace.id,
            workspace_to_dict(workspace),
            actor=actor,
        )
        return workspace

    def delete(self, id: uuid.UUID, actor: Optional[str] = None) -> bool:
        """
        Delete a workspace.

        Sessions, documents and memories in the workspace are kept; their
        workspace reference is set to NULL (one session.updated per session).
        """
        workspace = self.get(id)
        if workspace is None:
            return False

        sessions = (
            self.session.query(ChatSession).filter(ChatSession.workspace_id == id).all()
        )
        for chat_session in sessions:
            chat_session.workspace_id = None
            chat_session.updated_at = utc_now()
        self.session.query(Document).filter(Document.workspace_id == id).update(
            {Document.workspace_id: None}, synchronize_session=False
        )
        self.session.query(Memory).filter(Memory.workspace_id == id).update(
            {Memory.workspace_id: None}, synchronize_session=False
        )
        self.session.flush()

        for chat_session in sessions:
            self.uow.append_event(
                "session.updated",
                "session",
                chat_session.id,
                session_to_dict(chat_session),
                actor=actor,
            )
            self.uow.reset_session_baseline(chat_session)

        self.session.delete(workspace)
        self.session.flush()
        self.uow.append_event(
            "workspace.deleted", "workspace", id, {"id": str(id)}, actor=actor
        )
        return True
