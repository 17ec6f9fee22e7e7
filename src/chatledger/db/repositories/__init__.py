"""
Repository layer for database operations.

Every repository is bound to a unit of work (see chatledger.db.store).
"""

from chatledger.db.repositories.agent import AgentRepository
from chatledger.db.repositories.base import BaseRepository
from chatledger.db.repositories.checkpoint import CheckpointRepository
from chatledger.db.repositories.document import DocumentRepository
from chatledger.db.repositories.embedding import EmbeddingRepository
from chatledger.db.repositories.event import EventRepository
from chatledger.db.repositories.import_source import ImportSourceRepository
from chatledger.db.repositories.memory import MemoryRepository
from chatledger.db.repositories.message import MessageRepository
from chatledger.db.repositories.session import SessionRepository
from chatledger.db.repositories.share_link import ShareLinkRepository
from chatledger.db.repositories.tag import TagRepository
from chatledger.db.repositories.workflow import WorkflowRepository
from chatledger.db.repositories.workspace import WorkspaceRepository

__all__ = [
    "AgentRepository",
    "BaseRepository",
    "CheckpointRepository",
    "DocumentRepository",
    "EmbeddingRepository",
    "EventRepository",
    "ImportSourceRepository",
    "MemoryRepository",
    "MessageRepository",
    "SessionRepository",
    "ShareLinkRepository",
    "TagRepository",
    "WorkflowRepository",
    "WorkspaceRepository",
]
