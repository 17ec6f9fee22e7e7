"""
Storage engine: transactional units of work over the canonical schema.

`Store.run(fn)` executes `fn(uow)` inside one database transaction on a
single writer lane. Entity writes, derived-field maintenance, full-text
index updates and sync event appends made through the unit of work either
all commit or all roll back. Committed events are handed to the sync engine
for live fan-out only after the transaction commits.
"""

import logging
import threading
import time
import uuid
from functools import cached_property
from typing import TYPE_CHECKING, Any, Callable, Optional, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from chatledger.config import settings
from chatledger.db.repositories import (
    AgentRepository,
    CheckpointRepository,
    DocumentRepository,
    EmbeddingRepository,
    EventRepository,
    ImportSourceRepository,
    MemoryRepository,
    MessageRepository,
    SessionRepository,
    ShareLinkRepository,
    TagRepository,
    WorkflowRepository,
    WorkspaceRepository,
)
from chatledger.db.search import FullTextIndex
from chatledger.exceptions import ChatLedgerError, IntegrityViolation, TransactionError
from chatledger.models.db import ChatSession, Document, Event
from chatledger.sync.serializers import session_to_dict

if TYPE_CHECKING:
    from chatledger.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_lock_error(exc: BaseException) -> bool:
    """Check whether a database error is transient lock contention."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None)
    if pgcode in {"40P01", "40001", "55P03"}:  # deadlock / serialization / lock
        return True
    if orig.__class__.__name__ in {"DeadlockDetected", "SerializationFailure"}:
        return True
    message = str(orig).lower()
    return "database is locked" in message or "database table is locked" in message


def _is_version_conflict(exc: IntegrityError) -> bool:
    """Check whether another process took the same event version first."""
    message = str(exc.orig).lower()
    return "events.version" in message or "events_version" in message


class UnitOfWork:
    """
    One transaction's worth of repository access.

    Tracks the sync events appended so far and the sessions/documents whose
    derived fields must be recomputed before commit.
    """

    def __init__(self, store: "Store", session: Session, readonly: bool = False):
        self.store = store
        self.session = session
        self.readonly = readonly
        self.pending_events: list[Event] = []
        self.version_base: Optional[int] = None
        self._dirty_sessions: dict[uuid.UUID, tuple[ChatSession, dict[str, Any]]] = {}
        self._dirty_documents: dict[uuid.UUID, Document] = {}

    @property
    def sync(self) -> "SyncEngine":
        return self.store.sync

    @cached_property
    def search(self) -> FullTextIndex:
        return FullTextIndex(self.session)

    @cached_property
    def workspaces(self) -> WorkspaceRepository:
        return WorkspaceRepository(self)

    @cached_property
    def sessions(self) -> SessionRepository:
        return SessionRepository(self)

    @cached_property
    def messages(self) -> MessageRepository:
        return MessageRepository(self)

    @cached_property
    def checkpoints(self) -> CheckpointRepository:
        return CheckpointRepository(self)

    @cached_property
    def documents(self) -> DocumentRepository:
        return DocumentRepository(self)

    @cached_property
    def embeddings(self) -> EmbeddingRepository:
        return EmbeddingRepository(self)

    @cached_property
    def events(self) -> EventRepository:
        return EventRepository(self)

    @cached_property
    def import_sources(self) -> ImportSourceRepository:
        return ImportSourceRepository(self)

    @cached_property
    def share_links(self) -> ShareLinkRepository:
        return ShareLinkRepository(self)

    @cached_property
    def tags(self) -> TagRepository:
        return TagRepository(self)

    @cached_property
    def agents(self) -> AgentRepository:
        return AgentRepository(self)

    @cached_property
    def memories(self) -> MemoryRepository:
        return MemoryRepository(self)

    @cached_property
    def workflows(self) -> WorkflowRepository:
        return WorkflowRepository(self)

    def append_event(
        self,
        event_type: str,
        entity_type: Optional[str],
        entity_id: Any,
        payload: dict[str, Any],
        actor: Optional[str] = None,
    ) -> int:
        """Append a sync event in this transaction; returns its version."""
        if self.readonly:
            raise IntegrityViolation("Events cannot be appended from a read-only unit")
        return self.sync.append_event(
            self, event_type, entity_type, entity_id, payload, actor=actor
        )

    def mark_session_dirty(self, chat_session: ChatSession) -> None:
        """Schedule derived-field recomputation for a session before commit."""
        if chat_session.id not in self._dirty_sessions:
            self._dirty_sessions[chat_session.id] = (
                chat_session,
                session_to_dict(chat_session),
            )

    def reset_session_baseline(self, chat_session: ChatSession) -> None:
        """Record that the session's current state has already been published."""
        if chat_session.id in self._dirty_sessions:
            self._dirty_sessions[chat_session.id] = (
                chat_session,
                session_to_dict(chat_session),
            )

    def forget_session(self, session_id: uuid.UUID) -> None:
        self._dirty_sessions.pop(session_id, None)

    def mark_document_dirty(self, document: Document) -> None:
        self._dirty_documents.setdefault(document.id, document)

    def forget_document(self, document_id: uuid.UUID) -> None:
        self._dirty_documents.pop(document_id, None)

    def finalize(self) -> None:
        """Recompute derived fields for everything touched in this unit."""
        self.session.flush()
        for chat_session, baseline in list(self._dirty_sessions.values()):
            self.sessions.publish_derived(chat_session, baseline)
        self._dirty_sessions.clear()
        for document in list(self._dirty_documents.values()):
            self.documents.recompute_chunk_count(document)
        self._dirty_documents.clear()
        self.session.flush()


class Store:
    """
    Transactional repository over one database engine.

    All writes go through a single writer lane (one unit of work at a time
    per store). Reads take the same lane so that a read always observes a
    state consistent with the sync engine's current version.
    """

    def __init__(
        self,
        engine: Engine,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        from chatledger.sync.engine import SyncEngine

        self.engine = engine
        self.max_retries = (
            settings.storage_max_retries if max_retries is None else max_retries
        )
        self.retry_backoff = (
            settings.storage_retry_backoff_seconds
            if retry_backoff is None
            else retry_backoff
        )
        self._session_factory = sessionmaker(
            bind=engine, autoflush=False, expire_on_commit=False
        )
        self._writer_lock = threading.RLock()
        self._local = threading.local()
        self.sync = SyncEngine(self)

    def current_unit(self) -> Optional[UnitOfWork]:
        return getattr(self._local, "uow", None)

    def run(self, unit_of_work: Callable[[UnitOfWork], T]) -> T:
        """
        Execute a unit of work in one transaction.

        Nested calls on the same thread join the enclosing transaction.
        Transient lock contention is retried up to `max_retries` times with
        exponential backoff; the last failure is raised as a retryable
        TransactionError.

        Raises:
            TransactionError: The write failed and was rolled back
            IntegrityViolation: The write would have broken an invariant
            ChatLedgerError: Any domain error raised by the unit of work
        """
        current = self.current_unit()
        if current is not None:
            if current.readonly:
                raise IntegrityViolation("Cannot write inside a read-only unit of work")
            return unit_of_work(current)

        attempt = 0
        while True:
            try:
                return self._run_once(unit_of_work)
            except TransactionError as e:
                if not e.retryable or attempt >= self.max_retries:
                    raise
                backoff = self.retry_backoff * (2**attempt)
                attempt += 1
                logger.warning(
                    f"Lock contention in unit of work "
                    f"(attempt {attempt}/{self.max_retries}), retrying in {backoff:.2f}s"
                )
                time.sleep(backoff)

    def _run_once(self, unit_of_work: Callable[[UnitOfWork], T]) -> T:
        with self._writer_lock:
            session = self._session_factory()
            uow = UnitOfWork(self, session)
            self._local.uow = uow
            try:
                result = unit_of_work(uow)
                uow.finalize()
                session.commit()
            except ChatLedgerError:
                session.rollback()
                raise
            except IntegrityError as e:
                session.rollback()
                if _is_version_conflict(e):
                    raise TransactionError(
                        f"Event version taken by a concurrent writer: {e.orig}",
                        retryable=True,
                    ) from e
                raise IntegrityViolation(
                    f"Write rejected by database constraint: {e.orig}"
                ) from e
            except SQLAlchemyError as e:
                session.rollback()
                retryable = _is_lock_error(e)
                logger.error(f"Unit of work rolled back: {e}", exc_info=not retryable)
                raise TransactionError(
                    f"Unit of work rolled back: {e}", retryable=retryable
                ) from e
            except Exception:
                session.rollback()
                raise
            finally:
                self._local.uow = None
                session.close()

            self.sync.on_commit(uow.pending_events)
            return result

    def read(self, fn: Callable[[UnitOfWork], T]) -> T:
        """Run a read-only function against a consistent view of the store."""
        current = self.current_unit()
        if current is not None:
            return fn(current)

        with self._writer_lock:
            session = self._session_factory()
            uow = UnitOfWork(self, session, readonly=True)
            self._local.uow = uow
            try:
                return fn(uow)
            finally:
                self._local.uow = None
                # close() discards the transaction without expiring loaded rows
                session.close()
