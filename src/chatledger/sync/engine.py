"""
Sync engine.

Owns the process-wide version counter and the event log. Events are appended
inside a storage unit of work (same transaction as the mutation they
describe); the counter only advances, and subscribers are only notified,
once that transaction has committed.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from chatledger.config import settings
from chatledger.exceptions import IntegrityViolation, StaleCursorError
from chatledger.models.db import ChatSession, Checkpoint, Event, Message, Workspace
from chatledger.sync.broadcast import SubscriberRegistry, Subscription
from chatledger.sync.serializers import (
    checkpoint_to_dict,
    event_to_dict,
    message_to_dict,
    session_to_dict,
    workspace_to_dict,
)

if TYPE_CHECKING:
    from chatledger.db.store import Store, UnitOfWork

logger = logging.getLogger(__name__)


@dataclass
class Delta:
    """Ordered events after a client's cursor."""

    from_version: int
    to_version: int
    current_version: int
    events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def has_more(self) -> bool:
        return self.to_version < self.current_version


class SyncEngine:
    """
    Version counter, event log reads and live fan-out for one store.

    The counter is seeded from the highest stored event version (0 for a
    fresh store) and equals the version of the most recently committed event.
    Other processes may commit to the same database; `refresh()` picks their
    events up from the log and fans them out like local ones.
    """

    def __init__(self, store: "Store", queue_size: Optional[int] = None):
        self.store = store
        self.subscribers = SubscriberRegistry(
            queue_size or settings.sync_subscriber_queue_size
        )
        self._version = store.read(lambda uow: uow.events.max_version())
        logger.info(f"Sync engine starting at version {self._version}")

    def refresh(self) -> int:
        """
        Catch up with events committed outside this process.

        Inside a writer unit of work the log may hold that unit's own
        uncommitted events, so the counter is returned unchanged.

        Returns:
            The current version
        """
        active = self.store.current_unit()
        if active is not None and not active.readonly:
            return self._version

        def _read(uow: "UnitOfWork") -> list[dict[str, Any]]:
            return [event_to_dict(e) for e in uow.events.since(self._version)]

        missed = self.store.read(_read)
        if missed:
            logger.info(
                f"Picked up {len(missed)} external event(s) "
                f"(v{self._version} -> v{missed[-1]['version']})"
            )
            self._version = missed[-1]["version"]
            self.subscribers.publish(missed)
        return self._version

    def current_version(self) -> int:
        return self.refresh()

    def next_version(self, uow: "UnitOfWork") -> int:
        """Version the next event appended in `uow` will receive."""
        if uow.version_base is None:
            # Read in the writer transaction, before this unit's first event
            uow.version_base = uow.events.max_version()
        return uow.version_base + len(uow.pending_events) + 1

    def append_event(
        self,
        uow: "UnitOfWork",
        event_type: str,
        entity_type: Optional[str],
        entity_id: Any,
        payload: dict[str, Any],
        actor: Optional[str] = None,
    ) -> int:
        """
        Persist one event in the caller's transaction.

        Returns:
            The version assigned to the event

        Raises:
            IntegrityViolation: If `uow` is not the store's active writer unit
        """
        active = self.store.current_unit()
        if uow.readonly or uow.store is not self.store or active is not uow:
            raise IntegrityViolation(
                "Events can only be appended inside an active unit of work"
            )

        version = self.next_version(uow)
        event = Event(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            actor=actor,
            data=payload,
            version=version,
        )
        uow.session.add(event)
        uow.session.flush()
        uow.pending_events.append(event)
        logger.debug(
            f"Appended {event_type} for {entity_type}:{entity_id} at v{version}"
        )
        return version

    def on_commit(self, events: list[Event]) -> None:
        """Advance the counter and fan out events of a committed unit."""
        if not events:
            return
        if events[0].version != self._version + 1:
            # Another process committed in between; replay the log in order
            self.refresh()
            return
        self._version = events[-1].version
        self.subscribers.publish([event_to_dict(event) for event in events])

    def _check_cursor(self, uow: "UnitOfWork", from_version: int) -> None:
        current = self.refresh()
        oldest = uow.events.min_version()
        if from_version < 0 or from_version > current:
            raise StaleCursorError(from_version, oldest or current, current)
        if oldest is not None and from_version < oldest - 1:
            raise StaleCursorError(from_version, oldest, current)

    def delta(self, from_version: int, limit: Optional[int] = None) -> Delta:
        """
        Events with version > from_version, oldest first (at most `limit`).

        Raises:
            StaleCursorError: The cursor predates retained history or is
                ahead of the current version; the client must resnapshot
        """
        limit = limit or settings.sync_delta_page_size

        def _read(uow: "UnitOfWork") -> Delta:
            self._check_cursor(uow, from_version)
            events = [event_to_dict(e) for e in uow.events.since(from_version, limit)]
            return Delta(
                from_version=from_version,
                to_version=events[-1]["version"] if events else from_version,
                current_version=self._version,
                events=events,
            )

        return self.store.read(_read)

    def snapshot(self) -> dict[str, Any]:
        """Full current state of all sync-relevant entities, with its version."""

        def _read(uow: "UnitOfWork") -> dict[str, Any]:
            session = uow.session
            return {
                "version": self.refresh(),
                "workspaces": [
                    workspace_to_dict(w)
                    for w in session.query(Workspace).order_by(Workspace.id)
                ],
                "sessions": [
                    session_to_dict(s)
                    for s in session.query(ChatSession).order_by(ChatSession.id)
                ],
                "messages": [
                    message_to_dict(m)
                    for m in session.query(Message).order_by(Message.id)
                ],
                "checkpoints": [
                    checkpoint_to_dict(c)
                    for c in session.query(Checkpoint).order_by(Checkpoint.id)
                ],
            }

        return self.store.read(_read)

    def subscribe(self, from_version: Optional[int] = None) -> Subscription:
        """
        Open a live subscription.

        With `from_version`, events after that cursor are delivered first
        (same rules as delta), followed seamlessly by live events.
        """

        def _open(uow: "UnitOfWork") -> Subscription:
            backlog: list[dict[str, Any]] = []
            self.refresh()
            if from_version is not None:
                self._check_cursor(uow, from_version)
                backlog = [event_to_dict(e) for e in uow.events.since(from_version)]
            return self.subscribers.register(self._version, backlog)

        # Runs on the writer lane, so no commit can land between the
        # backlog read and registration
        return self.store.read(_open)
