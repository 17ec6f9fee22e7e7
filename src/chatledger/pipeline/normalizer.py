"""
Normalizer: reconcile provider session records with canonical sessions.

For each record the normalizer resolves the stored session it belongs to
and then decides, turn by turn, between three outcomes:

- matched: a stored message at the same position of the conversation tree
  has the same content hash (no write)
- tail append: the stored path ends where the record continues, so new
  messages extend that branch
- divergence: the record differs from every stored continuation at that
  position, so the remaining turns are written under a fresh branch label
  whose first message hangs off the last matched message

History is never rewritten. The record's path becomes the session's live
path; messages of other branches stay queryable with `is_live = False`.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from chatledger.config import settings
from chatledger.db.store import Store, UnitOfWork
from chatledger.exceptions import IdentityConflictError
from chatledger.models.db import MAIN_BRANCH, ChatSession, Message
from chatledger.models.records import ProviderSessionRecord, RawTurn

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "alt-"


@dataclass
class NormalizeOutcome:
    """Result of reconciling one provider session record."""

    status: str  # created, updated, unchanged
    session_id: Optional[uuid.UUID] = None
    provider: Optional[str] = None
    provider_session_id: Optional[str] = None
    messages_added: int = 0
    branches_created: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.status != "unchanged"


def next_branch_label(existing: set[str]) -> str:
    """First free `alt-N` label for a session."""
    n = 1
    while f"{BRANCH_PREFIX}{n}" in existing:
        n += 1
    return f"{BRANCH_PREFIX}{n}"


class Normalizer:
    """
    Maps ProviderSessionRecords onto the canonical Session/Message graph.

    All methods taking a UnitOfWork run inside the caller's transaction;
    `normalize()` opens one unit of work per record.
    """

    def __init__(self, store: Store, allow_branching: Optional[bool] = None):
        self.store = store
        self.allow_branching = (
            settings.harvest_allow_branching
            if allow_branching is None
            else allow_branching
        )

    def normalize(
        self,
        record: ProviderSessionRecord,
        workspace_id: Optional[uuid.UUID] = None,
        switch_live: bool = True,
    ) -> NormalizeOutcome:
        """Reconcile one record in its own transaction."""
        return self.store.run(
            lambda uow: self.reconcile(uow, record, workspace_id, switch_live)
        )

    def resolve_session(
        self,
        uow: UnitOfWork,
        record: ProviderSessionRecord,
        workspace_id: Optional[uuid.UUID],
    ) -> Optional[ChatSession]:
        """Find the stored session a record belongs to, if any."""
        if record.provider_session_id:
            return uow.sessions.get_by_provider_id(
                record.provider, record.provider_session_id, workspace_id
            )
        return uow.sessions.find_by_heuristic(
            record.provider,
            record.display_title(),
            record.model,
            record.started_at,
            workspace_id,
        )

    def reconcile(
        self,
        uow: UnitOfWork,
        record: ProviderSessionRecord,
        workspace_id: Optional[uuid.UUID] = None,
        switch_live: bool = True,
    ) -> NormalizeOutcome:
        """
        Reconcile one record with the stored session it resolves to.

        With `switch_live=False` a record that matches stored history
        without adding turns leaves the live path where it is (used for all
        but the last of several records sharing one provider session id).
        """
        chat_session = self.resolve_session(uow, record, workspace_id)
        if chat_session is None:
            return self._insert(uow, record, workspace_id)
        if chat_session.content_hash == record.sequence_hash:
            logger.debug(f"Session {chat_session.id} unchanged, skipping")
            return self._outcome("unchanged", chat_session, record)
        return self._update(uow, chat_session, record, switch_live)

    def _actor(self, record: ProviderSessionRecord) -> str:
        return f"harvest:{record.provider}"

    def _outcome(
        self, status: str, chat_session: ChatSession, record: ProviderSessionRecord
    ) -> NormalizeOutcome:
        return NormalizeOutcome(
            status=status,
            session_id=chat_session.id,
            provider=record.provider,
            provider_session_id=record.provider_session_id,
        )

    def _add_turn(
        self,
        uow: UnitOfWork,
        chat_session: ChatSession,
        turn: RawTurn,
        branch_label: str,
        parent_id: Optional[uuid.UUID],
        actor: str,
    ) -> Message:
        return uow.messages.add(
            chat_session,
            role=turn.role,
            content=turn.content,
            branch_label=branch_label,
            parent_id=parent_id,
            content_hash=turn.content_hash,
            model=turn.model,
            token_count=turn.token_count,
            timestamp=turn.timestamp,
            metadata=turn.metadata,
            tool_calls=turn.tool_calls,
            attachments=turn.attachments,
            actor=actor,
        )

    def _record_import(
        self, uow: UnitOfWork, chat_session: ChatSession, record: ProviderSessionRecord
    ) -> None:
        uow.import_sources.record(
            session_id=chat_session.id,
            source_type="harvest",
            checksum=record.sequence_hash,
            source_path=record.source.uri if record.source else None,
            source_provider=record.provider,
            metadata={"turns": len(record.turns)},
        )

    def _insert(
        self,
        uow: UnitOfWork,
        record: ProviderSessionRecord,
        workspace_id: Optional[uuid.UUID],
    ) -> NormalizeOutcome:
        actor = self._actor(record)
        extra = dict(record.metadata)
        if record.git_branch:
            extra["git_branch"] = record.git_branch
        chat_session = uow.sessions.create(
            actor=actor,
            workspace_id=workspace_id,
            provider=record.provider,
            provider_session_id=record.provider_session_id,
            title=record.display_title(),
            model=record.model,
            started_at=record.started_at,
            active_branch=MAIN_BRANCH,
            content_hash=record.sequence_hash,
            extra_data=extra,
        )

        parent_id: Optional[uuid.UUID] = None
        for turn in record.turns:
            message = self._add_turn(
                uow, chat_session, turn, MAIN_BRANCH, parent_id, actor
            )
            parent_id = message.id

        self._record_import(uow, chat_session, record)
        logger.info(
            f"Created session {chat_session.id} "
            f"({record.provider}:{record.provider_session_id}) "
            f"with {len(record.turns)} messages"
        )
        outcome = self._outcome("created", chat_session, record)
        outcome.messages_added = len(record.turns)
        return outcome

    def _match_child(
        self, candidates: list[Message], content_hash: str
    ) -> Optional[Message]:
        matches = [m for m in candidates if m.content_hash == content_hash]
        if not matches:
            return None
        live = [m for m in matches if m.is_live]
        return (live or matches)[-1]

    def _update(
        self,
        uow: UnitOfWork,
        chat_session: ChatSession,
        record: ProviderSessionRecord,
        switch_live: bool = True,
    ) -> NormalizeOutcome:
        actor = self._actor(record)
        messages = uow.messages

        # Walk the stored tree along the record's turns
        path: list[Message] = []
        position = 0
        for position, turn in enumerate(record.turns):
            candidates = (
                messages.children(path[-1].id)
                if path
                else messages.roots(chat_session.id)
            )
            match = self._match_child(candidates, turn.content_hash)
            if match is None:
                break
            path.append(match)
        else:
            position = len(record.turns)

        new_turns = record.turns[position:]
        if not new_turns and (not switch_live or not path or path[-1].is_live):
            # Identical to, or a truncated copy of, stored history
            logger.debug(
                f"Session {chat_session.id}: record matches stored history, "
                f"nothing to write"
            )
            return self._outcome("unchanged", chat_session, record)

        outcome = self._outcome("updated", chat_session, record)
        leaf = path[-1] if path else None
        if new_turns:
            if leaf is not None:
                diverges = bool(messages.children(leaf.id))
            else:
                diverges = bool(messages.roots(chat_session.id))

            if not diverges:
                label = leaf.branch_label if leaf is not None else MAIN_BRANCH
            elif not self.allow_branching:
                raise IdentityConflictError(
                    record.provider, record.provider_session_id, position
                )
            else:
                label = next_branch_label(set(messages.branch_labels(chat_session.id)))
                outcome.branches_created.append(label)
                logger.info(
                    f"Session {chat_session.id} diverges at turn {position}, "
                    f"writing branch {label!r}"
                )

            parent_id = leaf.id if leaf is not None else None
            for turn in new_turns:
                message = self._add_turn(
                    uow, chat_session, turn, label, parent_id, actor
                )
                path.append(message)
                parent_id = message.id
            outcome.messages_added = len(new_turns)

        # The record's path becomes the live path
        on_path = {m.id for m in path}
        for message in messages.get_for_session(chat_session.id):
            messages.set_live(message, message.id in on_path, actor=actor)

        fields = {
            "active_branch": path[-1].branch_label if path else MAIN_BRANCH,
            "content_hash": record.sequence_hash,
        }
        if record.title:
            fields["title"] = record.title
        if record.model:
            fields["model"] = record.model
        uow.sessions.stage(chat_session, **fields)
        self._record_import(uow, chat_session, record)
        logger.info(
            f"Updated session {chat_session.id}: +{outcome.messages_added} messages, "
            f"branches created {outcome.branches_created or 'none'}"
        )
        return outcome
