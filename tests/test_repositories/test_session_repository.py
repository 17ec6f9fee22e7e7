"""
Tests for SessionRepository: identity lookups, updates and cascades.
"""

import uuid
from datetime import UTC, datetime

import pytest

from chatledger.db.store import Store
from chatledger.exceptions import IntegrityViolation
from chatledger.models.db import (
    Checkpoint,
    ImportSource,
    Memory,
    Message,
    ShareLink,
    ToolCall,
)
from chatledger.models.records import ToolCallPayload


class TestSessionLookup:
    def test_get_by_provider_id(self, store: Store, sample_session_id):
        found = store.read(
            lambda uow: uow.sessions.get_by_provider_id("json-export", "conv-1")
        )
        assert found.id == sample_session_id

        missing = store.read(
            lambda uow: uow.sessions.get_by_provider_id("codex", "conv-1")
        )
        assert missing is None

    def test_heuristic_match_requires_same_start_time(self, store: Store):
        started = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
        store.run(
            lambda uow: uow.sessions.create(
                provider="chatgpt",
                title="Trip plan",
                model="gpt-4o",
                started_at=started,
            )
        )

        hit = store.read(
            lambda uow: uow.sessions.find_by_heuristic(
                "chatgpt", "Trip plan", "gpt-4o", started
            )
        )
        miss = store.read(
            lambda uow: uow.sessions.find_by_heuristic(
                "chatgpt", "Trip plan", "gpt-4o", datetime(2025, 1, 2, tzinfo=UTC)
            )
        )
        assert hit is not None
        assert miss is None

    def test_list_sessions_filters(self, store: Store):
        def _seed(uow):
            uow.sessions.create(provider="codex", title="a")
            uow.sessions.create(provider="codex", title="b", archived=True)
            uow.sessions.create(provider="chatgpt", title="c")

        store.run(_seed)

        codex = store.read(lambda uow: uow.sessions.list_sessions(provider="codex"))
        active = store.read(
            lambda uow: uow.sessions.list_sessions(provider="codex", archived=False)
        )
        assert len(codex) == 2
        assert [s.title for s in active] == ["a"]


class TestSessionUpdate:
    def test_update_publishes_once(self, store: Store, sample_session_id):
        before = store.sync.current_version()

        store.run(
            lambda uow: uow.sessions.update(
                uow.sessions.get(sample_session_id), title="Renamed", archived=True
            )
        )

        events = store.read(lambda uow: uow.events.since(before))
        assert [e.event_type for e in events] == ["session.updated"]
        assert events[0].data["title"] == "Renamed"
        assert events[0].data["archived"] is True

    def test_noop_update_appends_nothing(self, store: Store, sample_session_id):
        before = store.sync.current_version()
        title = store.read(lambda uow: uow.sessions.get(sample_session_id).title)

        store.run(
            lambda uow: uow.sessions.update(
                uow.sessions.get(sample_session_id), title=title
            )
        )

        assert store.sync.current_version() == before

    def test_counters_are_not_writable(self, store: Store, sample_session_id):
        with pytest.raises(IntegrityViolation, match="Derived fields"):
            store.run(
                lambda uow: uow.sessions.update(
                    uow.sessions.get(sample_session_id), token_count=99
                )
            )

    def test_branches_summary(self, store: Store, sample_session_id):
        branches = store.read(lambda uow: uow.sessions.branches(sample_session_id))

        assert branches == [
            {
                "label": "main",
                "message_count": 3,
                "live_count": 3,
                "first_sequence": 0,
                "last_sequence": 2,
            }
        ]


class TestSessionDelete:
    def test_delete_cascades_to_owned_rows(self, store: Store, sample_session_id):
        def _extras(uow):
            chat_session = uow.sessions.get(sample_session_id)
            last = uow.messages.live_path(sample_session_id)[-1]
            uow.messages.add(
                chat_session,
                role="assistant",
                content="Running it",
                parent_id=last.id,
                tool_calls=[ToolCallPayload("shell", {"cmd": "ls"})],
            )
            uow.memories.create(
                content="User likes slicing", session_id=chat_session.id
            )
            uow.share_links.upsert(
                provider="chatgpt",
                url="https://chat.example.com/share/abc",
                share_id="abc",
            )

        store.run(_extras)
        store.run(
            lambda uow: uow.share_links.mark_imported(
                uow.share_links.get_by_url("https://chat.example.com/share/abc"),
                sample_session_id,
            )
        )
        from chatledger.checkpoints import CheckpointService

        CheckpointService(store).create(sample_session_id, "before delete")

        deleted = store.run(lambda uow: uow.sessions.delete(sample_session_id))

        assert deleted is True

        def _counts(uow):
            return {
                "messages": uow.session.query(Message).count(),
                "tool_calls": uow.session.query(ToolCall).count(),
                "checkpoints": uow.session.query(Checkpoint).count(),
                "imports": uow.session.query(ImportSource).count(),
                "memories": uow.session.query(Memory).count(),
                "message_index": uow.search.count("message"),
            }

        assert store.read(_counts) == {
            "messages": 0,
            "tool_calls": 0,
            "checkpoints": 0,
            "imports": 0,
            "memories": 1,
            "message_index": 0,
        }
        memory = store.read(lambda uow: uow.session.query(Memory).one())
        link = store.read(lambda uow: uow.session.query(ShareLink).one())
        assert memory.session_id is None
        assert link.session_id is None

    def test_delete_publishes_single_event(self, store: Store, sample_session_id):
        before = store.sync.current_version()

        store.run(lambda uow: uow.sessions.delete(sample_session_id, actor="tester"))

        events = store.read(lambda uow: uow.events.since(before))
        assert [(e.event_type, e.actor) for e in events] == [
            ("session.deleted", "tester")
        ]

    def test_delete_unknown_session(self, store: Store):
        assert store.run(lambda uow: uow.sessions.delete(uuid.uuid4())) is False

    def test_forked_children_are_detached(self, store: Store, sample_session_id):
        child_id = store.run(
            lambda uow: uow.sessions.create(
                provider="json-export",
                title="fork",
                parent_session_id=sample_session_id,
            ).id
        )

        store.run(lambda uow: uow.sessions.delete(sample_session_id))

        child = store.read(lambda uow: uow.sessions.get(child_id))
        assert child.parent_session_id is None
