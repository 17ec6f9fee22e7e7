"""
Tests for checkpoint creation and immutability.
"""

import uuid

import pytest

from chatledger.checkpoints import CheckpointService
from chatledger.exceptions import IntegrityViolation, NotFoundError
from chatledger.models.db import Checkpoint


@pytest.fixture
def service(store) -> CheckpointService:
    return CheckpointService(store)


class TestCheckpointCreate:
    def test_version_matches_creation_event(self, store, service, sample_session_id):
        checkpoint = service.create(sample_session_id, "first draft", actor="cli")

        events = store.read(
            lambda uow: uow.events.for_entity("checkpoint", checkpoint.id)
        )
        assert [e.event_type for e in events] == ["checkpoint.created"]
        assert events[0].version == checkpoint.version
        assert events[0].actor == "cli"
        assert checkpoint.version == store.sync.current_version()

    def test_snapshot_captures_all_branches(
        self, store, service, normalizer, sample_session_id, record_factory, three_turns
    ):
        normalizer.normalize(record_factory(three_turns[0], ("assistant", "Other")))
        store.run(lambda uow: uow.tags.tag("session", sample_session_id, "python"))

        checkpoint = service.create(sample_session_id, "after edit")
        state = service.load_snapshot(checkpoint.id)

        assert checkpoint.message_count == 2
        assert state["session"]["active_branch"] == "alt-1"
        assert len(state["messages"]) == 4
        assert sorted(b["label"] for b in state["branches"]) == ["alt-1", "main"]
        assert state["tags"] == ["python"]

        live_leaf = store.read(lambda uow: uow.messages.live_path(sample_session_id))
        assert checkpoint.message_id == live_leaf[-1].id

    def test_unknown_session(self, service):
        with pytest.raises(NotFoundError):
            service.create(uuid.uuid4(), "nothing")

    def test_checkpoint_in_same_unit_sees_new_messages(self, store, sample_session_id):
        from chatledger.checkpoints import create_checkpoint

        def _append_and_snapshot(uow):
            chat_session = uow.sessions.get(sample_session_id)
            leaf = uow.messages.live_path(sample_session_id)[-1]
            uow.messages.add(
                chat_session, role="assistant", content="late", parent_id=leaf.id
            )
            return create_checkpoint(uow, sample_session_id, "with late reply")

        checkpoint = store.run(_append_and_snapshot)

        assert checkpoint.message_count == 4
        types = [e.event_type for e in store.read(lambda uow: uow.events.since(5))]
        assert types.index("session.updated") < types.index("checkpoint.created")


class TestCheckpointReads:
    def test_list_is_oldest_first(self, service, sample_session_id):
        first = service.create(sample_session_id, "one")
        second = service.create(sample_session_id, "two")

        listed = service.list_for_session(sample_session_id)

        assert [c.id for c in listed] == [first.id, second.id]
        assert listed[0].version < listed[1].version

    def test_list_unknown_session(self, service):
        with pytest.raises(NotFoundError):
            service.list_for_session(uuid.uuid4())

    def test_get_unknown_checkpoint(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            service.get(uuid.uuid4())

        assert exc_info.value.to_dict()["error"] == "not_found"


class TestCheckpointImmutability:
    def test_repository_update_is_rejected(self, store, service, sample_session_id):
        checkpoint = service.create(sample_session_id, "frozen")

        with pytest.raises(IntegrityViolation):
            store.run(lambda uow: uow.checkpoints.update(checkpoint.id, name="thaw"))

    def test_attribute_change_is_rejected_at_flush(
        self, store, service, sample_session_id
    ):
        checkpoint = service.create(sample_session_id, "frozen")

        def _tamper(uow):
            row = uow.session.get(Checkpoint, checkpoint.id)
            row.name = "thawed"
            uow.session.flush()

        with pytest.raises(IntegrityViolation):
            store.run(_tamper)

        assert service.get(checkpoint.id).name == "frozen"
