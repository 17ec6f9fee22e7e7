"""
Tests for live subscriptions and fan-out.
"""

import threading

import pytest

from chatledger.db.store import Store
from chatledger.exceptions import SubscriberDisconnected
from chatledger.sync.broadcast import SubscriberRegistry


def _event(version: int) -> dict:
    return {"version": version, "event_type": "note.created", "entity_type": "note"}


class TestSubscription:
    def test_events_are_delivered_in_order(self):
        registry = SubscriberRegistry(queue_size=10)
        subscription = registry.register(last_version=0)

        registry.publish([_event(1), _event(2)])
        registry.publish([_event(3)])

        assert [subscription.get(timeout=0)["version"] for _ in range(3)] == [1, 2, 3]
        assert subscription.get(timeout=0) is None
        assert subscription.last_delivered == 3

    def test_backlog_is_drained_before_live_events(self):
        registry = SubscriberRegistry(queue_size=10)
        subscription = registry.register(
            last_version=2, backlog=[_event(1), _event(2)]
        )
        registry.publish([_event(3)])

        assert subscription.last_delivered == 0
        versions = [subscription.get(timeout=0)["version"] for _ in range(3)]
        assert versions == [1, 2, 3]

    def test_duplicate_versions_are_ignored(self):
        registry = SubscriberRegistry(queue_size=10)
        subscription = registry.register(last_version=1)

        registry.publish([_event(1), _event(2)])

        assert subscription.get(timeout=0)["version"] == 2
        assert subscription.pending() == 0

    def test_full_queue_disconnects_subscriber(self):
        registry = SubscriberRegistry(queue_size=2)
        slow = registry.register(last_version=0)
        fast = registry.register(last_version=0)

        registry.publish([_event(1), _event(2)])
        fast.get(timeout=0)
        fast.get(timeout=0)
        registry.publish([_event(3)])

        assert slow.closed is True
        assert slow.reason == "queue full"
        assert len(registry) == 1
        # Already-queued events are still delivered before the disconnect
        assert [slow.get(timeout=0)["version"] for _ in range(2)] == [1, 2]
        with pytest.raises(SubscriberDisconnected) as exc_info:
            slow.get(timeout=0)
        assert exc_info.value.last_version == 2
        assert exc_info.value.retryable is True
        assert fast.get(timeout=0)["version"] == 3

    def test_gap_disconnects_subscriber(self):
        registry = SubscriberRegistry(queue_size=10)
        subscription = registry.register(last_version=0)

        registry.publish([_event(2)])

        assert subscription.closed is True
        assert subscription.reason == "gap before version 2"
        with pytest.raises(SubscriberDisconnected):
            subscription.get(timeout=0)

    def test_close_all_on_shutdown(self):
        registry = SubscriberRegistry()
        first = registry.register(last_version=0)
        second = registry.register(last_version=0)

        registry.close_all()

        assert len(registry) == 0
        for subscription in (first, second):
            with pytest.raises(SubscriberDisconnected, match="server shutdown"):
                subscription.get(timeout=0)

    def test_context_manager_unregisters(self):
        registry = SubscriberRegistry()

        with registry.register(last_version=0):
            assert len(registry) == 1

        assert len(registry) == 0


class TestLiveSubscriptions:
    def test_commits_reach_subscribers(self, store: Store):
        with store.sync.subscribe() as subscription:
            store.run(lambda uow: uow.sessions.create(provider="p", title="live"))

            event = subscription.get(timeout=1)

        assert event["event_type"] == "session.created"
        assert event["version"] == 1

    def test_rolled_back_units_are_not_published(self, store: Store):
        def _create_then_fail(uow):
            uow.sessions.create(provider="p", title="x")
            raise RuntimeError("no")

        with store.sync.subscribe() as subscription:
            with pytest.raises(RuntimeError):
                store.run(_create_then_fail)

            assert subscription.get(timeout=0) is None

    def test_resume_from_cursor_has_no_gap_or_duplicate(
        self, store: Store, sample_session_id
    ):
        cursor = 2
        with store.sync.subscribe(from_version=cursor) as subscription:
            store.run(
                lambda uow: uow.sessions.update(
                    uow.sessions.get(sample_session_id), title="renamed"
                )
            )
            received = []
            while (event := subscription.get(timeout=0)) is not None:
                received.append(event["version"])

        assert received == list(range(cursor + 1, store.sync.current_version() + 1))

    def test_concurrent_writers_are_delivered_in_order(self, store: Store):
        with store.sync.subscribe() as subscription:

            def _writer(n: int) -> None:
                for i in range(10):
                    store.run(
                        lambda uow, i=i: uow.sessions.create(
                            provider="p", title=f"w{n}-{i}"
                        )
                    )

            threads = [threading.Thread(target=_writer, args=(n,)) for n in range(3)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            versions = []
            while (event := subscription.get(timeout=0)) is not None:
                versions.append(event["version"])

        assert versions == list(range(1, 31))
