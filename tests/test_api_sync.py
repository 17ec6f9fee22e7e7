"""
Tests for the sync API endpoints.
"""

import json

from sqlalchemy import text


def _sse_events(body: str) -> list[dict]:
    """Parse `id/event/data` SSE messages (comments are skipped)."""
    events = []
    for block in body.strip().split("\n\n"):
        fields = {}
        for line in block.splitlines():
            if line.startswith(":"):
                continue
            key, _, value = line.partition(": ")
            fields[key] = value
        if fields:
            events.append(fields)
    return events


class TestVersionAndDelta:
    def test_version(self, api_client, sample_session_id):
        response = api_client.get("/sync/version")

        assert response.status_code == 200
        assert response.json() == {"version": 5}

    def test_delta_uses_camel_case(self, api_client, sample_session_id):
        response = api_client.get("/sync/delta", params={"from": 0, "limit": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["fromVersion"] == 0
        assert data["toVersion"] == 2
        assert data["currentVersion"] == 5
        assert data["hasMore"] is True
        first = data["events"][0]
        assert first["eventType"] == "session.created"
        assert first["entityType"] == "session"
        assert first["entityId"] == str(sample_session_id)
        assert "createdAt" in first

    def test_delta_defaults_to_full_history(self, api_client, sample_session_id):
        data = api_client.get("/sync/delta").json()

        assert [e["version"] for e in data["events"]] == [1, 2, 3, 4, 5]
        assert data["hasMore"] is False

    def test_future_cursor_is_gone(self, api_client, sample_session_id):
        response = api_client.get("/sync/delta", params={"from": 99})

        assert response.status_code == 410
        body = response.json()
        assert body["error"] == "stale_cursor"
        assert body["action"] == "snapshot"
        assert body["retryable"] is False

    def test_pruned_cursor_is_gone(self, api_client, store, sample_session_id):
        with store.engine.begin() as conn:
            conn.execute(text("DELETE FROM events WHERE version <= 2"))

        assert api_client.get("/sync/delta", params={"from": 0}).status_code == 410
        assert api_client.get("/sync/delta", params={"from": 2}).status_code == 200


class TestSnapshot:
    def test_snapshot(self, api_client, sample_session_id):
        response = api_client.get("/sync/snapshot")

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == 5
        assert [s["id"] for s in data["sessions"]] == [str(sample_session_id)]
        assert len(data["messages"]) == 3
        assert data["checkpoints"] == []


class TestPostEvent:
    def test_accepted_event(self, api_client, sample_session_id):
        response = api_client.post(
            "/sync/event",
            json={
                "eventType": "session.updated",
                "entityId": str(sample_session_id),
                "data": {"title": "Renamed remotely"},
                "actor": "laptop",
                "baseVersion": 5,
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["accepted"] is True
        assert body["version"] == 6
        assert body["events"][0]["eventType"] == "session.updated"
        assert body["events"][0]["data"]["title"] == "Renamed remotely"

    def test_conflicting_base_version(self, api_client, sample_session_id):
        api_client.post(
            "/sync/event",
            json={
                "eventType": "session.updated",
                "entityId": str(sample_session_id),
                "data": {"archived": True},
            },
        )

        response = api_client.post(
            "/sync/event",
            json={
                "eventType": "session.updated",
                "entityId": str(sample_session_id),
                "data": {"title": "stale edit"},
                "baseVersion": 5,
            },
        )

        assert response.status_code == 409
        assert response.json()["error"] == "integrity_violation"

    def test_missing_entity(self, api_client):
        response = api_client.post(
            "/sync/event",
            json={
                "eventType": "session.deleted",
                "entityId": "00000000-0000-0000-0000-000000000000",
            },
        )

        assert response.status_code == 404
        assert response.json()["entity_type"] == "session"

    def test_snake_case_input_is_accepted(self, api_client):
        response = api_client.post(
            "/sync/event",
            json={"event_type": "note.added", "data": {"text": "hi"}},
        )

        assert response.status_code == 201
        assert response.json()["version"] == 1

    def test_invalid_body(self, api_client):
        response = api_client.post("/sync/event", json={"data": {}})

        assert response.status_code == 422


class TestSubscribe:
    def test_stream_replays_from_cursor(self, api_client, sample_session_id):
        with api_client.stream("GET", "/sync/subscribe?from=3&limit=2") as response:
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/event-stream")
            body = "".join(response.iter_text())

        assert body.startswith(": connected")
        events = _sse_events(body)
        assert [e["id"] for e in events] == ["4", "5"]
        assert events[0]["event"] == "message.created"
        payload = json.loads(events[0]["data"])
        assert payload["version"] == 4
        assert payload["eventType"] == "message.created"

    def test_stale_cursor_is_rejected_before_streaming(
        self, api_client, sample_session_id
    ):
        response = api_client.get("/sync/subscribe", params={"from": 42})

        assert response.status_code == 410
        assert response.json()["action"] == "snapshot"

    def test_stream_closes_subscription(self, api_client, store, sample_session_id):
        with api_client.stream("GET", "/sync/subscribe?from=0&limit=1") as response:
            "".join(response.iter_text())

        assert len(store.sync.subscribers) == 0
