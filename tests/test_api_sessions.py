"""
Tests for the sessions API.
"""

import uuid


class TestSessionReads:
    def test_list_sessions(self, api_client, sample_session_id):
        response = api_client.get("/sessions")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == str(sample_session_id)
        assert data["items"][0]["message_count"] == 3

    def test_list_filters(self, api_client, sample_session_id):
        assert api_client.get("/sessions?provider=codex").json()["items"] == []
        archived = api_client.get("/sessions?archived=false").json()["items"]
        assert len(archived) == 1

    def test_get_session(self, api_client, sample_session_id):
        response = api_client.get(f"/sessions/{sample_session_id}")

        assert response.status_code == 200
        assert response.json()["active_branch"] == "main"

    def test_get_missing_session(self, api_client):
        response = api_client.get(f"/sessions/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_invalid_session_id(self, api_client):
        assert api_client.get("/sessions/not-a-uuid").status_code == 422


class TestMessagesAndBranches:
    def test_live_path_and_branches(
        self, api_client, normalizer, sample_session_id, record_factory, three_turns
    ):
        normalizer.normalize(record_factory(three_turns[0], ("assistant", "Edited")))

        live = api_client.get(
            f"/sessions/{sample_session_id}/messages", params={"live": True}
        ).json()
        everything = api_client.get(f"/sessions/{sample_session_id}/messages").json()
        alt = api_client.get(
            f"/sessions/{sample_session_id}/messages", params={"branch": "alt-1"}
        ).json()
        branches = api_client.get(f"/sessions/{sample_session_id}/branches").json()

        assert [m["content"] for m in live] == [three_turns[0][1], "Edited"]
        assert len(everything) == 4
        assert [m["sequence_num"] for m in alt] == [1]
        assert {b["label"]: b["live_count"] for b in branches} == {
            "main": 1,
            "alt-1": 1,
        }


class TestCheckpointsApi:
    def test_create_list_and_snapshot(self, api_client, sample_session_id):
        created = api_client.post(
            f"/sessions/{sample_session_id}/checkpoints",
            params={"actor": "api-test"},
            json={"name": "release", "git_commit": "abc123"},
        )

        assert created.status_code == 201
        checkpoint = created.json()
        assert checkpoint["version"] == 6
        assert checkpoint["message_count"] == 3

        listed = api_client.get(f"/sessions/{sample_session_id}/checkpoints").json()
        assert [c["id"] for c in listed] == [checkpoint["id"]]

        snapshot = api_client.get(
            f"/sessions/{sample_session_id}/checkpoints/{checkpoint['id']}/snapshot"
        ).json()
        assert snapshot["session"]["id"] == str(sample_session_id)
        assert len(snapshot["messages"]) == 3

    def test_snapshot_of_other_session_is_not_found(
        self, api_client, normalizer, sample_session_id, record_factory
    ):
        other = normalizer.normalize(record_factory(("user", "x"), session_id="other"))
        checkpoint = api_client.post(
            f"/sessions/{sample_session_id}/checkpoints", json={"name": "mine"}
        ).json()

        response = api_client.get(
            f"/sessions/{other.session_id}/checkpoints/{checkpoint['id']}/snapshot"
        )

        assert response.status_code == 404

    def test_empty_name_is_rejected(self, api_client, sample_session_id):
        response = api_client.post(
            f"/sessions/{sample_session_id}/checkpoints", json={"name": ""}
        )

        assert response.status_code == 422


class TestDeleteSession:
    def test_delete_session(self, api_client, store, sample_session_id):
        response = api_client.delete(f"/sessions/{sample_session_id}")

        assert response.status_code == 204
        assert api_client.get(f"/sessions/{sample_session_id}").status_code == 404
        last = store.read(lambda uow: uow.events.since(5))
        assert [e.event_type for e in last] == ["session.deleted"]

    def test_delete_missing_session(self, api_client):
        assert api_client.delete(f"/sessions/{uuid.uuid4()}").status_code == 404
