"""
Tests for the search API.
"""


def test_search_messages(api_client, sample_session_id):
    response = api_client.get("/search", params={"q": "faster"})

    assert response.status_code == 200
    data = response.json()
    assert data["kind"] == "message"
    assert len(data["hits"]) == 1
    assert data["hits"][0]["entity"]["session_id"] == str(sample_session_id)


def test_search_memories(api_client, store):
    store.run(lambda uow: uow.memories.create(content="Prefers tabs over spaces"))

    data = api_client.get("/search", params={"q": "tabs", "kind": "memory"}).json()

    assert [h["kind"] for h in data["hits"]] == ["memory"]


def test_unknown_kind(api_client):
    response = api_client.get("/search", params={"q": "x", "kind": "slides"})

    assert response.status_code == 422


def test_query_is_required(api_client):
    assert api_client.get("/search").status_code == 422
