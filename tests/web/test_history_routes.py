"""Tests for the history delta API."""


def _record(record_id, **overrides):
    data = {"id": record_id, "message": "m", "emotion": "joy", "intensity": 0.5, "createdAt": 1, "updatedAt": 1, "rev": 1}
    data.update(overrides)
    return data


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_empty_pull(client):
    resp = client.get("/api/history")
    assert resp.status_code == 200
    assert resp.json() == {"records": [], "nextCursor": "0"}


def test_push_and_pull(client):
    resp = client.post("/api/history", json={"records": [_record("a"), _record("b")]})
    assert resp.status_code == 200
    assert resp.json() == {"acceptedIds": ["a", "b"], "rejected": []}

    body = client.get("/api/history").json()
    assert [r["id"] for r in body["records"]] == ["a", "b"]
    assert body["nextCursor"] == "2"

    again = client.get("/api/history", params={"since": body["nextCursor"]}).json()
    assert again == {"records": [], "nextCursor": "2"}


def test_update_moves_record_past_cursor(client):
    client.post("/api/history", json={"records": [_record("a"), _record("b")]})
    cursor = client.get("/api/history").json()["nextCursor"]

    client.post("/api/history", json={"records": [_record("a", message="edited", rev=2, updatedAt=5)]})
    body = client.get("/api/history", params={"since": cursor}).json()

    assert [r["id"] for r in body["records"]] == ["a"]
    assert body["records"][0]["message"] == "edited"
    assert body["records"][0]["rev"] == 2


def test_push_is_idempotent(client):
    client.post("/api/history", json={"records": [_record("a")]})
    resp = client.post("/api/history", json={"records": [_record("a")]})
    assert resp.json()["acceptedIds"] == ["a"]
    body = client.get("/api/history").json()
    assert len(body["records"]) == 1


def test_newest_in_batch_wins(client):
    resp = client.post(
        "/api/history",
        json={"records": [_record("a", message="new", updatedAt=9), _record("a", message="old", updatedAt=3)]},
    )
    assert resp.json()["acceptedIds"] == ["a"]
    assert client.get("/api/history").json()["records"][0]["message"] == "new"


def test_invalid_records_rejected(client):
    resp = client.post(
        "/api/history",
        json={"records": [_record("ok"), _record("bad", intensity=-3), {"message": "no id"}, _record("neg", rev=-1)]},
    )
    assert resp.json() == {"acceptedIds": ["ok"], "rejected": ["bad", "neg"]}


def test_tombstones_are_stored(client):
    client.post("/api/history", json={"records": [_record("a", deleted=True, rev=2)]})
    assert client.get("/api/history").json()["records"][0]["deleted"] is True


def test_invalid_cursor(client):
    assert client.get("/api/history", params={"since": "abc"}).status_code == 400
    assert client.get("/api/history", params={"since": "-1"}).status_code == 400


def test_limit(client):
    client.post("/api/history", json={"records": [_record(f"r{i}") for i in range(5)]})
    body = client.get("/api/history", params={"limit": 2}).json()
    assert len(body["records"]) == 2
    assert body["nextCursor"] == "2"


def test_clear(client):
    client.post("/api/history", json={"records": [_record("a")]})
    assert client.delete("/api/history").json() == {"removed": 1}
    assert client.get("/api/history").json()["records"] == []
