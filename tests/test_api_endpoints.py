import json

from fastapi.testclient import TestClient

from chatstream.main import app
from chatstream.services.request_relay import relay


client = TestClient(app)


def _data_events(raw: str) -> list[dict]:
    events = []
    for line in raw.splitlines():
        if line.startswith("data: "):
            events.append(json.loads(line[len("data: ") :]))
    return events


def test_health() -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_relay_job_streams_scripted_events() -> None:
    create = client.post(
        "/requests",
        json={
            "request_id": "req_demo",
            "events": [
                {"data": "Hello", "info": {"ephemeral": False}},
                {"data": " world", "delay_ms": 5},
                {"progress": 1},
            ],
        },
    )
    assert create.status_code == 200
    assert create.json()["request_id"] == "req_demo"
    assert create.json()["event_count"] == 3
    assert create.json()["status"] == "pending"

    response = client.get("/requests/req_demo/events")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    events = _data_events(response.text)
    assert [e.get("data") for e in events] == ["Hello", " world", None]
    assert events[0]["info"] == {"ephemeral": False}
    assert events[-1]["progress"] == 1
    assert all("delay_ms" not in e for e in events)

    assert client.get("/requests/req_demo").json()["status"] == "completed"


def test_generated_request_id() -> None:
    body = client.post("/requests", json={"events": []}).json()
    assert body["request_id"].startswith("req_")


def test_cancelled_job_stops_streaming() -> None:
    client.post("/requests", json={"request_id": "req_c", "events": [{"data": "never"}]})
    assert client.post("/requests/req_c/cancel").json() == {"success": True}

    response = client.get("/requests/req_c/events")
    assert _data_events(response.text) == []
    assert relay.get("req_c").status == "cancelled"


def test_unknown_request() -> None:
    assert client.get("/requests/nope").status_code == 404
    assert client.get("/requests/nope/events").status_code == 404
    assert client.post("/requests/nope/cancel").status_code == 404


def test_chat_message_flow() -> None:
    client.post("/chats/chat_api/messages", json={"message": {"payload": "hi", "direction": "outgoing"}})
    client.post("/chats/chat_api/messages", json={"message": {"payload": ""}, "is_streaming": True})

    listing = client.get("/chats/chat_api/messages").json()
    assert listing["is_chat_loading"] is True
    assert len(listing["messages"]) == 2

    final = {
        "payload": "hello back",
        "tool": '{"citations": []}',
        "thinkingDuration": 2,
        "sentTime": "2026-01-01T00:00:00Z",
    }
    saved = client.put("/chats/chat_api/messages/final", json={"message": final, "is_chat_loading": False})
    assert saved.status_code == 200
    assert saved.json()["payload"] == "hello back"
    assert saved.json()["isStreaming"] is False

    listing = client.get("/chats/chat_api/messages").json()
    assert listing["is_chat_loading"] is False
    assert [m["payload"] for m in listing["messages"]] == ["hi", "hello back"]
    assert listing["messages"][1]["thinkingDuration"] == 2


def test_invalid_final_message_rejected() -> None:
    response = client.put("/chats/chat_api/messages/final", json={"message": {"payload": "x"}})
    assert response.status_code == 422


def test_set_loading_flag() -> None:
    response = client.post("/chats/chat_l/loading", params={"is_chat_loading": True})
    assert response.json() == {"is_chat_loading": True}
    assert client.get("/chats/chat_l/messages").json()["is_chat_loading"] is True
