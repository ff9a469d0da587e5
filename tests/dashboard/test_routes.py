"""Tests for the dashboard feed endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import todo
from jrpg_visualizer.battle import create_battle_state
from jrpg_visualizer.dashboard import FeedBroadcaster, create_app
from jrpg_visualizer.dashboard.routes import event_stream
from jrpg_visualizer.models import BattleEvent
from jrpg_visualizer.storage import BattleStore


def _event(created_at=1000, image_path=None, session_id="s1"):
    return BattleEvent(
        session_id=session_id,
        event_type="BATTLE_START",
        task_content="Write tests",
        description="A golem rises.",
        image_path=image_path,
        damage_dealt=60,
        created_at=created_at,
    )


@pytest.fixture
def app(db_path):
    return create_app(db_path=db_path, heartbeat_seconds=0.01)


@pytest.fixture
def client(app):
    return TestClient(app)


def _notification():
    state = create_battle_state(todo("Write tests", "in_progress"), "s1", started_at=1000)
    event = _event().model_copy(update={"id": 1})
    return {"event": event.to_json_dict(), "state": state.to_json_dict()}


# ── Pull endpoints ───────────────────────────────────────


def test_health_returns_ok(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_battles_on_empty_database(client: TestClient) -> None:
    data = client.get("/api/battles").json()
    assert data["state"] is None
    assert data["events"] == []
    assert [m["name"] for m in data["party"]] == ["Claude", "TypeScript", "Git"]
    assert data["party"][0]["class"] == "Sage"


def test_battles_returns_latest_state_and_events(client: TestClient, db_path) -> None:
    with BattleStore(db_path) as store:
        store.save_state(create_battle_state(todo("Write tests", "in_progress"), "s1"))
        for t in range(1, 4):
            store.save_event(_event(created_at=t * 1000))
    data = client.get("/api/battles").json()
    assert data["state"]["sessionId"] == "s1"
    assert data["state"]["currentEnemy"]["name"] == "Test Golem"
    assert [e["createdAt"] for e in data["events"]] == [1000, 2000, 3000]
    assert data["events"][0]["eventType"] == "BATTLE_START"


def test_battles_caps_recent_events(client: TestClient, db_path) -> None:
    with BattleStore(db_path) as store:
        for t in range(1, 56):
            store.save_event(_event(created_at=t))
    events = client.get("/api/battles").json()["events"]
    assert len(events) == 50
    assert events[0]["createdAt"] == 6
    assert events[-1]["createdAt"] == 55


def test_battles_database_error_returns_empty(tmp_path) -> None:
    # A directory where the database file should be cannot be opened
    bad = tmp_path / "battles.db"
    bad.mkdir()
    client = TestClient(create_app(db_path=bad))
    assert client.get("/api/battles").json() == {"state": None, "events": [], "party": []}


def test_sessions(client: TestClient, db_path) -> None:
    with BattleStore(db_path) as store:
        store.save_event(_event(created_at=1000, image_path="/img/a.png", session_id="old"))
        store.save_event(_event(created_at=5000, image_path="/img/b.png", session_id="new"))
        store.save_event(_event(created_at=9000, session_id="no-images"))
    data = client.get("/api/sessions").json()
    assert [s["sessionId"] for s in data] == ["new", "old"]
    assert data[0]["imageCount"] == 1


# ── POST /events ─────────────────────────────────────────


def test_post_event_broadcasts_event_then_state(app, client: TestClient) -> None:
    broadcaster: FeedBroadcaster = app.state.broadcaster
    queue = broadcaster.subscribe()
    response = client.post("/api/events", json=_notification())
    assert response.status_code == 200
    assert response.json() == {"success": True}

    first, second = queue.get_nowait(), queue.get_nowait()
    assert first.type == "new_event"
    assert first.data.description == "A golem rises."
    assert second.type == "battle_update"
    assert second.data.session_id == "s1"


def test_post_event_without_subscribers(client: TestClient) -> None:
    assert client.post("/api/events", json=_notification()).json() == {"success": True}


@pytest.mark.parametrize("body", [
    b"not json",
    b"{}",
    json.dumps({"event": {"sessionId": "s1"}, "state": {}}).encode(),
])
def test_post_event_invalid_body(client: TestClient, body) -> None:
    response = client.post("/api/events", content=body, headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid request"}


# ── Event stream ─────────────────────────────────────────


class FakeRequest:
    """Reports disconnected after ``frames`` checks."""

    def __init__(self, frames: int) -> None:
        self.frames = frames

    async def is_disconnected(self) -> bool:
        self.frames -= 1
        return self.frames < 0


def _decode(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


async def test_stream_starts_with_connected() -> None:
    broadcaster = FeedBroadcaster()
    frames = [f async for f in event_stream(FakeRequest(0), broadcaster, heartbeat_seconds=0.01)]
    assert [_decode(f)["type"] for f in frames] == ["connected"]
    assert broadcaster.subscriber_count == 0


async def test_stream_sends_heartbeat_when_idle() -> None:
    broadcaster = FeedBroadcaster()
    frames = [f async for f in event_stream(FakeRequest(2), broadcaster, heartbeat_seconds=0.01)]
    assert [_decode(f)["type"] for f in frames] == ["connected", "heartbeat", "heartbeat"]


async def test_stream_delivers_published_messages() -> None:
    broadcaster = FeedBroadcaster()
    stream = event_stream(FakeRequest(1), broadcaster, heartbeat_seconds=5)
    connected = _decode(await stream.__anext__())
    assert connected["type"] == "connected"
    assert connected["timestamp"] > 0

    broadcaster.publish_event(_event().model_copy(update={"id": 3}))
    message = _decode(await stream.__anext__())
    assert message["type"] == "new_event"
    assert message["data"]["id"] == 3
    assert message["data"]["imagePath"] is None

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert broadcaster.subscriber_count == 0
