"""Dashboard feed endpoints, mounted under /api.

  GET  /health    liveness
  GET  /battles   pull: latest state, recent events, party roster
  GET  /sessions  sessions that have images, newest first
  GET  /events    push: text/event-stream of connected/battle_update/new_event/heartbeat
  POST /events    receive {event, state} from the hook and broadcast it
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from jrpg_visualizer.models import DashboardNotification, FeedMessage
from jrpg_visualizer.storage import BattleStore

from .events import FeedBroadcaster, feed_message

logger = logging.getLogger(__name__)

RECENT_EVENTS = 50
HEARTBEAT_SECONDS = 30.0

router = APIRouter()


def _sse(message: FeedMessage) -> str:
    return f"data: {json.dumps(message.to_json_dict())}\n\n"


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/battles")
async def get_battles(request: Request):
    """Latest battle state, the 50 most recent events (oldest first) and the party."""
    try:
        with BattleStore(request.app.state.db_path) as store:
            state = store.get_latest_state()
            events = store.get_recent_events(RECENT_EVENTS)
            party = store.get_party_members()
    except sqlite3.Error as e:
        logger.error("Failed to fetch battles: %s", e)
        return {"state": None, "events": [], "party": []}

    return {
        "state": state.to_json_dict() if state else None,
        "events": [e.to_json_dict() for e in events],
        "party": [p.to_json_dict() for p in party],
    }


@router.get("/sessions")
async def list_sessions(request: Request):
    """Sessions with at least one generated image."""
    try:
        with BattleStore(request.app.state.db_path) as store:
            return store.list_sessions()
    except sqlite3.Error as e:
        logger.error("Failed to list sessions: %s", e)
        return []


@router.post("/events")
async def receive_notification(request: Request):
    """Broadcast a hook notification to every connected stream client."""
    try:
        notification = DashboardNotification.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.error("Failed to process notification: %s", e)
        return JSONResponse({"success": False, "error": "Invalid request"}, status_code=400)

    broadcaster: FeedBroadcaster = request.app.state.broadcaster
    broadcaster.publish_event(notification.event)
    broadcaster.publish_state(notification.state)
    return {"success": True}


async def event_stream(
    request: Request,
    broadcaster: FeedBroadcaster,
    heartbeat_seconds: float = HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    """SSE frames until the client disconnects."""
    queue = broadcaster.subscribe()
    try:
        yield _sse(feed_message("connected"))
        while not await request.is_disconnected():
            try:
                message = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                message = feed_message("heartbeat")
            yield _sse(message)
    finally:
        broadcaster.unsubscribe(queue)


@router.get("/events")
async def stream_events(request: Request):
    """Server-sent events stream for live dashboard updates."""
    return StreamingResponse(
        event_stream(request, request.app.state.broadcaster, request.app.state.heartbeat_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"},
    )
