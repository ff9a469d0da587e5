"""End-to-end orchestrator tests with stubbed narrator, image model and dashboard.

Each test feeds one or more TodoWrite snapshots through handle_todo_write and
checks what was narrated, illustrated, stored and pushed.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import FakeClock, StubImageGenerator, StubLLM, todo
from jrpg_visualizer.images import GeminiImageGenerator, ImageGenerationError
from jrpg_visualizer.llm import LLMError
from jrpg_visualizer.models import HookPayload
from jrpg_visualizer.pipeline import handle_todo_write
from jrpg_visualizer.rate_limiter import RateLimiter


# ── Helpers ──────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(tmp_path, clock):
    return RateLimiter(tmp_path / "rate-limit.json", clock=clock)


@pytest.fixture
def notifier():
    n = MagicMock()
    n.notify = AsyncMock(return_value=True)
    return n


def _payload(session_id="s1", transcript_path=""):
    return HookPayload(session_id=session_id, transcript_path=transcript_path, tool_name="TodoWrite")


async def _run(store, todos, *, llm=None, images=None, rate_limiter, notifier, **kwargs):
    return await handle_todo_write(
        payload=kwargs.pop("payload", _payload()),
        todos=todos,
        store=store,
        llm=llm or StubLLM(),
        image_generator=images,
        rate_limiter=rate_limiter,
        notifier=notifier,
        **kwargs,
    )


# ── No transition ────────────────────────────────────────


async def test_no_transition_saves_snapshot_only(store, rate_limiter, notifier):
    llm = StubLLM()
    result = await _run(store, [todo("Write tests")], llm=llm, rate_limiter=rate_limiter, notifier=notifier)
    assert result.transition is None
    assert result.event is None
    assert llm.calls == []
    notifier.notify.assert_not_awaited()
    assert [t.content for t in store.get_previous_todos("s1")] == ["Write tests"]
    assert store.get_events("s1") == []


# ── Battle start (full flow) ─────────────────────────────


async def test_battle_start_full_flow(store, rate_limiter, notifier, tmp_path):
    transcript = tmp_path / "transcript.jsonl"
    transcript.write_text(json.dumps({"role": "user", "content": "please write tests"}))
    llm = StubLLM("  The Test Golem rises!  ")
    images = StubImageGenerator("/images/battle_1.png")

    result = await _run(
        store,
        [todo("Write tests", "in_progress")],
        payload=_payload(transcript_path=str(transcript)),
        llm=llm,
        images=images,
        rate_limiter=rate_limiter,
        notifier=notifier,
    )

    assert result.transition.type == "BATTLE_START"
    stage, prompt = llm.calls[0]
    assert stage == "BATTLE_START"
    assert "ENEMY: Test Golem" in prompt
    assert "please write tests" in prompt

    assert images.calls == [("The Test Golem rises!", None, None)]
    assert store.get_session_anchor("s1") == "/images/battle_1.png"

    event = result.event
    assert event.id is not None
    assert event.description == "The Test Golem rises!"
    assert event.image_path == "/images/battle_1.png"
    assert event.task_content == "Write tests"
    assert 50 <= event.damage_dealt <= 69
    assert store.get_events("s1") == [event]

    notifier.notify.assert_awaited_once_with(event, result.transition.new_state)
    assert result.notified is True


async def test_dashboard_down_still_records_event(store, rate_limiter, notifier):
    notifier.notify.return_value = False
    result = await _run(store, [todo("Write tests", "in_progress")], rate_limiter=rate_limiter, notifier=notifier)
    assert result.notified is False
    assert len(store.get_events("s1")) == 1


# ── Narration failures ───────────────────────────────────


async def test_narrator_error_stops_before_event(store, rate_limiter, notifier):
    images = StubImageGenerator()
    result = await _run(
        store,
        [todo("Write tests", "in_progress")],
        llm=StubLLM(LLMError("down")),
        images=images,
        rate_limiter=rate_limiter,
        notifier=notifier,
    )
    assert result.transition.type == "BATTLE_START"
    assert result.event is None
    assert images.calls == []
    assert store.get_events("s1") == []
    notifier.notify.assert_not_awaited()
    # Detection already happened; the state is saved regardless.
    assert store.get_current_state("s1").in_battle is True


async def test_blank_narration_stops_before_event(store, rate_limiter, notifier):
    result = await _run(
        store, [todo("Write tests", "in_progress")], llm=StubLLM("   "),
        rate_limiter=rate_limiter, notifier=notifier,
    )
    assert result.event is None
    notifier.notify.assert_not_awaited()


# ── Images ───────────────────────────────────────────────


async def test_no_image_generator_records_event_without_image(store, rate_limiter, notifier):
    result = await _run(store, [todo("Write tests", "in_progress")], rate_limiter=rate_limiter, notifier=notifier)
    assert result.event.image_path is None
    assert store.get_session_anchor("s1") is None


async def test_image_error_records_event_without_image(store, rate_limiter, notifier):
    result = await _run(
        store,
        [todo("Write tests", "in_progress")],
        images=StubImageGenerator(ImageGenerationError("HTTP 500")),
        rate_limiter=rate_limiter,
        notifier=notifier,
    )
    assert result.event is not None
    assert result.event.image_path is None
    assert store.get_session_anchor("s1") is None
    notifier.notify.assert_awaited_once()


async def test_undecodable_image_still_records_event(store, rate_limiter, notifier, tmp_path):
    gemini = GeminiImageGenerator(api_key="g-key", output_dir=tmp_path / "images")
    resp = MagicMock()
    resp.json.return_value = {"candidates": [{"content": {"parts": [
        {"inlineData": {"mimeType": "image/png", "data": "abc"}},
    ]}}]}
    with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
        result = await _run(
            store, [todo("Write tests", "in_progress")], llm=StubLLM("Scene."), images=gemini,
            rate_limiter=rate_limiter, notifier=notifier,
        )
    assert result.event is not None
    assert result.event.image_path is None
    assert [e.description for e in store.get_events("s1")] == ["Scene."]
    assert store.get_session_anchor("s1") is None
    notifier.notify.assert_awaited_once()


async def test_model_returned_no_image(store, rate_limiter, notifier):
    result = await _run(
        store, [todo("Write tests", "in_progress")], images=StubImageGenerator(None),
        rate_limiter=rate_limiter, notifier=notifier,
    )
    assert result.event.image_path is None


async def test_rate_limited_skips_image(store, rate_limiter, notifier, clock):
    images = StubImageGenerator()
    await _run(store, [todo("Write tests", "in_progress")], images=images,
               rate_limiter=rate_limiter, notifier=notifier)
    clock.advance(1000)
    result = await _run(store, [todo("Write tests", "completed")], images=images,
                        rate_limiter=rate_limiter, notifier=notifier)
    assert result.transition.type == "VICTORY"
    assert result.event.image_path is None
    assert len(images.calls) == 1


async def test_later_images_use_anchor_and_latest(store, rate_limiter, notifier, clock):
    await _run(store, [todo("Write tests", "in_progress")], images=StubImageGenerator("/img/1.png"),
               rate_limiter=rate_limiter, notifier=notifier)
    clock.advance(10_000)
    await _run(store, [todo("Write tests", "completed")], images=StubImageGenerator("/img/2.png"),
               rate_limiter=rate_limiter, notifier=notifier)
    clock.advance(10_000)
    images = StubImageGenerator("/img/3.png")
    await _run(
        store,
        [todo("Write tests", "completed"), todo("Deploy service", "in_progress")],
        images=images,
        rate_limiter=rate_limiter,
        notifier=notifier,
    )
    _, anchor, previous = images.calls[0]
    assert anchor == "/img/1.png"
    assert previous == "/img/2.png"
    assert store.get_session_anchor("s1") == "/img/1.png"


# ── Scenarios ────────────────────────────────────────────


async def test_victory_and_retreat_sequence(store, rate_limiter, notifier):
    llm = StubLLM("start", "won", "start again", "fled")
    await _run(store, [todo("Write tests", "in_progress")], llm=llm, rate_limiter=rate_limiter, notifier=notifier)
    victory = await _run(store, [todo("Write tests", "completed")], llm=llm,
                         rate_limiter=rate_limiter, notifier=notifier)
    assert victory.transition.type == "VICTORY"
    assert victory.transition.new_state.current_enemy.current_hp == 0

    await _run(store, [todo("Write tests", "completed"), todo("Deploy service", "in_progress")],
               llm=llm, rate_limiter=rate_limiter, notifier=notifier)
    retreat = await _run(store, [todo("Write tests", "completed")], llm=llm,
                         rate_limiter=rate_limiter, notifier=notifier)
    assert retreat.transition.type == "RETREAT"
    assert "ENEMY: Deploy Titan" in llm.calls[-1][1]
    assert [e.event_type for e in store.get_events("s1")] == [
        "BATTLE_START", "VICTORY", "BATTLE_START", "RETREAT",
    ]


async def test_custom_matcher_is_used(store, rate_limiter, notifier):
    def by_active_form(candidate, task):
        return candidate.active_form == task.active_form

    await _run(store, [todo("Write tests", "in_progress", "Testing")],
               rate_limiter=rate_limiter, notifier=notifier, matcher=by_active_form)
    result = await _run(store, [todo("Write unit tests", "in_progress", "Testing")],
                        rate_limiter=rate_limiter, notifier=notifier, matcher=by_active_form)
    assert result.transition is None
