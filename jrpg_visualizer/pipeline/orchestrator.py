"""Pipeline orchestrator — runs one TodoWrite hook invocation end-to-end.

Flow:
  1. Load the session's previous todo snapshot.
  2. Save the current snapshot for the next run (unconditionally).
  3. Detect a transition. None → stop: no narration, event or push.
  4. Read recent transcript context.
  5. Narrate the transition. No text → stop: no event, no push.
  6. If the rate limiter allows, illustrate the narration using the session
     anchor and the latest image as style references. The first image of a
     session becomes its anchor. No image → the event is still recorded.
  7. Persist the event with flavour damage.
  8. Push {event, state} to the dashboard.

Every step runs sequentially; nothing is retried.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from jrpg_visualizer.detector import TaskMatcher, TransitionDetector, match_by_content
from jrpg_visualizer.images import ImageGenerationError, ImageGenerator
from jrpg_visualizer.jrpg import calculate_damage
from jrpg_visualizer.llm import LLM, LLMError
from jrpg_visualizer.models import BattleEvent, HookPayload, StateTransition, TodoItem
from jrpg_visualizer.notifier import DashboardNotifier
from jrpg_visualizer.prompts import PromptError, build_transition_prompt
from jrpg_visualizer.rate_limiter import RateLimiter
from jrpg_visualizer.storage import BattleStore
from jrpg_visualizer.transcript import parse_transcript

logger = logging.getLogger(__name__)

CONTEXT_CHARS = 2000


@dataclass
class HandleResult:
    transition: StateTransition | None = None
    event: BattleEvent | None = None
    image_path: str | None = None
    notified: bool = False


async def _narrate(llm: LLM, transition: StateTransition, context: str) -> str | None:
    try:
        prompt = build_transition_prompt(transition, context)
        text = await llm(transition.type, prompt)
    except (LLMError, PromptError) as e:
        logger.warning("Failed to generate battle description: %s", e)
        return None
    text = text.strip()
    return text or None


async def _illustrate(
    *,
    store: BattleStore,
    session_id: str,
    description: str,
    image_generator: ImageGenerator,
) -> str | None:
    anchor_path = store.get_session_anchor(session_id)
    previous_path = store.get_most_recent_image(session_id)
    try:
        image_path = await image_generator(description, anchor_path, previous_path)
    except (ImageGenerationError, PromptError) as e:
        logger.warning("Failed to generate battle image: %s", e)
        return None
    if image_path and not anchor_path:
        store.save_session_anchor(session_id, image_path)
    return image_path


async def handle_todo_write(
    *,
    payload: HookPayload,
    todos: list[TodoItem],
    store: BattleStore,
    llm: LLM,
    image_generator: ImageGenerator | None,
    rate_limiter: RateLimiter,
    notifier: DashboardNotifier,
    matcher: TaskMatcher = match_by_content,
) -> HandleResult:
    """Process one TodoWrite call. Storage errors propagate to the caller."""
    session_id = payload.session_id

    previous_todos = store.get_previous_todos(session_id)
    logger.debug("Previous todos: %d", len(previous_todos))
    store.save_todos(session_id, todos)

    transition = TransitionDetector(store, matcher).detect(previous_todos, todos, session_id)
    if transition is None:
        logger.debug("No transition detected")
        return HandleResult()
    logger.debug("Transition: %s (%r)", transition.type, transition.task.content)

    context = parse_transcript(payload.transcript_path, max_chars=CONTEXT_CHARS)
    logger.debug("Context length: %d", len(context))

    description = await _narrate(llm, transition, context)
    if description is None:
        return HandleResult(transition=transition)

    image_path = None
    if image_generator is not None and rate_limiter.should_generate_image():
        image_path = await _illustrate(
            store=store,
            session_id=session_id,
            description=description,
            image_generator=image_generator,
        )

    event = BattleEvent(
        session_id=session_id,
        event_type=transition.type,
        task_content=transition.task.content,
        description=description,
        image_path=image_path,
        damage_dealt=calculate_damage(transition.task),
        created_at=int(time.time() * 1000),
    )
    event.id = store.save_event(event)
    logger.debug("Event saved with id %d", event.id)

    notified = await notifier.notify(event, transition.new_state)
    return HandleResult(
        transition=transition,
        event=event,
        image_path=image_path,
        notified=notified,
    )
