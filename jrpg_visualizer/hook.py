"""PostToolUse hook entry point.

The coding agent runs this once per tool call, passing the payload as JSON on
stdin. Only TodoWrite calls with a well-formed todo list do any work. The
reply on stdout is always ``{"continue": true}``: a failing visualizer must
never block the agent, so errors and the overall timeout are caught here and
only logged, and only when DEBUG is set.

Install in the agent's settings as a PostToolUse hook matching "TodoWrite",
with the command ``jrpg-hook``.

Set NARRATOR=echo to skip the narrator API: the prompt itself is stored as
the scene description.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import TextIO

from pydantic import ValidationError

from jrpg_visualizer.config import HookConfig, load_config
from jrpg_visualizer.images import GeminiImageGenerator
from jrpg_visualizer.llm import LLM, EchoLLM, HttpLLM
from jrpg_visualizer.logging import setup_hook_logging
from jrpg_visualizer.models import HookOutput, HookPayload, TodoItem, TodoWriteInput
from jrpg_visualizer.notifier import DashboardNotifier
from jrpg_visualizer.pipeline import HandleResult, handle_todo_write
from jrpg_visualizer.rate_limiter import RateLimiter
from jrpg_visualizer.storage import BattleStore

logger = logging.getLogger(__name__)

TODO_TOOL = "TodoWrite"


def parse_payload(raw: str) -> tuple[HookPayload, list[TodoItem]] | None:
    """Payload and todos for a TodoWrite call, or None if there is nothing to do."""
    if not raw.strip():
        return None
    try:
        payload = HookPayload.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.debug("Ignoring unparseable hook input: %s", e)
        return None
    if payload.tool_name != TODO_TOOL:
        return None
    try:
        todo_input = TodoWriteInput.model_validate(payload.tool_input)
    except ValidationError as e:
        logger.debug("Ignoring malformed TodoWrite input: %s", e)
        return None
    return payload, todo_input.todos


def build_narrator(config: HookConfig) -> LLM:
    if config.narrator == "echo":
        return EchoLLM()
    return HttpLLM(config.anthropic_api_key, model=config.narrator_model)


async def run_pipeline(payload: HookPayload, todos: list[TodoItem], config: HookConfig) -> HandleResult:
    """Wire the real collaborators and run one invocation."""
    image_generator = None
    if config.gemini_api_key:
        image_generator = GeminiImageGenerator(
            config.gemini_api_key, config.images_dir, model=config.image_model
        )
    else:
        logger.debug("GEMINI_API_KEY not set; images disabled")

    with BattleStore(config.db_path) as store:
        return await handle_todo_write(
            payload=payload,
            todos=todos,
            store=store,
            llm=build_narrator(config),
            image_generator=image_generator,
            rate_limiter=RateLimiter(min_interval_ms=config.rate_limit_ms),
            notifier=DashboardNotifier(config.dashboard_url),
        )


def main(stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout, config: HookConfig | None = None) -> int:
    try:
        config = config or load_config()
        setup_hook_logging(config.debug)

        parsed = parse_payload(stdin.read())
        if parsed is None:
            return _reply(stdout)
        payload, todos = parsed

        if config.narrator == "anthropic" and not config.anthropic_api_key:
            logger.debug("ANTHROPIC_API_KEY not set")
            return _reply(stdout)

        result = asyncio.run(
            asyncio.wait_for(run_pipeline(payload, todos, config), timeout=config.timeout_seconds)
        )
        if result.transition:
            logger.debug("Battle event: %s", result.transition.type)
            if result.image_path:
                logger.debug("Image saved: %s", result.image_path)
    except asyncio.TimeoutError:
        logger.debug("Hook timed out")
    except Exception:
        logger.debug("Hook error", exc_info=True)
    return _reply(stdout)


def _reply(stdout: TextIO) -> int:
    stdout.write(json.dumps(HookOutput().to_json_dict()) + "\n")
    stdout.flush()
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
