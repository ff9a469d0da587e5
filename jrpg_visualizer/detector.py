"""Todo-diff transition detector.

Given the previous and current todo snapshots of a session, the detector
emits at most one StateTransition per call and persists the resulting
BattleState. Rules are evaluated in a fixed order and the first match wins:

    1. battle_start_new      current task in_progress with no previous match
    2. battle_start_pending  previous pending -> current in_progress
    3. victory               previous in_progress -> current completed,
                             only if the session already has a stored state
    4. retreat               previous in_progress task missing from current

Rules 1-3 are tried per current task in list order, so an earlier task's
victory beats a later task's battle start. Rule 4 only runs once the scan of
current tasks found nothing. No rule produces ATTACK or PARTY_WIPE.

Task identity goes through a TaskMatcher, exact ``content`` equality by
default. Renaming a task mid-flight therefore reads as a retreat followed by
a new battle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from jrpg_visualizer.battle import create_battle_state, create_retreat_state, create_victory_state
from jrpg_visualizer.models import BattleState, StateTransition, TodoItem, TransitionType

logger = logging.getLogger(__name__)

TaskMatcher = Callable[[TodoItem, TodoItem], bool]


def match_by_content(candidate: TodoItem, task: TodoItem) -> bool:
    return candidate.content == task.content


def find_match(todos: list[TodoItem], task: TodoItem, matcher: TaskMatcher) -> TodoItem | None:
    """First item in ``todos`` the matcher pairs with ``task``."""
    for candidate in todos:
        if matcher(candidate, task):
            return candidate
    return None


class StateSource(Protocol):
    def get_current_state(self, session_id: str) -> BattleState | None: ...
    def save_state(self, state: BattleState) -> None: ...
    def get_party_members(self) -> list: ...


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at. ``stored_state`` is read once, before any write."""

    session_id: str
    task: TodoItem
    previous: TodoItem | None
    stored_state: BattleState | None
    store: StateSource


@dataclass(frozen=True)
class TransitionRule:
    name: str
    type: TransitionType
    match: Callable[[RuleContext], bool]
    build: Callable[[RuleContext], BattleState]


# ---------------------------------------------------------------------------
# Per-task rules (scanned over current todos)
# ---------------------------------------------------------------------------

def _starts_new(ctx: RuleContext) -> bool:
    return ctx.previous is None and ctx.task.status == "in_progress"


def _starts_pending(ctx: RuleContext) -> bool:
    return (
        ctx.previous is not None
        and ctx.previous.status == "pending"
        and ctx.task.status == "in_progress"
    )


def _build_battle(ctx: RuleContext) -> BattleState:
    return create_battle_state(ctx.task, ctx.session_id, ctx.store.get_party_members())


def _completes(ctx: RuleContext) -> bool:
    return (
        ctx.previous is not None
        and ctx.previous.status == "in_progress"
        and ctx.task.status == "completed"
        and ctx.stored_state is not None
    )


def _build_victory(ctx: RuleContext) -> BattleState:
    state = ctx.stored_state
    if state is None:
        raise ValueError("victory requires a stored battle state")
    return create_victory_state(state)


# ---------------------------------------------------------------------------
# Removal rule (scanned over previous todos)
# ---------------------------------------------------------------------------

def _vanished(ctx: RuleContext) -> bool:
    # Here ctx.task is the previous item and ctx.previous its match in current.
    return ctx.task.status == "in_progress" and ctx.previous is None


def _build_retreat(ctx: RuleContext) -> BattleState:
    return create_retreat_state(ctx.session_id)


TASK_RULES: tuple[TransitionRule, ...] = (
    TransitionRule("battle_start_new", "BATTLE_START", _starts_new, _build_battle),
    TransitionRule("battle_start_pending", "BATTLE_START", _starts_pending, _build_battle),
    TransitionRule("victory", "VICTORY", _completes, _build_victory),
)

REMOVAL_RULES: tuple[TransitionRule, ...] = (
    TransitionRule("retreat", "RETREAT", _vanished, _build_retreat),
)


class TransitionDetector:
    """Runs the ordered rules against a store. One instance per hook run."""

    def __init__(self, store: StateSource, matcher: TaskMatcher = match_by_content) -> None:
        self._store = store
        self._matcher = matcher

    def detect(
        self,
        previous_todos: list[TodoItem],
        current_todos: list[TodoItem],
        session_id: str,
    ) -> StateTransition | None:
        """Return the first transition found, or None. Saves the new state when one fires."""
        stored_state = self._store.get_current_state(session_id)

        for task in current_todos:
            previous = find_match(previous_todos, task, self._matcher)
            ctx = RuleContext(session_id, task, previous, stored_state, self._store)
            transition = self._apply(TASK_RULES, ctx)
            if transition:
                return transition

        for task in previous_todos:
            still_there = find_match(current_todos, task, self._matcher)
            ctx = RuleContext(session_id, task, still_there, stored_state, self._store)
            transition = self._apply(REMOVAL_RULES, ctx)
            if transition:
                return transition

        return None

    def _apply(self, rules: tuple[TransitionRule, ...], ctx: RuleContext) -> StateTransition | None:
        for rule in rules:
            if not rule.match(ctx):
                continue
            new_state = rule.build(ctx)
            self._store.save_state(new_state)
            logger.debug("rule %s fired for %r in session %s", rule.name, ctx.task.content, ctx.session_id)
            return StateTransition(
                type=rule.type,
                task=ctx.task,
                previous_state=ctx.stored_state,
                new_state=new_state,
            )
        return None
