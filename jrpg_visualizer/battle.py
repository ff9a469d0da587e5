"""BattleState builders for each transition, plus duration formatting."""

from __future__ import annotations

import time

from jrpg_visualizer.jrpg import calculate_enemy_hp, default_party, get_enemy_from_task
from jrpg_visualizer.models import BattleState, Enemy, PartyMember, TodoItem


def now_ms() -> int:
    return int(time.time() * 1000)


def create_enemy(task: TodoItem) -> Enemy:
    info = get_enemy_from_task(task.content)
    hp = calculate_enemy_hp(task.content)
    return Enemy(
        name=info["name"],
        description=task.content,
        max_hp=hp,
        current_hp=hp,
        weakness=info["weakness"],
    )


def create_battle_state(
    task: TodoItem,
    session_id: str,
    party: list[PartyMember] | None = None,
    started_at: int | None = None,
) -> BattleState:
    """Fresh in-battle state for a task that just went in_progress."""
    return BattleState(
        session_id=session_id,
        in_battle=True,
        current_enemy=create_enemy(task),
        party=party if party is not None else default_party(),
        turn_count=1,
        battle_started_at=started_at if started_at is not None else now_ms(),
        total_damage_dealt=0,
        abilities_used=[],
    )


def create_victory_state(previous: BattleState) -> BattleState:
    """Previous state with the battle over and the enemy at 0 HP.

    Party and counters are carried over untouched.
    """
    enemy = previous.current_enemy
    return previous.model_copy(
        update={
            "in_battle": False,
            "current_enemy": enemy.model_copy(update={"current_hp": 0}) if enemy else None,
        },
        deep=True,
    )


def create_retreat_state(session_id: str) -> BattleState:
    """Pristine no-battle state with a freshly loaded default party."""
    return BattleState(
        session_id=session_id,
        in_battle=False,
        current_enemy=None,
        party=default_party(),
        turn_count=0,
        battle_started_at=None,
        total_damage_dealt=0,
        abilities_used=[],
    )


def format_battle_duration(started_at: int | None, now: int | None = None) -> str:
    """Human-readable elapsed time since ``started_at`` (epoch ms): "1h 5m", "3m 12s", "42s"."""
    if not started_at:
        return "unknown"
    elapsed = (now if now is not None else now_ms()) - started_at
    seconds = max(elapsed, 0) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
