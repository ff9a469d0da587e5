"""Core domain models.

The detector, store, notifier and dashboard feed all operate on these types.
Pydantic validates at every boundary: hook stdin, the sqlite JSON columns and
the dashboard POST body. Python attributes are snake_case; the JSON form keeps
the camelCase keys the dashboard and persisted rows use (``activeForm``,
``inBattle``, ...). Both spellings are accepted on input.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TodoStatus = Literal["pending", "in_progress", "completed"]

TransitionType = Literal[
    "BATTLE_START",  # task seen as in_progress
    "ATTACK",        # reserved: no rule produces it yet
    "VICTORY",       # in_progress -> completed
    "RETREAT",       # in_progress task removed
    "PARTY_WIPE",    # reserved: no rule produces it yet
]

Element = Literal[
    "DEBUG",
    "LOGIC",
    "PATTERN",
    "ASSERT",
    "ARCHITECTURE",
    "SYNTAX",
    "REFACTOR",
]

JRPGClass = Literal[
    "Sage",
    "Architect",
    "Debugger",
    "Scribe",
    "Artificer",
    "Guardian",
    "Chronomancer",
]

FeedMessageType = Literal["connected", "battle_update", "new_event", "heartbeat"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)


class TodoItem(_CamelModel):
    """One entry of the agent's todo list. Identity is the ``content`` text."""

    content: str
    status: TodoStatus
    active_form: str = ""


class Ability(_CamelModel):
    name: str
    mp_cost: int
    damage: int
    element: Element
    description: str


class Enemy(_CamelModel):
    """A task rendered as a monster. ``description`` is the task text."""

    name: str
    description: str
    max_hp: int
    current_hp: int
    weakness: Element
    sprite: str | None = None


class PartyMember(_CamelModel):
    id: int
    name: str
    # "class" is a keyword, so the attribute is class_ and the wire name is "class"
    class_: JRPGClass = Field(alias="class")
    max_hp: int
    current_hp: int
    max_mp: int
    current_mp: int
    level: int = 1
    experience: int = 0
    abilities: list[Ability] | None = None


class BattleState(_CamelModel):
    """Latest derived battle state of a session, replaced wholesale on every transition."""

    session_id: str
    in_battle: bool
    current_enemy: Enemy | None = None
    party: list[PartyMember] = Field(default_factory=list)
    turn_count: int = 0
    battle_started_at: int | None = None  # epoch ms
    total_damage_dealt: int = 0
    abilities_used: list[str] = Field(default_factory=list)


class BattleEvent(_CamelModel):
    """Append-only log entry. ``id`` is assigned by the store on insert."""

    id: int | None = None
    session_id: str
    event_type: TransitionType
    task_content: str
    description: str
    image_path: str | None = None
    damage_dealt: int = 0
    created_at: int  # epoch ms


class StateTransition(_CamelModel):
    type: TransitionType
    task: TodoItem
    previous_state: BattleState | None = None
    new_state: BattleState


# ---------------------------------------------------------------------------
# Hook wire types
# ---------------------------------------------------------------------------

class HookPayload(BaseModel):
    """PostToolUse payload read from the hook's stdin. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    hook_event_name: str = ""
    tool_name: str = ""
    tool_input: Any = None
    tool_output: Any = None
    transcript_path: str = ""
    session_id: str = ""
    cwd: str = ""
    permission_mode: str = ""
    tool_use_id: str | None = None


class TodoWriteInput(BaseModel):
    todos: list[TodoItem]


class HookOutput(_CamelModel):
    continue_: bool = Field(default=True, alias="continue")
    stop_reason: str | None = None
    suppress_output: bool | None = None
    system_message: str | None = None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Dashboard feed types
# ---------------------------------------------------------------------------

class DashboardNotification(BaseModel):
    event: BattleEvent
    state: BattleState


class FeedMessage(_CamelModel):
    """One message on the dashboard event stream."""

    type: FeedMessageType
    data: BattleState | BattleEvent | None = None
    timestamp: int | None = None  # epoch ms
