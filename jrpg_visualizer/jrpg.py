"""JRPG tables: enemy mappings, class abilities, default party, HP and damage maths."""

from __future__ import annotations

import random
from typing import Any

from jrpg_visualizer.models import Ability, Element, JRPGClass, PartyMember, TodoItem

# Priority-ordered: the first group with a keyword contained in the task wins.
ENEMY_MAPPINGS: list[dict[str, Any]] = [
    {"keywords": ["bug", "fix", "error", "issue"], "name": "Glitch Fiend", "weakness": "DEBUG"},
    {"keywords": ["test", "spec", "coverage"], "name": "Test Golem", "weakness": "ASSERT"},
    {"keywords": ["refactor", "clean", "reorganize"], "name": "Code Hydra", "weakness": "PATTERN"},
    {"keywords": ["implement", "add", "create", "build"], "name": "Feature Dragon", "weakness": "ARCHITECTURE"},
    {"keywords": ["update", "upgrade", "migrate"], "name": "Version Specter", "weakness": "LOGIC"},
    {"keywords": ["delete", "remove", "deprecate"], "name": "Legacy Wraith", "weakness": "REFACTOR"},
    {"keywords": ["review", "audit", "check"], "name": "Review Sentinel", "weakness": "LOGIC"},
    {"keywords": ["deploy", "release", "ship"], "name": "Deploy Titan", "weakness": "ASSERT"},
    {"keywords": ["document", "readme", "comment"], "name": "Doc Specter", "weakness": "SYNTAX"},
    {"keywords": ["optimize", "performance", "speed"], "name": "Lag Beast", "weakness": "PATTERN"},
    {"keywords": ["security", "auth", "permission"], "name": "Shadow Guardian", "weakness": "LOGIC"},
    {"keywords": ["api", "endpoint", "route"], "name": "Gateway Wyrm", "weakness": "ARCHITECTURE"},
    {"keywords": ["database", "query", "schema"], "name": "Data Elemental", "weakness": "SYNTAX"},
    {"keywords": ["ui", "component", "style", "css"], "name": "Pixel Phantom", "weakness": "PATTERN"},
]

DEFAULT_ENEMY: dict[str, str] = {"name": "Code Elemental", "weakness": "LOGIC"}

BASE_ENEMY_HP = 100
HP_PER_WORD = 15
MAX_BONUS_HP = 300

BASE_DAMAGE = 50
DAMAGE_PER_WORD = 5


def _ability(name: str, mp_cost: int, damage: int, element: Element, description: str) -> Ability:
    return Ability(name=name, mp_cost=mp_cost, damage=damage, element=element, description=description)


CLASS_ABILITIES: dict[JRPGClass, list[Ability]] = {
    "Sage": [
        _ability("Analyze", 10, 0, "LOGIC", "Reveal enemy weakness"),
        _ability("Refactor Storm", 50, 300, "REFACTOR", "Massive restructuring damage"),
        _ability("Debug Ray", 30, 200, "DEBUG", "Purifying light attack"),
    ],
    "Architect": [
        _ability("Blueprint Strike", 25, 150, "ARCHITECTURE", "Structured attack"),
        _ability("Foundation Slam", 40, 250, "PATTERN", "Pattern-based assault"),
    ],
    "Debugger": [
        _ability("Breakpoint", 15, 100, "DEBUG", "Stop enemy in tracks"),
        _ability("Stack Trace", 35, 200, "DEBUG", "Trace and destroy"),
    ],
    "Scribe": [
        _ability("Document Slash", 20, 120, "SYNTAX", "Well-documented attack"),
        _ability("README Blast", 30, 180, "SYNTAX", "Comprehensive damage"),
    ],
    "Artificer": [
        _ability("Feature Forge", 30, 180, "ARCHITECTURE", "Craft new attack"),
        _ability("Implementation Ray", 45, 280, "LOGIC", "Execute implementation"),
    ],
    "Guardian": [
        _ability("Assert Shield", 20, 80, "ASSERT", "Defensive assertion"),
        _ability("Test Barrage", 35, 220, "ASSERT", "Multi-test attack"),
    ],
    "Chronomancer": [
        _ability("Commit Strike", 25, 160, "LOGIC", "Save state attack"),
        _ability("Revert", 40, 0, "REFACTOR", "Undo enemy action"),
    ],
}

# Roster rows without ids; the store assigns ids when seeding.
DEFAULT_PARTY: list[dict[str, Any]] = [
    {"name": "Claude", "class": "Sage", "max_hp": 999, "current_hp": 999,
     "max_mp": 500, "current_mp": 500, "level": 50, "experience": 0},
    {"name": "TypeScript", "class": "Guardian", "max_hp": 800, "current_hp": 800,
     "max_mp": 200, "current_mp": 200, "level": 45, "experience": 0},
    {"name": "Git", "class": "Chronomancer", "max_hp": 600, "current_hp": 600,
     "max_mp": 300, "current_mp": 300, "level": 40, "experience": 0},
]


def default_party() -> list[PartyMember]:
    """The default roster with ids 1..n and class abilities attached."""
    return [
        PartyMember(id=i + 1, abilities=CLASS_ABILITIES[row["class"]], **row)
        for i, row in enumerate(DEFAULT_PARTY)
    ]


def word_count(text: str) -> int:
    """Whitespace-split token count. Blank text counts as one word."""
    return max(len(text.split()), 1)


def calculate_enemy_hp(task_content: str) -> int:
    """100 + 15 per word, bonus capped at 300, so HP is always within [100, 400]."""
    return BASE_ENEMY_HP + min(word_count(task_content) * HP_PER_WORD, MAX_BONUS_HP)


def get_enemy_from_task(task_content: str) -> dict[str, str]:
    """Return {"name", "weakness"} for the first keyword group found in the task."""
    lowered = task_content.lower()
    for mapping in ENEMY_MAPPINGS:
        if any(keyword in lowered for keyword in mapping["keywords"]):
            return {"name": mapping["name"], "weakness": mapping["weakness"]}
    return dict(DEFAULT_ENEMY)


def calculate_damage(task: TodoItem, rng: random.Random | None = None) -> int:
    """Flavour damage: 50 + 5 per word + a random variance in [-10, 9].

    Not clamped to the enemy's remaining HP.
    """
    rng = rng or random
    variance = rng.randint(-10, 9)
    return BASE_DAMAGE + word_count(task.content) * DAMAGE_PER_WORD + variance
