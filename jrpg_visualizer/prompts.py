"""Handlebars prompt templates for the battle narrator and image model.

Templates are rendered with pybars. Variables use triple-stash ``{{{x}}}`` so
task text and transcript context reach the model without HTML escaping.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pybars

from jrpg_visualizer.battle import format_battle_duration
from jrpg_visualizer.models import StateTransition

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_tail(this, text, count):
    """{{{tail text N}}} — the last N characters of text."""
    return str(text or "")[-int(count):]


_HELPERS: dict[str, Callable] = {
    "tail": _helper_tail,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

JRPG_SYSTEM_PROMPT = """You are a narrator for a 16-bit JRPG battle system. Your role is to describe coding tasks and tool usage as dramatic fantasy battles.

SETTING:
The Digital Realm - a pixelated world where code manifests as magical energy. The party of brave developers faces off against bugs, features, and technical challenges that take the form of monsters.

TONE:
- Dramatic and epic, but with occasional humor
- References to classic JRPG tropes (limit breaks, summons, elemental weaknesses)
- Technical terms transformed into fantasy equivalents:
  - "Debugging" → "Purification magic"
  - "Refactoring" → "Restructuring enchantment"
  - "Testing" → "Divination rituals"
  - "Deployment" → "Summoning to the mortal realm"
  - "Git commit" → "Sealing the changes in the Chronicle"
  - "API calls" → "Invoking distant powers"
  - "Error handling" → "Warding against chaos"
  - "Type checking" → "Guardian's blessing"
  - "Code review" → "The Elder's scrutiny"
  - "Merge conflict" → "Dimensional rift"

VISUAL STYLE TO DESCRIBE:
- 16-bit pixel art aesthetic (SNES era)
- Side-view battle perspective (party on right, enemies on left)
- Dramatic spell effects with bright colors
- HP/MP bars and damage numbers floating
- Command menus and battle UI elements

PARTY MEMBERS (always reference by name):
- Claude: The Sage - Master of all coding arts, calm and methodical, wields the Staff of Logic
- TypeScript: The Guardian - Protector of types, steadfast defender
- Git: The Chronomancer - Master of time and versions, can revert any mistake

Keep descriptions vivid but concise (under 150 words). Focus on action and visual imagery that can be translated to pixel art."""

BATTLE_START_TEMPLATE = """A new battle begins! Generate a dramatic JRPG battle scene description.

ENEMY: {{{enemy}}}
TASK: {{{task}}}
RECENT CONTEXT: {{{tail context 1000}}}

Describe the scene as the party encounters this enemy. Include:
- The battlefield environment (a code editor themed realm)
- The enemy's menacing appearance and entrance
- The party taking battle stances
- Dramatic tension as the fight begins

Keep it under 150 words. Use present tense. Be vivid and dramatic. End with anticipation of the first strike."""

VICTORY_TEMPLATE = """VICTORY! Generate a triumphant JRPG victory scene description.

DEFEATED ENEMY: {{{enemy}}}
COMPLETED TASK: {{{task}}}
BATTLE DURATION: {{{duration}}}

Describe the victory celebration. Include:
- The enemy's dramatic defeat animation (dissolving into pixels/light)
- Victory fanfare moment
- Experience points and rewards appearing
- Party celebration poses and expressions

Keep it under 150 words. Use past tense for the defeat, present for celebration. Make it feel earned and satisfying!"""

ATTACK_TEMPLATE = """A powerful attack lands! Generate a JRPG attack scene description.

ATTACKER: Claude (The Sage)
TARGET: {{{enemy}}}
TOOL USED: {{{tool}}}
CONTEXT: {{{tail context 500}}}

Describe the attack animation. Include:
- The attack name and flashy visual effect
- Damage numbers appearing
- Enemy reaction and damage animation
- Party readying the next move

Keep it under 100 words. High energy, action-focused."""

RETREAT_TEMPLATE = """The party retreats! Generate a brief JRPG retreat scene.

ABANDONED TASK: {{{task}}}
ENEMY: {{{enemy}}}

Describe the tactical retreat. Include:
- Party backing away from the enemy
- Enemy watching them leave
- Somber but strategic mood

Keep it under 80 words."""

PARTY_WIPE_TEMPLATE = """Defeat! Generate a JRPG game over scene.

VICTORIOUS ENEMY: {{{enemy}}}
TASK: {{{task}}}

Describe the defeat. Include:
- Party members fallen
- Screen fading to black
- "Continue?" prompt appearing

Keep it under 80 words. Dramatic but with a hint of "try again" hope."""

FALLBACK_TEMPLATE = "Generate a brief JRPG scene transition. The party prepares for their next challenge."

IMAGE_STYLE_PROMPT = """Create a 16-bit JRPG battle scene image in the style of SNES-era Final Fantasy or Chrono Trigger.

STYLE REQUIREMENTS:
- Pixel art aesthetic with clearly visible pixels
- Limited color palette (16-32 colors maximum)
- Side-view battle perspective (party on right side, enemies on left)
- Dark, dramatic background with glowing magical elements
- UI elements visible: HP bars at top, command menu border at bottom-right
- Character sprites should be detailed but clearly pixelated (no anti-aliasing)
- Magical effects with bright, contrasting colors against dark backgrounds
- Sharp pixel edges throughout - no smoothing or blurring

The image should feel nostalgic and authentic to 1990s JRPGs."""

STYLE_CONSISTENCY_PROMPT = """IMPORTANT: Match the exact pixel art style, color palette, character sprite designs, and UI elements from the reference image(s) provided. Maintain visual continuity with previous scenes - same battlefield, same character proportions, same color grading."""

IMAGE_TEMPLATE = """{{{style}}}

SCENE TO GENERATE:
{{{description}}}{{#if has_references}}

{{{consistency}}}{{/if}}"""

_TRANSITION_TEMPLATES = {
    "BATTLE_START": BATTLE_START_TEMPLATE,
    "VICTORY": VICTORY_TEMPLATE,
    "ATTACK": ATTACK_TEMPLATE,
    "RETREAT": RETREAT_TEMPLATE,
    "PARTY_WIPE": PARTY_WIPE_TEMPLATE,
}


def _enemy_name(transition: StateTransition) -> str:
    # A retreat clears the enemy from the new state; fall back to the one being fled.
    for state in (transition.new_state, transition.previous_state):
        if state is not None and state.current_enemy is not None:
            return state.current_enemy.name
    return "Unknown Enemy"


def build_transition_prompt(transition: StateTransition, context: str) -> str:
    """Narration prompt for a transition, with recent transcript context."""
    started_at = transition.previous_state.battle_started_at if transition.previous_state else None
    template = _TRANSITION_TEMPLATES.get(transition.type, FALLBACK_TEMPLATE)
    return render_prompt(template, {
        "enemy": _enemy_name(transition),
        "task": transition.task.content,
        "context": context,
        "duration": format_battle_duration(started_at),
        "tool": "Code Manipulation",
    })


def build_image_prompt(description: str, has_references: bool) -> str:
    return render_prompt(IMAGE_TEMPLATE, {
        "style": IMAGE_STYLE_PROMPT,
        "description": description,
        "has_references": has_references,
        "consistency": STYLE_CONSISTENCY_PROMPT,
    })
