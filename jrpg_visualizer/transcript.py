"""Coding-agent transcript parsing.

Transcripts are either a JSON array or JSONL (one object per line). Entries
carry ``role`` and ``content`` at the top level, or nested under ``message``
as current agent transcripts write them. Content is a string or a list of
blocks, of which only ``{"type": "text"}`` blocks are read.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

RECENT_ENTRIES = 15
SEPARATOR = "\n---\n"

_TODO_PATTERN = re.compile(r"""TodoWrite.*?content['":\s]+['"]([^'"]+)['"]""", re.IGNORECASE | re.DOTALL)


def _load_entries(text: str) -> list[dict[str, Any]]:
    if text.lstrip().startswith("["):
        data = json.loads(text)
        return [e for e in data if isinstance(e, dict)]

    entries = []
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


def _role_and_content(entry: dict[str, Any]) -> tuple[str | None, Any]:
    message = entry.get("message")
    if isinstance(message, dict) and "role" in message:
        return message.get("role"), message.get("content")
    return entry.get("role"), entry.get("content")


def extract_text_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            block["text"]
            for block in content
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        )
    return ""


def parse_transcript(transcript_path: str | Path, max_chars: int = 2000) -> str:
    """Recent user/assistant text from the transcript, capped at ``max_chars``.

    Returns "" when the file is missing or unreadable.
    """
    path = Path(transcript_path) if transcript_path else None
    if path is None or not path.is_file():
        return ""
    try:
        entries = _load_entries(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Failed to parse transcript %s: %s", path, e)
        return ""

    texts = []
    for entry in entries[-RECENT_ENTRIES:]:
        role, content = _role_and_content(entry)
        if role not in ("user", "assistant"):
            continue
        text = extract_text_content(content)
        if text:
            texts.append(text)
    return SEPARATOR.join(texts)[-max_chars:]


def extract_current_task(transcript_path: str | Path) -> str | None:
    """Content of the latest TodoWrite item mentioned in recent context."""
    context = parse_transcript(transcript_path, max_chars=5000)
    matches = _TODO_PATTERN.findall(context)
    return matches[-1] if matches else None
