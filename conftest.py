from pathlib import Path

import pytest

from jrpg_visualizer.models import TodoItem
from jrpg_visualizer.storage import BattleStore


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "battles.db"


@pytest.fixture
def store(db_path: Path):
    """A fresh battle database per test, closed afterwards."""
    with BattleStore(db_path) as s:
        yield s


def todo(content: str, status: str = "pending", active_form: str = "") -> TodoItem:
    return TodoItem(content=content, status=status, active_form=active_form or content)


class StubLLM:
    """Returns queued responses in order and records every call."""

    def __init__(self, *responses: str | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, stage: str, prompt: str) -> str:
        self.calls.append((stage, prompt))
        response = self.responses.pop(0) if self.responses else "The battle rages on."
        if isinstance(response, Exception):
            raise response
        return response


class StubImageGenerator:
    """Returns the given path (or raises) and records the references it was given."""

    def __init__(self, result: str | Exception | None = "/images/battle_1.png") -> None:
        self.result = result
        self.calls: list[tuple[str, str | None, str | None]] = []

    async def __call__(self, description, anchor_path, previous_path):
        self.calls.append((description, anchor_path, previous_path))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms
