"""TodoWrite pipeline: todo diff → transition → narration → image → event → dashboard push."""

from .orchestrator import HandleResult, handle_todo_write  # noqa: F401
