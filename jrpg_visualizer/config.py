"""Hook configuration from the environment.

A ``.env`` at the project root is loaded first; real environment variables
win over it. Data and image directories are created on load.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

from jrpg_visualizer.images import DEFAULT_IMAGE_MODEL
from jrpg_visualizer.llm import DEFAULT_MODEL
from jrpg_visualizer.rate_limiter import MIN_INTERVAL_MS

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"


class HookConfig(BaseModel):
    db_path: Path
    images_dir: Path
    dashboard_url: str = "http://localhost:3000"
    narrator: Literal["anthropic", "echo"] = "anthropic"
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    narrator_model: str = DEFAULT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    rate_limit_ms: int = MIN_INTERVAL_MS
    timeout_seconds: float = 30.0
    debug: bool = False


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() not in ("", "0", "false", "no", "off")


def load_config(env_file: Path | None = ROOT / ".env") -> HookConfig:
    if env_file is not None:
        load_dotenv(env_file)

    db_env = os.getenv("DATABASE_PATH", "")
    db_path = Path(db_env) if db_env else DEFAULT_DATA_DIR / "battles.db"
    images_dir = Path(os.getenv("IMAGES_DIR", "") or db_path.parent / "images")
    db_path.parent.mkdir(parents=True, exist_ok=True)
    images_dir.mkdir(parents=True, exist_ok=True)

    return HookConfig(
        db_path=db_path,
        images_dir=images_dir,
        dashboard_url=os.getenv("DASHBOARD_URL", "http://localhost:3000"),
        narrator=os.getenv("NARRATOR", "anthropic").strip().lower() or "anthropic",
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        narrator_model=os.getenv("NARRATOR_MODEL", DEFAULT_MODEL),
        image_model=os.getenv("IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
        rate_limit_ms=int(os.getenv("RATE_LIMIT_MS", str(MIN_INTERVAL_MS))),
        timeout_seconds=float(os.getenv("HOOK_TIMEOUT_SECONDS", "30")),
        debug=_flag(os.getenv("DEBUG")),
    )
