import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from jrpg_visualizer.config import DEFAULT_DATA_DIR, ROOT

from .events import FeedBroadcaster
from .routes import HEARTBEAT_SECONDS, router

load_dotenv(ROOT / ".env")


def create_app(db_path: Path | None = None, heartbeat_seconds: float = HEARTBEAT_SECONDS) -> FastAPI:
    resolved = db_path or Path(os.getenv("DATABASE_PATH", str(DEFAULT_DATA_DIR / "battles.db")))
    resolved.parent.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="JRPG Visualizer")
    app.state.db_path = resolved
    app.state.broadcaster = FeedBroadcaster()
    app.state.heartbeat_seconds = heartbeat_seconds
    app.include_router(router, prefix="/api")
    return app
