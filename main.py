"""JRPG Visualizer — dashboard feed launcher."""

import argparse
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from jrpg_visualizer.logging import setup_logging

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "3000")


def main():
    parser = argparse.ArgumentParser(description="JRPG Visualizer dashboard feed")
    parser.add_argument("--db", type=Path, default=None,
                        help="Battle database path (default: $DATABASE_PATH or ./data/battles.db)")
    parser.add_argument("--seed", action="store_true",
                        help="Reset the party roster to the default party, then serve")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server on code changes")
    args = parser.parse_args()

    setup_logging(os.getenv("LOG_LEVEL", "INFO").upper())

    # The app factory reads DATABASE_PATH, also in reload workers
    if args.db:
        os.environ["DATABASE_PATH"] = str(args.db.resolve())

    if args.seed:
        from jrpg_visualizer.config import DEFAULT_DATA_DIR
        from jrpg_visualizer.storage import BattleStore

        db_path = Path(os.getenv("DATABASE_PATH", str(DEFAULT_DATA_DIR / "battles.db")))
        with BattleStore(db_path) as store:
            party = store.seed_party(force=True)
        print(f"Seeded {len(party)} party members into {db_path}")

    print(f"Starting dashboard feed on http://localhost:{PORT} ...")
    uvicorn.run(
        "jrpg_visualizer.dashboard:create_app",
        factory=True,
        host=HOST,
        port=int(PORT),
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
