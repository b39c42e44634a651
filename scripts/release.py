"""
Release-phase helper: apply Alembic migrations and confirm the tables the app needs exist.

Refuses to run against sqlite when ENV=production.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL must be set for the release phase.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("ENV=production with a sqlite DATABASE_URL; point it at Postgres.")
    return db_url


def _verify_tables(db_url: str) -> None:
    from sqlalchemy import inspect

    from app.mlsync import REQUIRED_TABLES
    from app.mlsync.db import create_db_engine

    engine = create_db_engine(db_url)
    try:
        insp = inspect(engine)
        missing = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
    finally:
        engine.dispose()
    if missing:
        raise RuntimeError(f"Migrations ran but tables are missing: {', '.join(missing)}")


def run_release() -> None:
    from alembic import command
    from alembic.config import Config

    db_url = _database_url()
    print("=== mlsync release: alembic upgrade head ===", flush=True)
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")
    _verify_tables(db_url)
    print("=== mlsync release: schema ready ===", flush=True)


if __name__ == "__main__":
    run_release()
