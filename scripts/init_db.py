"""
Create all tables directly from the models (local development / sqlite).
Production uses `alembic upgrade head` via scripts/release.py.

Usage:
  python scripts/init_db.py
"""
import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.mlsync.db import create_db_engine
from app.mlsync.models import Base


def create_all(*, database_url: str | None = None) -> None:
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///mlsync.db").strip()
    engine = create_db_engine(db_url)
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}", flush=True)


if __name__ == "__main__":
    create_all()
