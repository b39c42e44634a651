from __future__ import annotations

import logging
from contextlib import contextmanager
from collections.abc import Iterator

from flask import Flask, current_app, g
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def _engine_options(db_url: str) -> dict[str, object]:
    opts: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        # web process and scheduler worker each hold their own small pool
        opts.update(pool_recycle=1800, pool_size=3, max_overflow=5, pool_timeout=30)
    elif db_url.startswith("sqlite"):
        # worker and web may write the same file; wait for the lock instead of failing
        opts["connect_args"] = {"timeout": 30}
    return opts


def create_db_engine(db_url: str) -> Engine:
    return create_engine(db_url, **_engine_options(db_url))


def init_db(app: Flask) -> None:
    engine = create_db_engine(app.config["DATABASE_URL"])
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


def db_session() -> Session:
    """Request-scoped session, closed by ``teardown_db_session``."""
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        s = current_app.extensions["sqlalchemy_sessionmaker"]()
        g.db_session = s
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is not None:
        s.close()


@contextmanager
def session_scope(app: Flask) -> Iterator[Session]:
    """
    Session for work outside a request (scheduled jobs, CLI).
    Commits on success; rolls back and re-raises on error.
    """
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        logger.warning("Rolling back session after error")
        s.rollback()
        raise
    finally:
        s.close()
