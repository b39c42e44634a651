import logging
import uuid

from flask import Flask, g, request
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect

from app.mlsync.config import load_config
from app.mlsync.db import init_db, teardown_db_session
from app.mlsync import models  # noqa: F401  (registers all tables on Base.metadata first)
from app.mlsync.routes import bp as routes_bp
from app.mlsync.modules.reconciliation.admin import bp as reconciliation_bp

REQUIRED_TABLES = ("audit_events", "reconciliation_runs", "reconciliation_failures")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    @app.before_request
    def _request_id():
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    app.teardown_appcontext(teardown_db_session)

    app.register_blueprint(routes_bp)
    app.register_blueprint(reconciliation_bp, url_prefix="/admin")

    def _run_schema_health_check() -> None:
        engine = app.extensions["sqlalchemy_engine"]
        try:
            insp = sa_inspect(engine)
            missing = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)
            return
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        app.config["_schema_health_missing"] = missing

    _run_schema_health_check()

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return {"ok": False, "error": "internal error"}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
