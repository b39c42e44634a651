from __future__ import annotations

import asyncio
import json

from flask import Blueprint, current_app, request
from sqlalchemy import func

from app.mlsync.db import db_session
from app.mlsync.modules.reconciliation.errors import LedgerError
from app.mlsync.modules.reconciliation.models import ReconciliationFailure, ReconciliationRun
from app.mlsync.modules.reconciliation.service import build_ledger, run_history_copy, run_reconciliation
from app.mlsync.security import require_admin_key

bp = Blueprint("reconciliation", __name__)


def _ledger():
    factory = current_app.extensions.get("mlsync_ledger_factory", build_ledger)
    return factory(current_app.config["MLSYNC_SETTINGS"])


def _run_dict(run: ReconciliationRun) -> dict:
    return {
        "id": run.id,
        "ran_at": run.ran_at.isoformat() if run.ran_at else None,
        "job": run.job,
        "updated": run.updated_count,
        "failed": run.failed_count,
        "skipped": run.skipped_count,
        "rows_seen": run.rows_seen,
        "duration_seconds": run.duration_seconds,
        "message": run.message,
    }


def _failure_dict(f: ReconciliationFailure) -> dict:
    return {
        "id": f.id,
        "run_id": f.run_id,
        "row": f.row_index,
        "shipment_id": f.shipment_id,
        "sku": f.sku,
        "account": f.account_name,
        "reason": f.reason,
        "details": json.loads(f.details_json) if f.details_json else None,
    }


def _get_top_failure_reasons(s, limit: int = 10) -> list[tuple[str, int]]:
    rows = (
        s.query(ReconciliationFailure.reason, func.count(ReconciliationFailure.id))
        .group_by(ReconciliationFailure.reason)
        .order_by(func.count(ReconciliationFailure.id).desc())
        .limit(limit)
        .all()
    )
    return [(reason, cnt) for reason, cnt in rows]


@bp.get("/reconciliation")
@require_admin_key
def reconciliation_index():
    s = db_session()
    runs = s.query(ReconciliationRun).order_by(ReconciliationRun.ran_at.desc(), ReconciliationRun.id.desc()).limit(20).all()
    failures = (
        s.query(ReconciliationFailure)
        .order_by(ReconciliationFailure.created_at.desc(), ReconciliationFailure.id.desc())
        .limit(50)
        .all()
    )
    return {
        "runs": [_run_dict(r) for r in runs],
        "failures": [_failure_dict(f) for f in failures],
        "top_failure_reasons": [{"reason": r, "count": c} for r, c in _get_top_failure_reasons(s)],
    }


@bp.post("/reconciliation/run")
@require_admin_key
def reconciliation_run():
    s = db_session()
    settings = current_app.config["MLSYNC_SETTINGS"]
    dry_run = (request.args.get("dry_run") or "").strip() in ("1", "true", "yes")
    try:
        run = asyncio.run(run_reconciliation(s, settings=settings, ledger=_ledger(), actor="admin", dry_run=dry_run))
        s.commit()
    except LedgerError as e:
        s.rollback()
        return {"ok": False, "error": str(e)}, 502
    return {"ok": True, "run": _run_dict(run)}


@bp.post("/reconciliation/history")
@require_admin_key
def reconciliation_history():
    s = db_session()
    settings = current_app.config["MLSYNC_SETTINGS"]
    try:
        run = asyncio.run(run_history_copy(s, settings=settings, ledger=_ledger(), actor="admin"))
        s.commit()
    except LedgerError as e:
        s.rollback()
        return {"ok": False, "error": str(e)}, 502
    return {"ok": True, "run": _run_dict(run)}
