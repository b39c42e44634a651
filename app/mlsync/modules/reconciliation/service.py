from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from datetime import date, datetime
from zoneinfo import ZoneInfo

import httpx
from flask import Flask
from sqlalchemy.orm import Session

from app.mlsync.audit import record_event
from app.mlsync.config import Settings
from app.mlsync.constants import SCHEDULER_TIMEZONE
from app.mlsync.db import session_scope
from app.mlsync.modules.reconciliation.driver import ReconciliationDriver, ReconciliationSummary
from app.mlsync.modules.reconciliation.errors import LedgerError
from app.mlsync.modules.reconciliation.history import copy_to_history
from app.mlsync.modules.reconciliation.ledger import GoogleSheetsLedger, LedgerLayout, LedgerStore
from app.mlsync.modules.reconciliation.marketplace_client import MarketplaceClient
from app.mlsync.modules.reconciliation.models import ReconciliationFailure, ReconciliationRun
from app.mlsync.modules.reconciliation.pacing import Pacer
from app.mlsync.modules.reconciliation.resolver import IdentifierResolver
from app.mlsync.modules.reconciliation.tokens import load_token_store
from app.mlsync.scheduler import ScheduledJobs

logger = logging.getLogger(__name__)

JOB_RECONCILIATION = "reconciliation"
JOB_HISTORY_COPY = "history_copy"

LedgerFactory = Callable[[Settings], LedgerStore]


def build_ledger(settings: Settings) -> LedgerStore:
    return GoogleSheetsLedger.from_service_account(
        spreadsheet_id=settings.google_sheet_id,
        client_email=settings.google_service_account_email,
        private_key=settings.google_private_key,
    )


def local_today() -> date:
    return datetime.now(ZoneInfo(SCHEDULER_TIMEZONE)).date()


async def reconcile(
    settings: Settings,
    ledger: LedgerStore,
    *,
    http: httpx.AsyncClient | None = None,
    dry_run: bool = False,
) -> ReconciliationSummary:
    """Load tokens, then run one driver pass against ``ledger``."""
    tokens = await load_token_store(ledger, settings.tokens_range)
    async with MarketplaceClient(
        base_url=settings.ml_api_base_url,
        timeout_seconds=settings.ml_api_timeout_seconds,
        http=http,
    ) as client:
        resolver = IdentifierResolver(client, tokens, Pacer(settings.item_pacing_seconds))
        driver = ReconciliationDriver(
            ledger,
            resolver,
            Pacer(settings.row_pacing_seconds),
            layout=LedgerLayout(sheet=settings.ledger_sheet),
            dry_run=dry_run,
        )
        return await driver.run()


async def run_reconciliation(
    s: Session,
    *,
    settings: Settings,
    ledger: LedgerStore,
    actor: str,
    dry_run: bool = False,
    http: httpx.AsyncClient | None = None,
) -> ReconciliationRun:
    """
    Reconciliation job with bookkeeping:
    - audit events for start / completion / failure
    - one ReconciliationRun row per pass, one ReconciliationFailure row per failed ledger row
    Row-level failures never abort the pass; only an unreadable ledger does.
    """
    start = time.time()
    record_event(
        s,
        actor=actor,
        action="reconciliation.started",
        entity_type="ReconciliationRun",
        metadata={"sheet": settings.ledger_sheet, "dry_run": dry_run},
    )
    try:
        summary = await reconcile(settings, ledger, http=http, dry_run=dry_run)
    except LedgerError as e:
        logger.error("Reconciliation aborted: %s", e)
        record_event(
            s,
            actor=actor,
            action="reconciliation.failed",
            entity_type="ReconciliationRun",
            metadata={"error": str(e)},
        )
        s.add(
            ReconciliationRun(
                job=JOB_RECONCILIATION,
                duration_seconds=int(time.time() - start),
                message=f"FAILED: {e}"[:2000],
            )
        )
        s.commit()
        raise

    duration = int(time.time() - start)
    msg = f"Updated={summary.updated} failed={summary.failed} skipped={summary.skipped}."
    if summary.unverified:
        msg += f" {summary.unverified} identifier(s) are first-item guesses (unverified)."
    if summary.header_created:
        msg += " Added missing identifier header."
    if dry_run:
        msg = "[dry-run] " + msg

    run = ReconciliationRun(
        job=JOB_RECONCILIATION,
        updated_count=summary.updated,
        failed_count=summary.failed,
        skipped_count=summary.skipped,
        rows_seen=summary.rows_seen,
        duration_seconds=duration,
        message=msg,
    )
    s.add(run)
    s.flush()

    for f in summary.failures:
        s.add(
            ReconciliationFailure(
                run_id=run.id,
                row_index=f.row_index,
                shipment_id=f.shipment_id or None,
                sku=f.sku or None,
                account_name=f.account_name or None,
                reason=f.reason,
                details_json=json.dumps({"detail": f.detail}, default=str)[:4000] if f.detail else None,
            )
        )

    record_event(
        s,
        actor=actor,
        action="reconciliation.completed",
        entity_type="ReconciliationRun",
        entity_id=str(run.id),
        metadata={**summary.as_dict(), "duration_seconds": duration, "dry_run": dry_run},
    )
    return run


async def run_history_copy(
    s: Session,
    *,
    settings: Settings,
    ledger: LedgerStore,
    actor: str,
    today: date | None = None,
) -> ReconciliationRun:
    start = time.time()
    today = today or local_today()
    try:
        result = await copy_to_history(
            ledger,
            history_sheet=settings.history_sheet,
            today=today,
            layout=LedgerLayout(sheet=settings.ledger_sheet),
        )
    except LedgerError as e:
        record_event(
            s,
            actor=actor,
            action="history_copy.failed",
            entity_type="ReconciliationRun",
            metadata={"error": str(e)},
        )
        s.add(
            ReconciliationRun(
                job=JOB_HISTORY_COPY,
                duration_seconds=int(time.time() - start),
                message=f"FAILED: {e}"[:2000],
            )
        )
        s.commit()
        raise

    run = ReconciliationRun(
        job=JOB_HISTORY_COPY,
        updated_count=result.rows_copied,
        rows_seen=result.rows_copied,
        duration_seconds=int(time.time() - start),
        message=f"Copied {result.rows_copied} row(s) to {settings.history_sheet} for {today.isoformat()}.",
    )
    s.add(run)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="history_copy.completed",
        entity_type="ReconciliationRun",
        entity_id=str(run.id),
        metadata={"rows_copied": result.rows_copied, "date": today.isoformat()},
    )
    return run


def scheduled_jobs(app: Flask, ledger_factory: LedgerFactory = build_ledger) -> ScheduledJobs:
    """Bind both jobs to the app's database and a fresh ledger client per run."""
    settings: Settings = app.config["MLSYNC_SETTINGS"]

    async def morning_sync() -> None:
        with session_scope(app) as s:
            run = await run_reconciliation(s, settings=settings, ledger=ledger_factory(settings), actor="scheduler")
            logger.info("Scheduled reconciliation: %s", run.message)

    async def history_copy() -> None:
        with session_scope(app) as s:
            run = await run_history_copy(s, settings=settings, ledger=ledger_factory(settings), actor="scheduler")
            logger.info("Scheduled history copy: %s", run.message)

    return ScheduledJobs(morning_sync=morning_sync, history_copy=history_copy)
