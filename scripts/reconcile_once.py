#!/usr/bin/env python
"""
Run one reconciliation pass (or one history copy) immediately.

Fills the ID_ML column of the Errores_SKU sheet for rows that are still missing
it, using the marketplace shipment/item APIs.

Usage:
    # Resolve and report, write nothing
    python scripts/reconcile_once.py --dry-run

    # Resolve and write back
    python scripts/reconcile_once.py

    # Copy today's rows to the history sheet
    python scripts/reconcile_once.py --history

Environment:
    DATABASE_URL, GOOGLE_SHEET_ID, GOOGLE_SERVICE_ACCOUNT_EMAIL, GOOGLE_PRIVATE_KEY
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.mlsync import create_app
from app.mlsync.db import session_scope
from app.mlsync.modules.reconciliation.errors import LedgerError
from app.mlsync.modules.reconciliation.service import build_ledger, run_history_copy, run_reconciliation


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one ledger reconciliation pass.")
    parser.add_argument("--dry-run", action="store_true", help="Resolve identifiers but do not write to the sheet")
    parser.add_argument("--history", action="store_true", help="Copy ledger rows to the history sheet instead")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app()
    settings = app.config["MLSYNC_SETTINGS"]
    try:
        with session_scope(app) as s:
            ledger = build_ledger(settings)
            if args.history:
                run = asyncio.run(run_history_copy(s, settings=settings, ledger=ledger, actor="cli"))
            else:
                run = asyncio.run(
                    run_reconciliation(s, settings=settings, ledger=ledger, actor="cli", dry_run=args.dry_run)
                )
            print("\n=== Summary ===")
            print(run.message)
    except LedgerError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
