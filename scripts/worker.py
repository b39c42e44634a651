#!/usr/bin/env python3
"""
Scheduler worker: runs the weekday reconciliation (08:30) and history copy (19:00)
jobs in America/Argentina/Buenos_Aires until SIGINT/SIGTERM.

Usage:
    python scripts/worker.py

Environment:
    DATABASE_URL, GOOGLE_SHEET_ID, GOOGLE_SERVICE_ACCOUNT_EMAIL, GOOGLE_PRIVATE_KEY
    ENABLE_SCHEDULER=0 keeps the process up without registering jobs
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.mlsync import create_app
from app.mlsync.modules.reconciliation.service import scheduled_jobs
from app.mlsync.scheduler import JobScheduler

logger = logging.getLogger("mlsync.worker")


async def serve() -> None:
    app = create_app()
    scheduler = JobScheduler()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # Windows
            pass

    if app.config["ENABLE_SCHEDULER"]:
        scheduler.start(scheduled_jobs(app))
    else:
        logger.warning("ENABLE_SCHEDULER is off; worker idle until stopped")
    try:
        await stop_event.wait()
    finally:
        scheduler.stop()
        await scheduler.wait_idle()
        logger.info("Worker exiting")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
