#!/usr/bin/env python3
"""
Container entrypoint. One image serves both process types:

    PROCESS_TYPE=web     (default) migrations, then gunicorn serving app.wsgi:app
    PROCESS_TYPE=worker  the weekday scheduler (scripts/worker.py)

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _port() -> str:
    port = (os.environ.get("PORT") or "8080").strip()
    if not port.isdigit() or not 1 <= int(port) <= 65535:
        print(f"ERROR: Invalid PORT value '{port}'. Must be integer 1-65535.", flush=True)
        sys.exit(1)
    return port


def main() -> None:
    process_type = (os.environ.get("PROCESS_TYPE") or "web").strip().lower()
    if process_type == "worker":
        os.execvp(sys.executable, [sys.executable, str(ROOT / "scripts" / "worker.py")])

    port = _port()
    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ===", flush=True)
    # exec so gunicorn receives signals directly
    os.execvp(
        "gunicorn",
        [
            "gunicorn",
            "app.wsgi:app",
            "--bind", f"0.0.0.0:{port}",
            "--workers", "2",
            # a manual reconciliation runs inside the request
            "--timeout", "900",
            "--access-logfile", "-",
            "--error-logfile", "-",
        ],
    )


if __name__ == "__main__":
    main()
