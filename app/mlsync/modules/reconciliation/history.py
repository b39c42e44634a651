from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from app.mlsync.constants import HISTORY_DATE_HEADER
from app.mlsync.modules.reconciliation.ledger import LedgerLayout, LedgerStore, column_letter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryCopySummary:
    rows_copied: int
    first_row: int | None = None


async def copy_to_history(
    ledger: LedgerStore,
    *,
    history_sheet: str,
    today: date,
    layout: LedgerLayout | None = None,
) -> HistoryCopySummary:
    """
    Append a snapshot of every non-blank ledger row to the history sheet, each row
    prefixed with the run date. The source sheet is left as-is, so each day adds a
    full snapshot; a second copy for a date already present in the history is skipped.
    """
    layout = layout or LedgerLayout()
    rows = await ledger.get(layout.source_range)
    if len(rows) < 2:
        logger.info("History copy: no data rows in %s", layout.sheet)
        return HistoryCopySummary(rows_copied=0)

    headers = rows[0]
    data = [r for r in rows[1:] if any(c.strip() for c in r)]
    if not data:
        logger.info("History copy: no data rows in %s", layout.sheet)
        return HistoryCopySummary(rows_copied=0)

    width = max(len(headers), *(len(r) for r in data))
    last_col = column_letter(width)  # one extra column for the date

    existing = await ledger.get(f"{history_sheet}!A:A")
    stamp = today.isoformat()
    if any(r and r[0].strip() == stamp for r in existing[1:]):
        logger.info("History copy: %s already holds a snapshot for %s", history_sheet, stamp)
        return HistoryCopySummary(rows_copied=0)

    next_row = len(existing) + 1
    if not existing:
        await ledger.update(
            f"{history_sheet}!A1:{last_col}1",
            [[HISTORY_DATE_HEADER, *headers, *[""] * (width - len(headers))]],
        )
        next_row = 2

    values = [[stamp, *r, *[""] * (width - len(r))] for r in data]
    end_row = next_row + len(values) - 1
    await ledger.update(f"{history_sheet}!A{next_row}:{last_col}{end_row}", values)
    logger.info("History copy: %d row(s) appended to %s starting at row %d", len(values), history_sheet, next_row)
    return HistoryCopySummary(rows_copied=len(values), first_row=next_row)
