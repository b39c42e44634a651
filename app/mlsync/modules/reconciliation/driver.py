from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.mlsync.modules.reconciliation.errors import (
    LedgerError,
    MarketplaceError,
    MissingShipmentId,
    UnresolvedSKU,
)
from app.mlsync.modules.reconciliation.ledger import LedgerLayout, LedgerStore, cell_ref
from app.mlsync.modules.reconciliation.pacing import Pacer
from app.mlsync.modules.reconciliation.resolver import IdentifierResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerRow:
    row_index: int  # 1-based sheet row
    sku: str
    shipment_id: str
    account_name: str
    resolved_item_id: str


@dataclass(frozen=True)
class RowFailure:
    row_index: int
    shipment_id: str
    sku: str
    account_name: str
    reason: str
    detail: str = ""


@dataclass
class ReconciliationSummary:
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    rows_seen: int = 0
    unverified: int = 0
    header_created: bool = False
    failures: list[RowFailure] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "failed": self.failed,
            "skipped": self.skipped,
            "rows_seen": self.rows_seen,
            "unverified": self.unverified,
        }


def _cell(row: list[str], index: int) -> str:
    return (row[index] if index < len(row) else "").strip()


class ReconciliationDriver:
    """
    One reconciliation pass over the ledger:
    - makes sure the identifier header exists
    - resolves rows with an empty identifier, strictly in sheet order
    - writes each result back to its own cell, one row at a time
    Rows that already carry an identifier are never revisited.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        resolver: IdentifierResolver,
        pacer: Pacer,
        *,
        layout: LedgerLayout | None = None,
        dry_run: bool = False,
    ) -> None:
        self.ledger = ledger
        self.resolver = resolver
        self.pacer = pacer
        self.layout = layout or LedgerLayout()
        self.dry_run = dry_run

    async def _ensure_item_id_column(self, headers: list[str], summary: ReconciliationSummary) -> int:
        for idx, name in enumerate(headers):
            if name.strip() == self.layout.item_id_header:
                return idx
        col = self.layout.item_id_column
        if self.dry_run:
            logger.info("[dry-run] would add header %s at %s", self.layout.item_id_header, cell_ref(self.layout.sheet, col, 1))
        else:
            await self.ledger.update(cell_ref(self.layout.sheet, col, 1), [[self.layout.item_id_header]])
            logger.info("Added %s header column", self.layout.item_id_header)
        summary.header_created = True
        return col

    def _parse_row(self, row: list[str], row_index: int, item_id_col: int) -> LedgerRow:
        return LedgerRow(
            row_index=row_index,
            sku=_cell(row, self.layout.sku_column),
            shipment_id=_cell(row, self.layout.shipment_id_column),
            account_name=_cell(row, self.layout.account_column),
            resolved_item_id=_cell(row, item_id_col),
        )

    def _fail(self, summary: ReconciliationSummary, row: LedgerRow, reason: str, detail: str = "") -> None:
        summary.failed += 1
        summary.failures.append(
            RowFailure(
                row_index=row.row_index,
                shipment_id=row.shipment_id,
                sku=row.sku,
                account_name=row.account_name,
                reason=reason,
                detail=detail,
            )
        )
        logger.info("Row %d: failed (%s) %s", row.row_index, reason, detail)

    async def run(self) -> ReconciliationSummary:
        summary = ReconciliationSummary()
        rows = await self.ledger.get(self.layout.source_range)
        if not rows:
            logger.info("Ledger %s is empty", self.layout.sheet)
            return summary

        item_id_col = await self._ensure_item_id_column(rows[0], summary)

        for offset, raw in enumerate(rows[1:]):
            row = self._parse_row(raw, offset + 2, item_id_col)
            summary.rows_seen += 1

            if row.resolved_item_id:
                summary.skipped += 1
                logger.debug("Row %d: already has %s (%s)", row.row_index, self.layout.item_id_header, row.resolved_item_id)
                continue

            if not row.shipment_id:
                err = MissingShipmentId(f"row {row.row_index} has no shipment id")
                self._fail(summary, row, err.reason, str(err))
                continue

            await self.pacer.wait()
            logger.info("Row %d: resolving sku=%s shipment=%s (%s)", row.row_index, row.sku, row.shipment_id, row.account_name)
            try:
                resolution = await self.resolver.resolve_or_raise(row.shipment_id, row.sku, row.account_name)
            except UnresolvedSKU as e:
                self._fail(summary, row, e.reason, e.detail)
                continue
            except MarketplaceError as e:
                self._fail(summary, row, type(e).__name__, str(e))
                continue

            target = cell_ref(self.layout.sheet, item_id_col, row.row_index)
            if self.dry_run:
                logger.info("[dry-run] Row %d: would write %s to %s", row.row_index, resolution.identifier, target)
            else:
                try:
                    await self.ledger.update(target, [[resolution.identifier]])
                except LedgerError as e:
                    self._fail(summary, row, "ledger_write_failed", str(e))
                    continue

            summary.updated += 1
            if not resolution.verified:
                summary.unverified += 1
            logger.info("Row %d: %s -> %s (%s)", row.row_index, row.sku, resolution.identifier, resolution.match_source)

        logger.info(
            "Reconciliation pass done: updated=%d failed=%d skipped=%d",
            summary.updated,
            summary.failed,
            summary.skipped,
        )
        return summary
