import pytest

from app.mlsync.modules.reconciliation.driver import ReconciliationDriver
from app.mlsync.modules.reconciliation.ledger import LedgerLayout
from app.mlsync.modules.reconciliation.pacing import Pacer
from app.mlsync.modules.reconciliation.resolver import IdentifierResolver
from app.mlsync.modules.reconciliation.tokens import TokenStore

from fakes import FakeLedger

SHEET = "Errores_SKU"
HEADERS = ["Fecha", "Producto", "SKU", "Cantidad", "Motivo", "Envio", "Cuenta"]
ID_COL = 7  # H


def _row(sku, shipment, account="TIENDA", item_id=""):
    row = ["2024-05-06", "Remera", sku, "1", "sku sin publicar", shipment, account]
    if item_id:
        row.append(item_id)
    return row


def _driver(ledger, market, *, dry_run=False, row_sleep=None, tokens=None):
    tokens = tokens or TokenStore.from_rows([["Cuenta", "Token"], ["tienda", "tok-1"]])
    resolver = IdentifierResolver(market.client(), tokens, Pacer(0))
    row_pacer = Pacer(0.3, sleep=row_sleep, clock=lambda: 0.0) if row_sleep else Pacer(0)
    return ReconciliationDriver(ledger, resolver, row_pacer, layout=LedgerLayout(sheet=SHEET), dry_run=dry_run)


@pytest.mark.asyncio
async def test_resolves_empty_rows_and_is_idempotent(market):
    market.shipment_items["S1"] = [{"item_id": "MLA1", "variation_id": 10}]
    market.shipment_items["S2"] = [{"item_id": "MLA2"}]
    ledger = FakeLedger({SHEET: [[*HEADERS, "ID_ML"], _row("SKU-1", "S1"), _row("SKU-2", "S2")]})

    first = await _driver(ledger, market).run()

    assert (first.updated, first.failed, first.skipped, first.rows_seen) == (2, 0, 0, 2)
    assert first.header_created is False
    assert ledger.cell(SHEET, 2, ID_COL) == "MLA1-10"
    assert ledger.cell(SHEET, 3, ID_COL) == "MLA2"
    # one write per resolved row, each to its own cell
    assert [w[0] for w in ledger.writes] == [f"{SHEET}!H2", f"{SHEET}!H3"]

    second = await _driver(ledger, market).run()

    assert (second.updated, second.skipped) == (0, 2)
    assert len(ledger.writes) == 2


@pytest.mark.asyncio
async def test_rows_with_identifier_are_never_revisited(market):
    ledger = FakeLedger({SHEET: [[*HEADERS, "ID_ML"], _row("SKU-1", "S1", item_id="MLA9")]})

    summary = await _driver(ledger, market).run()

    assert summary.skipped == 1
    assert market.requests == []
    assert ledger.cell(SHEET, 2, ID_COL) == "MLA9"


@pytest.mark.asyncio
async def test_missing_header_is_created_at_h1(market):
    market.shipment_items["S1"] = [{"item_id": "MLA1"}]
    ledger = FakeLedger({SHEET: [HEADERS, _row("SKU-1", "S1")]})

    summary = await _driver(ledger, market).run()

    assert summary.header_created is True
    assert ledger.writes[0] == (f"{SHEET}!H1", [["ID_ML"]])
    assert ledger.cell(SHEET, 1, ID_COL) == "ID_ML"
    assert ledger.cell(SHEET, 2, ID_COL) == "MLA1"


@pytest.mark.asyncio
async def test_existing_header_in_other_column_is_used(market):
    market.shipment_items["S1"] = [{"item_id": "MLA1"}]
    headers = [*HEADERS, "Notas"]
    headers[3] = "ID_ML"
    ledger = FakeLedger({SHEET: [headers, ["2024-05-06", "Remera", "SKU-1", "", "x", "S1", "TIENDA"]]})

    summary = await _driver(ledger, market).run()

    assert summary.header_created is False
    assert ledger.cell(SHEET, 2, 3) == "MLA1"
    assert ledger.cell(SHEET, 1, ID_COL) == "Notas"


@pytest.mark.asyncio
async def test_missing_shipment_is_counted_failed(market):
    ledger = FakeLedger({SHEET: [[*HEADERS, "ID_ML"], _row("SKU-1", "")]})

    summary = await _driver(ledger, market).run()

    assert summary.failed == 1
    assert summary.failures[0].reason == "missing_shipment_id"
    assert summary.failures[0].row_index == 2
    assert market.requests == []


@pytest.mark.asyncio
async def test_failed_rows_stay_empty_and_pass_continues(market):
    market.transport_failures.add("/shipments/S1/items")
    market.shipment_items["S3"] = [{"item_id": "MLA3"}]
    ledger = FakeLedger(
        {
            SHEET: [
                [*HEADERS, "ID_ML"],
                _row("SKU-1", "S1"),
                _row("SKU-2", "S2", account="OTRA"),
                _row("SKU-3", "S3"),
            ]
        }
    )

    summary = await _driver(ledger, market).run()

    assert (summary.updated, summary.failed) == (1, 2)
    assert [f.reason for f in summary.failures] == ["TransportError", "no_token"]
    assert ledger.cell(SHEET, 2, ID_COL) == ""
    assert ledger.cell(SHEET, 3, ID_COL) == ""
    assert ledger.cell(SHEET, 4, ID_COL) == "MLA3"


@pytest.mark.asyncio
async def test_failed_rows_are_retried_next_pass(market):
    ledger = FakeLedger({SHEET: [[*HEADERS, "ID_ML"], _row("SKU-1", "S1")]})

    first = await _driver(ledger, market).run()
    assert first.failed == 1

    market.shipment_items["S1"] = [{"item_id": "MLA1"}]
    second = await _driver(ledger, market).run()
    assert second.updated == 1
    assert ledger.cell(SHEET, 2, ID_COL) == "MLA1"


@pytest.mark.asyncio
async def test_fallback_counts_as_unverified(market):
    market.shipment_items["S1"] = [{"item_id": "A"}, {"item_id": "B"}]
    market.items.update({"A": {}, "B": {}})
    ledger = FakeLedger({SHEET: [[*HEADERS, "ID_ML"], _row("SKU-1", "S1")]})

    summary = await _driver(ledger, market).run()

    assert summary.updated == 1
    assert summary.unverified == 1
    assert ledger.cell(SHEET, 2, ID_COL) == "A"


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(market):
    market.shipment_items["S1"] = [{"item_id": "MLA1"}]
    ledger = FakeLedger({SHEET: [HEADERS, _row("SKU-1", "S1")]})

    summary = await _driver(ledger, market, dry_run=True).run()

    assert summary.updated == 1
    assert summary.header_created is True
    assert ledger.writes == []


@pytest.mark.asyncio
async def test_write_failure_is_a_row_failure(market):
    market.shipment_items["S1"] = [{"item_id": "MLA1"}]
    market.shipment_items["S2"] = [{"item_id": "MLA2"}]
    ledger = FakeLedger({SHEET: [[*HEADERS, "ID_ML"], _row("SKU-1", "S1"), _row("SKU-2", "S2")]})
    ledger.fail_writes.add(f"{SHEET}!H2")

    summary = await _driver(ledger, market).run()

    assert summary.failed == 1
    assert summary.failures[0].reason == "ledger_write_failed"
    assert summary.updated == 1
    assert ledger.cell(SHEET, 3, ID_COL) == "MLA2"


@pytest.mark.asyncio
async def test_rows_are_paced(market, sleeper):
    for sid in ("S1", "S2", "S3"):
        market.shipment_items[sid] = [{"item_id": f"MLA-{sid}"}]
    ledger = FakeLedger(
        {SHEET: [[*HEADERS, "ID_ML"], _row("a", "S1"), _row("b", "S2", item_id="X"), _row("c", "S3"), _row("d", "S3")]}
    )

    await _driver(ledger, market, row_sleep=sleeper).run()

    # three rows need work; skipped rows are not paced
    assert sleeper.calls == [pytest.approx(0.3), pytest.approx(0.3)]


@pytest.mark.asyncio
async def test_empty_ledger(market):
    ledger = FakeLedger({})

    summary = await _driver(ledger, market).run()

    assert summary.rows_seen == 0
    assert ledger.writes == []
