import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from app.mlsync.modules.reconciliation.driver import ReconciliationDriver
from app.mlsync.modules.reconciliation.errors import LedgerError
from app.mlsync.modules.reconciliation.ledger import GoogleSheetsLedger
from app.mlsync.modules.reconciliation.pacing import Pacer
from app.mlsync.modules.reconciliation.resolver import IdentifierResolver
from app.mlsync.modules.reconciliation.tokens import TokenStore


class _Call:
    def __init__(self, service, kind, kwargs):
        self.service = service
        self.kind = kind
        self.kwargs = kwargs

    def execute(self):
        self.service.calls.append((self.kind, self.kwargs))
        err = self.service.errors.get((self.kind, self.kwargs["range"]))
        if err is not None:
            raise err
        if self.kind == "get":
            return self.service.responses.get(self.kwargs["range"], {})
        return {"updatedCells": 1}


class StubSheetsService:
    """Mimics service.spreadsheets().values().get/update(...).execute()."""

    def __init__(self):
        self.calls = []
        self.responses = {}
        self.errors = {}

    def spreadsheets(self):
        return self

    def values(self):
        return self

    def get(self, **kwargs):
        return _Call(self, "get", kwargs)

    def update(self, **kwargs):
        return _Call(self, "update", kwargs)


def _http_error(status=403):
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "caller lacks permission"}}')


@pytest.fixture()
def service():
    return StubSheetsService()


@pytest.fixture()
def ledger(service):
    return GoogleSheetsLedger("sheet-123", service)


@pytest.mark.asyncio
async def test_get_reads_range_and_stringifies_cells(ledger, service):
    service.responses["Errores_SKU!A:H"] = {"values": [["Fecha", "SKU"], [45000, 1.5, True]]}

    rows = await ledger.get("Errores_SKU!A:H")

    assert rows == [["Fecha", "SKU"], ["45000", "1.5", "True"]]
    assert service.calls == [("get", {"spreadsheetId": "sheet-123", "range": "Errores_SKU!A:H"})]


@pytest.mark.asyncio
async def test_get_without_values_key_is_empty(ledger, service):
    assert await ledger.get("Historial!A:A") == []


@pytest.mark.asyncio
async def test_update_sends_user_entered_body(ledger, service):
    await ledger.update("Errores_SKU!H2", [["MLA1-7"]])

    assert service.calls == [
        (
            "update",
            {
                "spreadsheetId": "sheet-123",
                "range": "Errores_SKU!H2",
                "valueInputOption": "USER_ENTERED",
                "body": {"values": [["MLA1-7"]]},
            },
        )
    ]


@pytest.mark.parametrize(
    "exc",
    [
        _http_error(),
        RefreshError("invalid_grant: token expired"),
        OSError("connection reset"),
        httplib2.ServerNotFoundError("Unable to find the server at sheets.googleapis.com"),
    ],
    ids=["http", "refresh", "os", "dns"],
)
@pytest.mark.asyncio
async def test_client_errors_surface_as_ledger_error(ledger, service, exc):
    service.errors[("get", "Errores_SKU!A:H")] = exc
    service.errors[("update", "Errores_SKU!H2")] = exc

    with pytest.raises(LedgerError):
        await ledger.get("Errores_SKU!A:H")
    with pytest.raises(LedgerError):
        await ledger.update("Errores_SKU!H2", [["x"]])


@pytest.mark.asyncio
async def test_expired_grant_on_one_write_fails_only_that_row(ledger, service, market):
    service.responses["Errores_SKU!A:H"] = {
        "values": [
            ["Fecha", "Producto", "SKU", "Cant", "Motivo", "Envio", "Cuenta", "ID_ML"],
            ["06/05", "Remera", "SKU-1", "1", "x", "S1", "TIENDA"],
            ["06/05", "Gorra", "SKU-2", "1", "x", "S2", "TIENDA"],
        ]
    }
    service.errors[("update", "Errores_SKU!H2")] = RefreshError("invalid_grant: token expired")
    market.shipment_items["S1"] = [{"item_id": "MLA1"}]
    market.shipment_items["S2"] = [{"item_id": "MLA2"}]
    tokens = TokenStore.from_rows([["Cuenta", "Token"], ["TIENDA", "tok"]])
    driver = ReconciliationDriver(ledger, IdentifierResolver(market.client(), tokens, Pacer(0)), Pacer(0))

    summary = await driver.run()

    assert (summary.updated, summary.failed) == (1, 1)
    assert summary.failures[0].reason == "ledger_write_failed"
    assert ("update", {
        "spreadsheetId": "sheet-123",
        "range": "Errores_SKU!H3",
        "valueInputOption": "USER_ENTERED",
        "body": {"values": [["MLA2"]]},
    }) in service.calls
