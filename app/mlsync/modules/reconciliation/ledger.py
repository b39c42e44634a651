"""
Ledger (spreadsheet) access.

The reconciliation engine only relies on two range operations:

``get(range)``
    Rows of cell strings for an A1 range. Trailing empty cells and rows may be
    missing, exactly like the Sheets values API returns them.

``update(range, values)``
    Overwrite the cells of an A1 range.

``GoogleSheetsLedger`` is the production implementation. Its client is blocking,
so every call is pushed to a worker thread to keep the event loop responsive.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.mlsync import constants
from app.mlsync.modules.reconciliation.errors import LedgerError

logger = logging.getLogger(__name__)

SCOPES = ("https://www.googleapis.com/auth/spreadsheets",)

# API errors, expired or revoked grants, and DNS/socket failures
_CLIENT_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError)


class LedgerStore(Protocol):
    async def get(self, range_: str) -> list[list[str]]: ...

    async def update(self, range_: str, values: list[list[Any]]) -> None: ...


def column_letter(index: int) -> str:
    """Zero-based column index -> A1 column letters (0 -> A, 25 -> Z, 26 -> AA)."""
    if index < 0:
        raise ValueError("column index must be >= 0")
    letters = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def cell_ref(sheet: str, column_index: int, row_number: int) -> str:
    return f"{sheet}!{column_letter(column_index)}{row_number}"


@dataclass(frozen=True)
class LedgerLayout:
    sheet: str = constants.LEDGER_SHEET
    last_column: str = constants.LEDGER_LAST_COLUMN
    sku_column: int = constants.SKU_COLUMN
    shipment_id_column: int = constants.SHIPMENT_ID_COLUMN
    account_column: int = constants.ACCOUNT_COLUMN
    item_id_column: int = constants.ITEM_ID_COLUMN
    item_id_header: str = constants.ITEM_ID_HEADER

    @property
    def source_range(self) -> str:
        return f"{self.sheet}!A:{self.last_column}"


class GoogleSheetsLedger:
    def __init__(self, spreadsheet_id: str, service: Any) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._service = service

    @classmethod
    def from_service_account(cls, *, spreadsheet_id: str, client_email: str, private_key: str) -> "GoogleSheetsLedger":
        if not spreadsheet_id or not client_email or not private_key:
            raise LedgerError("GOOGLE_SHEET_ID, GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_PRIVATE_KEY are required.")
        credentials = service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": client_email,
                "private_key": private_key,
                "token_uri": "https://oauth2.googleapis.com/token",
            },
            scopes=list(SCOPES),
        )
        service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return cls(spreadsheet_id, service)

    def _get_sync(self, range_: str) -> list[list[str]]:
        resp = (
            self._service.spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=range_)
            .execute()
        )
        return [[str(c) for c in row] for row in (resp.get("values") or [])]

    def _update_sync(self, range_: str, values: list[list[Any]]) -> None:
        (
            self._service.spreadsheets()
            .values()
            .update(
                spreadsheetId=self.spreadsheet_id,
                range=range_,
                valueInputOption="USER_ENTERED",
                body={"values": values},
            )
            .execute()
        )

    async def get(self, range_: str) -> list[list[str]]:
        try:
            return await asyncio.to_thread(self._get_sync, range_)
        except _CLIENT_ERRORS as e:
            raise LedgerError(f"Reading {range_} failed: {e}") from e

    async def update(self, range_: str, values: list[list[Any]]) -> None:
        try:
            await asyncio.to_thread(self._update_sync, range_, values)
        except _CLIENT_ERRORS as e:
            raise LedgerError(f"Writing {range_} failed: {e}") from e
