from __future__ import annotations

import json
import urllib.parse
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.mlsync.constants import ML_API_BASE_URL
from app.mlsync.modules.reconciliation.errors import DecodeError, TransportError


def _segment(value: Any) -> str:
    """One path segment; "/" is escaped so an id cannot reach another endpoint."""
    return urllib.parse.quote(str(value), safe="")


@dataclass
class MarketplaceClient:
    """
    Thin async GET client for the marketplace API.

    Status codes are not interpreted: an error body (``{"error": ..., "message": ...}``)
    is returned as-is and the caller decides what it means. No retries.
    """

    base_url: str = ML_API_BASE_URL
    timeout_seconds: float = 30.0
    http: httpx.AsyncClient | None = None
    _owns_http: bool = field(default=False, init=False, repr=False)

    def _client(self) -> httpx.AsyncClient:
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_http = True
        return self.http

    async def aclose(self) -> None:
        if self.http is not None and self._owns_http:
            await self.http.aclose()
            self.http = None
            self._owns_http = False

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def request(self, path: str, token: str) -> Any:
        url = self.base_url.rstrip("/") + path
        try:
            resp = await self._client().get(
                url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.TransportError as e:
            raise TransportError(f"Marketplace request failed ({path}): {e}") from e
        try:
            return json.loads(resp.content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError(f"Invalid JSON from marketplace ({path}, HTTP {resp.status_code})") from e

    async def get_shipment_items(self, shipment_id: str, token: str) -> Any:
        return await self.request(f"/shipments/{_segment(shipment_id)}/items", token)

    async def get_item(self, item_id: str, token: str) -> Any:
        return await self.request(f"/items/{_segment(item_id)}", token)
