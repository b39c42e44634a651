from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.mlsync.constants import SELLER_SKU_ATTRIBUTE
from app.mlsync.modules.reconciliation.errors import MarketplaceError, UnresolvedSKU
from app.mlsync.modules.reconciliation.marketplace_client import MarketplaceClient
from app.mlsync.modules.reconciliation.pacing import Pacer
from app.mlsync.modules.reconciliation.tokens import TokenStore

logger = logging.getLogger(__name__)

SINGLE_ITEM = "single_item"
SELLER_CUSTOM_FIELD = "seller_custom_field"
SELLER_SKU_ATTRIBUTE_MATCH = "seller_sku_attribute"
VARIATION_SELLER_SKU = "variation_seller_sku"
FIRST_ITEM_FALLBACK = "first_item_fallback"


@dataclass(frozen=True)
class Resolution:
    """
    A resolved marketplace identifier for one (shipment, sku) pair.

    ``verified`` is False when no candidate matched the SKU and the first item of
    the shipment was used as a best-effort default.
    """

    identifier: str
    match_source: str

    @property
    def verified(self) -> bool:
        return self.match_source != FIRST_ITEM_FALLBACK


def _safe_text(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


def compose_identifier(item_id: Any, variation_id: Any = None) -> str:
    item = _safe_text(item_id)
    variation = _safe_text(variation_id)
    return f"{item}-{variation}" if variation else item


def _attribute_value(attributes: Any, attribute_id: str) -> str | None:
    if not isinstance(attributes, list):
        return None
    for attr in attributes:
        if isinstance(attr, dict) and attr.get("id") == attribute_id:
            return attr.get("value_name")
    return None


def match_source_for(details: dict[str, Any], sku: str, variation_id: Any = None) -> str | None:
    """Which field of the item details (if any) carries ``sku``."""
    if not sku:
        return None
    if details.get("seller_custom_field") == sku:
        return SELLER_CUSTOM_FIELD
    if _attribute_value(details.get("attributes"), SELLER_SKU_ATTRIBUTE) == sku:
        return SELLER_SKU_ATTRIBUTE_MATCH
    variations = details.get("variations")
    if variation_id and isinstance(variations, list):
        wanted = _safe_text(variation_id)
        for variation in variations:
            if isinstance(variation, dict) and _safe_text(variation.get("id")) == wanted:
                if _attribute_value(variation.get("attributes"), SELLER_SKU_ATTRIBUTE) == sku:
                    return VARIATION_SELLER_SKU
                break
    return None


def _error_message(body: dict[str, Any]) -> str:
    return _safe_text(body.get("message") or body.get("error")) or "unknown"


class IdentifierResolver:
    def __init__(self, client: MarketplaceClient, tokens: TokenStore, pacer: Pacer) -> None:
        self.client = client
        self.tokens = tokens
        self.pacer = pacer

    async def resolve(self, shipment_id: str, sku: str, account_name: str) -> Resolution | None:
        """Best-effort resolution; any failure is logged and yields None."""
        try:
            return await self.resolve_or_raise(shipment_id, sku, account_name)
        except (UnresolvedSKU, MarketplaceError) as e:
            logger.info("Shipment %s sku=%s unresolved: %s", shipment_id, sku, e)
            return None

    async def resolve_or_raise(self, shipment_id: str, sku: str, account_name: str) -> Resolution:
        token = self.tokens.token_for(account_name)
        if not token:
            raise UnresolvedSKU("no_token", f"no token for account {account_name!r}")

        items = await self.client.get_shipment_items(shipment_id, token)
        if isinstance(items, dict) and items.get("error"):
            raise UnresolvedSKU("api_error", _error_message(items))
        if not isinstance(items, list) or not items:
            raise UnresolvedSKU("no_items", f"shipment {shipment_id} has no items")

        if len(items) == 1:
            only = items[0] if isinstance(items[0], dict) else {}
            if not _safe_text(only.get("item_id")):
                raise UnresolvedSKU("no_candidate", "single item without item_id")
            return Resolution(compose_identifier(only.get("item_id"), only.get("variation_id")), SINGLE_ITEM)

        for item in items:
            if not isinstance(item, dict):
                continue
            item_id = _safe_text(item.get("item_id"))
            if not item_id:
                continue
            variation_id = item.get("variation_id")

            await self.pacer.wait()
            details = await self.client.get_item(item_id, token)
            if not isinstance(details, dict) or details.get("error"):
                logger.debug("Item %s details unavailable, skipping candidate", item_id)
                continue

            source = match_source_for(details, sku, variation_id)
            if source:
                return Resolution(compose_identifier(item_id, variation_id), source)

        first = items[0] if isinstance(items[0], dict) else {}
        if not _safe_text(first.get("item_id")):
            raise UnresolvedSKU("no_candidate", "first item has no item_id")
        logger.warning("Shipment %s: no item matches sku=%s, using first item (unverified)", shipment_id, sku)
        return Resolution(compose_identifier(first.get("item_id"), first.get("variation_id")), FIRST_ITEM_FALLBACK)
