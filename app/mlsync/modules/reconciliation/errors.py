from __future__ import annotations


class MarketplaceError(RuntimeError):
    pass


class TransportError(MarketplaceError):
    """Connection failure or timeout talking to the marketplace."""


class DecodeError(MarketplaceError):
    """Marketplace answered with a body that is not JSON."""


class ReconciliationError(RuntimeError):
    reason = "error"


class UnresolvedSKU(ReconciliationError):
    """No token, no items, API error body, or no usable candidate."""

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class MissingShipmentId(ReconciliationError):
    reason = "missing_shipment_id"


class LedgerError(RuntimeError):
    pass


class SchedulerStateError(RuntimeError):
    pass
