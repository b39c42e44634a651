import httpx
import pytest

from app.mlsync.modules.reconciliation.errors import DecodeError, TransportError
from app.mlsync.modules.reconciliation.marketplace_client import MarketplaceClient


@pytest.mark.asyncio
async def test_request_sends_bearer_token_and_parses_json(market):
    market.shipment_items["123"] = [{"item_id": "MLA1", "variation_id": None}]
    async with market.client() as client:
        body = await client.get_shipment_items("123", "tok-abc")

    assert body == [{"item_id": "MLA1", "variation_id": None}]
    req = market.requests[0]
    assert req.method == "GET"
    assert req.url.host == "api.mercadolibre.com"
    assert req.url.path == "/shipments/123/items"
    assert req.headers["Authorization"] == "Bearer tok-abc"


@pytest.mark.asyncio
async def test_error_body_is_returned_not_raised(market):
    # unknown item -> 404 with an error body; status codes are not interpreted
    async with market.client() as client:
        body = await client.get_item("MLA404", "tok")
    assert body["error"] == "not_found"
    assert body["message"] == "resource not found"


@pytest.mark.asyncio
async def test_non_json_body_raises_decode_error(market):
    market.raw_bodies["/items/MLA1"] = b"<html>bad gateway</html>"
    async with market.client() as client:
        with pytest.raises(DecodeError):
            await client.get_item("MLA1", "tok")


@pytest.mark.asyncio
async def test_connection_failure_raises_transport_error(market):
    market.transport_failures.add("/shipments/9/items")
    async with market.client() as client:
        with pytest.raises(TransportError):
            await client.get_shipment_items("9", "tok")


@pytest.mark.asyncio
async def test_timeout_raises_transport_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = MarketplaceClient(http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with pytest.raises(TransportError):
        await client.request("/items/MLA1", "tok")
    await client.http.aclose()


@pytest.mark.asyncio
async def test_base_url_override_and_path_quoting(market):
    client = MarketplaceClient(base_url="https://sandbox.example.test/", http=market.http())
    await client.get_item("MLA 1", "tok")
    assert str(market.requests[0].url) == "https://sandbox.example.test/items/MLA%201"
    await client.http.aclose()


@pytest.mark.asyncio
async def test_ids_cannot_escape_their_path_segment(market):
    async with market.client() as client:
        await client.get_shipment_items("123/../../users/me", "tok")
        await client.get_item("MLA1/descriptions", "tok")

    assert market.requests[0].url.raw_path == b"/shipments/123%2F..%2F..%2Fusers%2Fme/items"
    assert market.requests[1].url.raw_path == b"/items/MLA1%2Fdescriptions"
