import json

import httpx
import pytest

from app.errors import DeliveryError
from app.reconciliation import SECRET_HEADER, ReconciliationClient

URL = "https://automation.example.test/webhook/work-orders"
PAYLOAD = {"workOrderId": "88235", "interventions": [], "partUsages": []}


def _client(handler, url=URL, secret="s3cret"):
    return ReconciliationClient(url, secret=secret, timeout=2.0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_deliver_posts_payload_with_secret():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["secret"] = request.headers.get(SECRET_HEADER)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "workOrderId": "88235"})

    ack = await _client(handler).deliver(PAYLOAD)

    assert ack.status_code == 200
    assert ack.body["success"] is True
    assert seen == {"method": "POST", "secret": "s3cret", "body": PAYLOAD}


@pytest.mark.asyncio
async def test_empty_or_non_json_success_body_is_still_an_ack():
    ack = await _client(lambda request: httpx.Response(204)).deliver(PAYLOAD)
    assert ack.body == {}

    ack = await _client(lambda request: httpx.Response(200, text="Workflow was started")).deliver(PAYLOAD)
    assert ack.status_code == 200
    assert ack.body == {}


@pytest.mark.asyncio
async def test_non_success_status_is_delivery_error():
    client = _client(lambda request: httpx.Response(500, text="Airtable rate limit"))
    with pytest.raises(DeliveryError) as exc_info:
        await client.deliver(PAYLOAD)
    assert "500" in exc_info.value.message
    assert "rate limit" in exc_info.value.message
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_transport_error_is_delivery_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DeliveryError) as exc_info:
        await _client(handler).deliver(PAYLOAD)
    assert "unreachable" in exc_info.value.message


@pytest.mark.asyncio
async def test_timeout_is_delivery_error():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(DeliveryError) as exc_info:
        await _client(handler).deliver(PAYLOAD)
    assert "timed out" in exc_info.value.message


@pytest.mark.asyncio
async def test_missing_url_fails_without_network():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(DeliveryError, match="not configured"):
        await _client(handler, url=None).deliver(PAYLOAD)


@pytest.mark.asyncio
async def test_secret_header_omitted_when_unset():
    seen = {}

    def handler(request):
        seen["has_secret"] = SECRET_HEADER in request.headers
        return httpx.Response(200)

    await _client(handler, secret=None).deliver(PAYLOAD)
    assert seen["has_secret"] is False
