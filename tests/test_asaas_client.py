"""
Asaas Client Tests
==================

Requests go through httpx.MockTransport; no network.

Coverage:
  - access_token header and JSON payloads for customer/subscription creation
  - payments list unwrapping ({"data": [...]})
  - Asaas error descriptions surfaced in AsaasClientError
  - timeouts → 504, connection errors → 502
  - extract_payment_link() best-effort scan
"""

import json
from datetime import date, timedelta

import httpx
import pytest

from app.services.asaas_client import AsaasClient, AsaasClientError, cents_to_value


def _client(handler):
    return AsaasClient(
        base_url="https://asaas.test/api/v3/",
        api_key="key-123",
        transport=httpx.MockTransport(handler),
    )


class TestRequests:

    @pytest.mark.asyncio
    async def test_create_customer(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("access_token")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "cus_1", "name": "Ana"})

        client = _client(handler)
        customer = await client.create_customer(name="Ana", email="ana@example.com")
        await client.aclose()

        assert customer["id"] == "cus_1"
        assert seen["method"] == "POST"
        assert seen["url"] == "https://asaas.test/api/v3/customers"
        assert seen["token"] == "key-123"
        assert seen["body"] == {"name": "Ana", "email": "ana@example.com"}

    @pytest.mark.asyncio
    async def test_create_customer_without_name_uses_email(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "cus_2"})

        client = _client(handler)
        await client.create_customer(name=None, email="bob@example.com")
        assert bodies[0]["name"] == "bob@example.com"

    @pytest.mark.asyncio
    async def test_create_subscription_payload(self):
        bodies = []

        def handler(request):
            assert request.url.path == "/api/v3/subscriptions"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "sub_1", "status": "ACTIVE"})

        client = _client(handler)
        subscription = await client.create_subscription(
            customer_id="cus_1", plan_id="pro", amount_cents=4990, cycle="YEARLY",
        )

        assert subscription == {"id": "sub_1", "status": "ACTIVE"}
        body = bodies[0]
        assert body["customer"] == "cus_1"
        assert body["value"] == 49.9
        assert body["cycle"] == "YEARLY"
        assert body["externalReference"] == "pro"
        assert body["billingType"] == "UNDEFINED"
        assert date.fromisoformat(body["nextDueDate"]) > date.today() - timedelta(days=1)

    @pytest.mark.asyncio
    async def test_list_payments_unwraps_data(self):
        def handler(request):
            assert request.method == "GET"
            assert request.url.path == "/api/v3/subscriptions/sub_1/payments"
            return httpx.Response(200, json={
                "object": "list",
                "hasMore": False,
                "data": [{"id": "pay_1", "status": "PENDING", "invoiceUrl": "https://inv/1"}],
            })

        payments = await _client(handler).list_subscription_payments("sub_1")
        assert payments == [{"id": "pay_1", "status": "PENDING", "invoiceUrl": "https://inv/1"}]

    @pytest.mark.asyncio
    async def test_list_payments_unexpected_body(self):
        payments = await _client(lambda r: httpx.Response(200, json={"object": "list"})).list_subscription_payments("sub_1")
        assert payments == []


class TestErrors:

    @pytest.mark.asyncio
    async def test_error_description_surfaced(self):
        def handler(request):
            return httpx.Response(400, json={
                "errors": [{"code": "invalid_customer", "description": "Customer removed."}],
            })

        with pytest.raises(AsaasClientError) as excinfo:
            await _client(handler).create_subscription("cus_1", "pro", 100, "MONTHLY")
        assert excinfo.value.status_code == 400
        assert excinfo.value.detail == "Customer removed."

    @pytest.mark.asyncio
    async def test_plain_text_error(self):
        with pytest.raises(AsaasClientError) as excinfo:
            await _client(lambda r: httpx.Response(401, text="unauthorized")).list_subscription_payments("sub_1")
        assert excinfo.value.status_code == 401
        assert excinfo.value.detail == "unauthorized"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_504(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(AsaasClientError) as excinfo:
            await _client(handler).list_subscription_payments("sub_1")
        assert excinfo.value.status_code == 504

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_502(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(AsaasClientError) as excinfo:
            await _client(handler).create_customer("Ana", "ana@example.com")
        assert excinfo.value.status_code == 502


class TestExtractPaymentLink:

    def test_top_level_payment_link(self):
        assert AsaasClient.extract_payment_link({"id": "sub_1", "paymentLink": "L"}) == "L"

    def test_top_level_invoice_url(self):
        assert AsaasClient.extract_payment_link({"id": "sub_1", "invoiceUrl": "I"}) == "I"

    def test_embedded_payments(self):
        subscription = {"id": "sub_1", "payments": [{"bankSlipUrl": "S"}]}
        assert AsaasClient.extract_payment_link(subscription) == "S"

    def test_nothing_found(self):
        assert AsaasClient.extract_payment_link({"id": "sub_1", "status": "ACTIVE"}) is None
        assert AsaasClient.extract_payment_link(None) is None


def test_cents_to_value():
    assert cents_to_value(0) == 0.0
    assert cents_to_value(1999) == 19.99
    assert cents_to_value(100000) == 1000.0
