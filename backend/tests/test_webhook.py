"""
SafePrag - Testes do Webhook da Stripe
"""
import pytest
from httpx import AsyncClient

from conftest import sign_payload, stripe_event
from safeprag.core.config import settings
from safeprag.core.events import BillingStatusChanged, get_event_bus
from safeprag.services.webhook_service import extract_company_id


async def post_event(client: AsyncClient, payload: str, signature: str = None):
    headers = {"Content-Type": "application/json"}
    headers["stripe-signature"] = signature if signature is not None else sign_payload(payload)
    return await client.post("/webhook", content=payload.encode("utf-8"), headers=headers)


def subscription(status: str, company_id: str = "empresa-1") -> dict:
    return {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": status,
        "metadata": {"companyId": company_id},
        "items": {"data": [{"price": {"id": "price_1", "product": "prod_1"}}]},
    }


class TestExtractCompanyId:

    def test_from_metadata(self):
        assert extract_company_id({"metadata": {"companyId": "empresa-1"}}) == "empresa-1"

    def test_from_invoice_subscription_details(self):
        obj = {"subscription_details": {"metadata": {"companyId": "empresa-2"}}, "metadata": {}}
        assert extract_company_id(obj) == "empresa-2"

    def test_from_invoice_line(self):
        obj = {"lines": {"data": [{"metadata": {"companyId": "empresa-3"}}]}}
        assert extract_company_id(obj) == "empresa-3"

    def test_missing(self):
        assert extract_company_id({"metadata": {}}) is None


class TestWebhookVerification:

    @pytest.mark.asyncio
    async def test_missing_secret(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET_TEST", None)
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET_LIVE", None)
        payload = stripe_event("customer.subscription.updated", subscription("active"))
        async with client:
            response = await post_event(client, payload)
        assert response.status_code == 500
        assert response.text == "Webhook secret não configurado"

    @pytest.mark.asyncio
    async def test_invalid_signature(self, client: AsyncClient, billing_store):
        payload = stripe_event("customer.subscription.updated", subscription("active"))
        async with client:
            response = await post_event(client, payload, signature=sign_payload(payload, secret="whsec_outro"))
        assert response.status_code == 400
        assert response.text.startswith("Webhook Error:")
        assert billing_store.get("empresa-1") is None

    @pytest.mark.asyncio
    async def test_missing_signature_header(self, client: AsyncClient):
        payload = stripe_event("customer.subscription.updated", subscription("active"))
        async with client:
            response = await client.post("/webhook", content=payload.encode("utf-8"))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_expired_timestamp(self, client: AsyncClient):
        payload = stripe_event("customer.subscription.updated", subscription("active"))
        async with client:
            response = await post_event(client, payload, signature=sign_payload(payload, timestamp=1_000_000))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_mode_secret_fallback(self, client: AsyncClient, billing_store, monkeypatch):
        """Sem STRIPE_WEBHOOK_SECRET, usa o segredo do modo (test)."""
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET_TEST", "whsec_modo_teste")
        payload = stripe_event("customer.subscription.updated", subscription("active"))
        async with client:
            response = await post_event(client, payload, signature=sign_payload(payload, secret="whsec_modo_teste"))
        assert response.status_code == 200
        assert billing_store.get("empresa-1").active is True


class TestWebhookEvents:

    @pytest.mark.asyncio
    async def test_checkout_completed_activates(self, client: AsyncClient, billing_store):
        obj = {
            "id": "cs_1",
            "object": "checkout.session",
            "customer": "cus_1",
            "client_reference_id": "empresa-1",
            "metadata": {"companyId": "empresa-1"},
        }
        async with client:
            response = await post_event(client, stripe_event("checkout.session.completed", obj))
        assert response.status_code == 200
        assert response.json() == {"received": True}

        record = billing_store.get("empresa-1")
        assert record.active is True
        assert record.status == "active"
        assert record.customer_id == "cus_1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,active", [("active", True), ("past_due", False), ("trialing", False)])
    async def test_subscription_updated(self, client: AsyncClient, billing_store, status, active):
        async with client:
            await post_event(client, stripe_event("customer.subscription.updated", subscription(status)))
        record = billing_store.get("empresa-1")
        assert record.active is active
        assert record.status == status
        assert record.price_id == "price_1"
        assert record.product_id == "prod_1"

    @pytest.mark.asyncio
    async def test_subscription_deleted(self, client: AsyncClient, billing_store):
        billing_store.upsert("empresa-1", active=True, status="active", price_id="price_1", product_id="prod_1")
        async with client:
            await post_event(client, stripe_event("customer.subscription.deleted", subscription("canceled")))
        record = billing_store.get("empresa-1")
        assert record.active is False
        assert record.status == "canceled"
        assert record.price_id is None
        assert record.product_id is None
        assert record.active_price_ids == ["price_1"]

    @pytest.mark.asyncio
    async def test_invoice_events(self, client: AsyncClient, billing_store):
        billing_store.upsert("empresa-1", active=True, status="active", price_id="price_1", product_id="prod_1")
        invoice = {
            "id": "in_1",
            "object": "invoice",
            "customer": "cus_1",
            "subscription_details": {"metadata": {"companyId": "empresa-1"}},
            "lines": {"data": [{"price": {"id": "price_2", "product": "prod_2"}}]},
        }
        async with client:
            await post_event(client, stripe_event("invoice.payment_failed", invoice, "evt_1"))
            failed = billing_store.get("empresa-1")
            await post_event(client, stripe_event("invoice.payment_succeeded", invoice, "evt_2"))
        assert failed.active is False
        assert failed.status == "past_due"
        assert failed.price_id is None
        assert failed.product_id is None

        record = billing_store.get("empresa-1")
        assert record.active is True
        assert record.status == "active"
        assert record.price_id == "price_2"
        assert record.active_price_ids == ["price_1", "price_2"]

    @pytest.mark.asyncio
    async def test_last_write_wins(self, client: AsyncClient, billing_store):
        async with client:
            await post_event(client, stripe_event("customer.subscription.updated", subscription("active"), "evt_1"))
            await post_event(client, stripe_event("customer.subscription.deleted", subscription("canceled"), "evt_2"))
        assert billing_store.get("empresa-1").active is False

    @pytest.mark.asyncio
    async def test_missing_company_is_acknowledged(self, client: AsyncClient, billing_store):
        obj = subscription("active")
        obj["metadata"] = {}
        async with client:
            response = await post_event(client, stripe_event("customer.subscription.updated", obj))
        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert billing_store.read_all() == {}

    @pytest.mark.asyncio
    async def test_unhandled_event_type(self, client: AsyncClient, billing_store):
        async with client:
            response = await post_event(client, stripe_event("charge.refunded", {"metadata": {"companyId": "empresa-1"}}))
        assert response.status_code == 200
        assert billing_store.get("empresa-1") is None

    @pytest.mark.asyncio
    async def test_publishes_billing_status_changed(self, client: AsyncClient):
        received = []
        get_event_bus().subscribe(BillingStatusChanged, received.append)
        async with client:
            await post_event(client, stripe_event("customer.subscription.updated", subscription("active")))
        assert len(received) == 1
        assert received[0].company_id == "empresa-1"
        assert received[0].active is True
        assert received[0].event_type == "customer.subscription.updated"
