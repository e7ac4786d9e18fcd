"""
SafePrag - Processamento de Webhooks da Stripe

Verifica a assinatura do payload bruto e atualiza o cache local de
assinaturas conforme o tipo de evento. Erros dentro do processamento de um
evento são logados e não mudam a resposta (o evento é sempre reconhecido).
"""
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import stripe

from safeprag.core.config import settings
from safeprag.core.events import BillingStatusChanged, EventBus, get_event_bus
from safeprag.middleware.logger import BusinessLoggerMixin
from safeprag.services.billing_service import (
    StripeBillingService,
    get_stripe_billing_service,
    price_and_product,
    stripe_field,
)
from safeprag.services.billing_store import BillingStore, get_billing_store


def verify_webhook_payload(payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
    """
    Valida o header stripe-signature e devolve o evento como dict.

    Raises:
        stripe.SignatureVerificationError: assinatura ausente ou inválida
        ValueError: payload não é JSON válido
    """
    text = payload.decode("utf-8")
    stripe.WebhookSignature.verify_header(
        text, signature or "", secret, settings.STRIPE_WEBHOOK_TOLERANCE,
    )
    event = json.loads(text)
    if not isinstance(event, dict):
        raise ValueError("Payload do evento inválido")
    return event


def extract_company_id(obj: Dict[str, Any]) -> Optional[str]:
    """metadata.companyId do objeto (ou da assinatura/linha da fatura)."""
    candidates = [
        stripe_field(stripe_field(obj, "metadata"), "companyId"),
        stripe_field(stripe_field(stripe_field(obj, "subscription_details"), "metadata"), "companyId"),
    ]
    lines = stripe_field(stripe_field(obj, "lines"), "data") or []
    if lines:
        candidates.append(stripe_field(stripe_field(lines[0], "metadata"), "companyId"))
    candidates.append(stripe_field(obj, "client_reference_id"))

    for candidate in candidates:
        if candidate:
            return str(candidate)
    return None


class StripeWebhookService(BusinessLoggerMixin):
    """Aplica eventos da Stripe ao cache de assinaturas (vence a última escrita)."""

    def __init__(
        self,
        store: BillingStore,
        stripe_service: StripeBillingService,
        bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.stripe_service = stripe_service
        self.bus = bus or get_event_bus()
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "checkout.session.completed": self._checkout_completed,
            "customer.subscription.created": self._subscription_changed,
            "customer.subscription.updated": self._subscription_changed,
            "customer.subscription.deleted": self._subscription_deleted,
            "invoice.payment_failed": self._payment_failed,
            "invoice.payment_succeeded": self._payment_succeeded,
        }

    async def handle_event(self, event: Dict[str, Any]) -> bool:
        """Processa um evento verificado. Retorna True se o cache mudou."""
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        handler = self._handlers.get(event_type)
        if handler is None:
            self.log.debug("webhook_event_ignored", event_type=event_type, reason="unhandled_type")
            return False

        company_id = extract_company_id(obj)
        if not company_id:
            self.log.info("webhook_event_ignored", event_type=event_type, reason="missing_company_id")
            return False

        try:
            changes = await handler(obj)
            record = self.store.upsert(company_id, **changes)
            await self.bus.publish(BillingStatusChanged(
                company_id=company_id,
                active=record.active,
                status=record.status,
                event_type=event_type,
            ))
        except Exception as e:
            self.log_error("webhook_event_failed", e, event_type=event_type, company_id=company_id)
            return False

        self.log_business(
            "webhook_event_processed",
            event_type=event_type,
            event_id=event.get("id"),
            company_id=company_id,
            active=record.active,
            status=record.status,
        )
        return True

    # -------------------------------------------------------------------------
    # Handlers por tipo de evento
    # -------------------------------------------------------------------------

    async def _checkout_completed(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        changes = {
            "active": True,
            "status": "active",
            "customer_id": stripe_field(obj, "customer"),
        }
        try:
            price_id, product_id = await self.stripe_service.checkout_price_and_product(stripe_field(obj, "id"))
        except stripe.StripeError as e:
            self.log.warning("checkout_line_items_failed", session_id=stripe_field(obj, "id"), error=str(e))
            price_id, product_id = None, None
        changes.update(price_id=price_id, product_id=product_id)
        return changes

    async def _subscription_changed(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        status = stripe_field(obj, "status") or "inactive"
        items = stripe_field(stripe_field(obj, "items"), "data") or []
        price_id, product_id = price_and_product(stripe_field(items[0], "price")) if items else (None, None)
        return {
            "active": status == "active",
            "status": status,
            "customer_id": stripe_field(obj, "customer"),
            "price_id": price_id,
            "product_id": product_id,
        }

    async def _subscription_deleted(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "active": False,
            "status": "canceled",
            "customer_id": stripe_field(obj, "customer"),
            "clear_plan": True,
        }

    async def _payment_failed(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "active": False,
            "status": "past_due",
            "customer_id": stripe_field(obj, "customer"),
            "clear_plan": True,
        }

    async def _payment_succeeded(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        lines = stripe_field(stripe_field(obj, "lines"), "data") or []
        price_id, product_id = price_and_product(stripe_field(lines[0], "price")) if lines else (None, None)
        return {
            "active": True,
            "status": "active",
            "customer_id": stripe_field(obj, "customer"),
            "price_id": price_id,
            "product_id": product_id,
        }


def get_webhook_service() -> StripeWebhookService:
    return StripeWebhookService(get_billing_store(), get_stripe_billing_service())
