"""
SafePrag - Webhook da Stripe

POST /webhook recebe o corpo bruto (a assinatura é calculada sobre ele) e o
header stripe-signature. Eventos verificados são sempre reconhecidos com
{"received": true}, mesmo quando o processamento interno falha.
"""
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import PlainTextResponse

from safeprag.core.config import settings
from safeprag.core.logging_config import get_logger
from safeprag.services.webhook_service import (
    StripeWebhookService,
    get_webhook_service,
    verify_webhook_payload,
)

log = get_logger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    service: StripeWebhookService = Depends(get_webhook_service),
):
    secret = settings.stripe_webhook_secret
    if not secret:
        log.error("webhook_secret_missing", mode=settings.stripe_mode)
        return PlainTextResponse("Webhook secret não configurado", status_code=500)

    payload = await request.body()
    try:
        event = verify_webhook_payload(payload, stripe_signature, secret)
    except (stripe.SignatureVerificationError, ValueError) as e:
        log.warning("webhook_signature_invalid", error=str(e))
        return PlainTextResponse(f"Webhook Error: {e}", status_code=400)

    await service.handle_event(event)
    return {"received": True}
