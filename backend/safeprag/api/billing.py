"""
SafePrag - API de Assinaturas

Rotas na raiz (sem API_PREFIX), consumidas pelo app e pela página de checkout:
- GET  /billing/status/{companyId}
- POST /billing/create-checkout-session
- GET  /billing/prices
"""
from fastapi import APIRouter, Depends, HTTPException, status

from safeprag.core.exceptions import SafePragError, to_http_exception
from safeprag.core.logging_config import get_logger
from safeprag.models.schemas import (
    BillingStatus,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    PriceList,
)
from safeprag.services.billing_service import (
    StripeBillingService,
    get_stripe_billing_service,
    record_to_status,
)

log = get_logger(__name__)

router = APIRouter(
    prefix="/billing",
    tags=["Assinaturas"],
)


@router.get("/status/{company_id}", response_model=BillingStatus)
async def get_billing_status(
    company_id: str,
    service: StripeBillingService = Depends(get_stripe_billing_service),
):
    """
    Status da assinatura da empresa a partir do cache local.

    Empresa desconhecida: {"active": false, "status": "inactive", "updatedAt": null}.
    Assinatura ativa sem priceId/productId é complementada pela Stripe.
    """
    record = service.store.get(company_id)
    if record is None:
        return record_to_status(None)

    if record.active and not record.price_id:
        record = await service.backfill_price(company_id, record)

    return record_to_status(record)


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    body: CheckoutSessionRequest,
    service: StripeBillingService = Depends(get_stripe_billing_service),
):
    """Cria Checkout Session de assinatura para a empresa."""
    company_id = body.resolved_company_id
    if not company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="companyId é obrigatório",
        )

    try:
        session_id, url = await service.create_checkout_session(
            company_id,
            price_id=body.price_id,
            customer_email=body.customer_email,
            success_url=body.success_url,
            cancel_url=body.cancel_url,
        )
    except SafePragError as e:
        raise to_http_exception(e)

    return CheckoutSessionResponse(id=session_id, url=url)


@router.get("/prices", response_model=PriceList)
async def list_prices(service: StripeBillingService = Depends(get_stripe_billing_service)):
    """Preços recorrentes ativos com nome e descrição do produto."""
    try:
        prices = await service.list_prices()
    except SafePragError as e:
        raise to_http_exception(e)
    return PriceList(data=prices)
