"""
SafePrag - Serviço de Assinaturas

- Provedores de status de assinatura (cache local ou API de billing)
- Cache em memória com TTL, invalidado por BillingStatusChanged
- BillingGate: bloqueia a geração de PDF sem assinatura ativa
- Operações na Stripe: checkout, preços e complemento de price/product
"""
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
import stripe
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from safeprag.core.config import settings
from safeprag.core.events import BillingStatusChanged, get_event_bus
from safeprag.core.exceptions import (
    BillingConfigurationError,
    BillingUnavailableError,
    PaymentProviderError,
    SubscriptionInactiveError,
)
from safeprag.core.logging_config import get_logger
from safeprag.core.policy import Identity, bypasses_billing, requires_active_subscription
from safeprag.middleware.logger import BusinessLoggerMixin
from safeprag.models.schemas import BillingRecord, BillingStatus, PriceInfo, PriceProduct, PriceRecurring
from safeprag.services.billing_store import BillingStore, get_billing_store

log = get_logger(__name__)


def stripe_field(obj: Any, name: str, default: Any = None) -> Any:
    """Lê campo de StripeObject ou dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def record_to_status(record: Optional[BillingRecord]) -> BillingStatus:
    if record is None:
        return BillingStatus(active=False, status="inactive", updated_at=None)
    return BillingStatus(
        active=record.active,
        status=record.status,
        updated_at=record.updated_at,
        customer_id=record.customer_id,
        price_id=record.price_id,
        product_id=record.product_id,
    )


# =============================================================================
# PROVEDORES DE STATUS
# =============================================================================

class LocalBillingStatusProvider:
    """Lê o status direto do cache local alimentado pelo webhook."""

    def __init__(self, store: BillingStore):
        self.store = store

    async def get_status(self, company_id: str) -> BillingStatus:
        return record_to_status(self.store.get(company_id))


class HttpBillingStatusProvider:
    """Consulta GET {BILLING_API_URL}/billing/status/{companyId}."""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def get_status(self, company_id: str) -> BillingStatus:
        url = f"{self.base_url}/billing/status/{quote(company_id, safe='')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                return BillingStatus.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            log.warning("billing_status_fetch_failed", company_id=company_id, error=str(e))
            raise BillingUnavailableError(company_id, str(e)) from e


class CachedBillingStatusProvider:
    """Cache por empresa com TTL (0 desativa)."""

    def __init__(self, inner, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._cache: Dict[str, Tuple[float, BillingStatus]] = {}

    async def get_status(self, company_id: str) -> BillingStatus:
        now = self.clock()
        cached = self._cache.get(company_id)
        if cached and cached[0] > now:
            return cached[1]

        status = await self.inner.get_status(company_id)
        if self.ttl_seconds > 0:
            self._cache[company_id] = (now + self.ttl_seconds, status)
        return status

    def invalidate(self, company_id: Optional[str] = None) -> None:
        if company_id is None:
            self._cache.clear()
        else:
            self._cache.pop(company_id, None)

    def on_billing_status_changed(self, event: BillingStatusChanged) -> None:
        self.invalidate(event.company_id)


_status_provider: Optional[CachedBillingStatusProvider] = None


def get_billing_status_provider() -> CachedBillingStatusProvider:
    """Provedor do processo, montado a partir das configurações."""
    global _status_provider
    if _status_provider is None:
        if settings.BILLING_API_URL:
            inner = HttpBillingStatusProvider(settings.BILLING_API_URL, settings.BILLING_HTTP_TIMEOUT)
        else:
            inner = LocalBillingStatusProvider(get_billing_store())
        _status_provider = CachedBillingStatusProvider(inner, settings.BILLING_STATUS_CACHE_SECONDS)
        get_event_bus().subscribe(BillingStatusChanged, _status_provider.on_billing_status_changed)
    return _status_provider


def reset_billing_status_provider() -> None:
    global _status_provider
    if _status_provider is not None:
        get_event_bus().unsubscribe(BillingStatusChanged, _status_provider.on_billing_status_changed)
    _status_provider = None


# =============================================================================
# GATE
# =============================================================================

class BillingGate(BusinessLoggerMixin):
    """Verificação de assinatura antes de gerar PDF. Sem retry."""

    def __init__(self, provider):
        self.provider = provider

    async def ensure_can_generate(self, identity: Identity, company_id: str) -> Optional[BillingStatus]:
        """
        Levanta SubscriptionInactiveError se a assinatura estiver inativa
        e o perfil depender dela. Retorna o status consultado (ou None
        quando a verificação não se aplica).
        """
        if not requires_active_subscription(identity):
            self.log_business(
                "billing_check_skipped",
                company_id=company_id,
                role=identity.role.value,
                bypass=bypasses_billing(identity),
            )
            return None

        try:
            status = await self.provider.get_status(company_id)
        except BillingUnavailableError:
            raise
        except Exception as e:
            self.log_error("billing_status_unavailable", e, company_id=company_id)
            raise BillingUnavailableError(company_id, str(e)) from e

        if not status.active:
            self.log.warning(
                "report_blocked_inactive_subscription",
                company_id=company_id,
                role=identity.role.value,
                status=status.status,
            )
            raise SubscriptionInactiveError(company_id, status.status)

        return status


# =============================================================================
# STRIPE
# =============================================================================

class StripeBillingService(BusinessLoggerMixin):
    """Chamadas à Stripe (SDK síncrono, executado em threadpool)."""

    def __init__(self, store: BillingStore, api_key: Optional[str] = None):
        self.store = store
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise BillingConfigurationError("Stripe não configurado")

    async def create_checkout_session(
        self,
        company_id: str,
        price_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> Tuple[str, Optional[str]]:
        """
        Cria Checkout Session de assinatura. Retorna (id, url).

        As URLs de retorno enviadas pelo cliente têm precedência sobre as
        configuradas em CHECKOUT_SUCCESS_URL / CHECKOUT_CANCEL_URL.
        """
        self._require_configured()
        price = price_id or settings.STRIPE_PRICE_ID
        if not price:
            raise BillingConfigurationError("Preço não configurado")

        params = {
            "api_key": self.api_key,
            "mode": "subscription",
            "line_items": [{"price": price, "quantity": 1}],
            "success_url": success_url or settings.CHECKOUT_SUCCESS_URL,
            "cancel_url": cancel_url or settings.CHECKOUT_CANCEL_URL,
            "client_reference_id": company_id,
            "metadata": {"companyId": company_id},
            "subscription_data": {"metadata": {"companyId": company_id}},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = await run_in_threadpool(stripe.checkout.Session.create, **params)
        except stripe.StripeError as e:
            self.log_error("checkout_session_failed", e, company_id=company_id)
            raise PaymentProviderError(str(e), company_id=company_id) from e

        session_id = stripe_field(session, "id")
        self.log_business("checkout_session_created", company_id=company_id, session_id=session_id, price_id=price)
        return session_id, stripe_field(session, "url")

    async def list_prices(self) -> List[PriceInfo]:
        """Preços recorrentes ativos, com dados do produto."""
        self._require_configured()
        try:
            result = await run_in_threadpool(
                stripe.Price.list,
                api_key=self.api_key,
                active=True,
                type="recurring",
                limit=100,
                expand=["data.product"],
            )
        except stripe.StripeError as e:
            self.log_error("price_list_failed", e)
            raise PaymentProviderError(str(e)) from e

        prices = []
        for price in stripe_field(result, "data", []) or []:
            recurring = stripe_field(price, "recurring")
            product = stripe_field(price, "product")
            if isinstance(product, str):
                product_info = PriceProduct(id=product)
            elif product is not None:
                product_info = PriceProduct(
                    id=stripe_field(product, "id"),
                    name=stripe_field(product, "name"),
                    description=stripe_field(product, "description"),
                )
            else:
                product_info = None
            prices.append(PriceInfo(
                id=stripe_field(price, "id"),
                currency=stripe_field(price, "currency"),
                unit_amount=stripe_field(price, "unit_amount"),
                recurring=PriceRecurring(
                    interval=stripe_field(recurring, "interval"),
                    interval_count=stripe_field(recurring, "interval_count"),
                ) if recurring is not None else None,
                product=product_info,
            ))
        return prices

    async def checkout_price_and_product(self, session_id: str) -> Tuple[Optional[str], Optional[str]]:
        """Price/product do primeiro item de uma Checkout Session."""
        if not self.is_configured or not session_id:
            return None, None
        session = await run_in_threadpool(
            stripe.checkout.Session.retrieve,
            session_id,
            api_key=self.api_key,
            expand=["line_items"],
        )
        items = stripe_field(stripe_field(session, "line_items"), "data", []) or []
        if not items:
            return None, None
        return price_and_product(stripe_field(items[0], "price"))

    async def backfill_price(self, company_id: str, record: BillingRecord) -> BillingRecord:
        """
        Completa priceId/productId de uma assinatura ativa a partir das
        assinaturas do cliente na Stripe. Melhor esforço.
        """
        if not (self.is_configured and record.active and record.customer_id and not record.price_id):
            return record
        try:
            subscriptions = await run_in_threadpool(
                stripe.Subscription.list,
                api_key=self.api_key,
                customer=record.customer_id,
                status="active",
                limit=1,
            )
            data = stripe_field(subscriptions, "data", []) or []
            if not data:
                return record
            items = stripe_field(stripe_field(data[0], "items"), "data", []) or []
            if not items:
                return record
            price_id, product_id = price_and_product(stripe_field(items[0], "price"))
        except (stripe.StripeError, KeyError, IndexError) as e:
            self.log.warning("billing_backfill_failed", company_id=company_id, error=str(e))
            return record

        if not price_id:
            return record
        self.log_business("billing_backfilled", company_id=company_id, price_id=price_id)
        return self.store.upsert(company_id, price_id=price_id, product_id=product_id)


def price_and_product(price: Any) -> Tuple[Optional[str], Optional[str]]:
    """(price_id, product_id) de um objeto price da Stripe."""
    if price is None:
        return None, None
    if isinstance(price, str):
        return price, None
    product = stripe_field(price, "product")
    product_id = product if isinstance(product, str) else stripe_field(product, "id")
    return stripe_field(price, "id"), product_id


def get_stripe_billing_service() -> StripeBillingService:
    return StripeBillingService(get_billing_store())
