"""
SafePrag - Exceções de Domínio

Os services levantam estas exceções; os routers traduzem para HTTPException.
"""
from typing import Optional

from fastapi import HTTPException


class SafePragError(Exception):
    """Erro base da aplicação."""

    status_code: int = 500

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ReportDataError(SafePragError):
    """Dados da ordem de serviço inconsistentes."""

    status_code = 422


class AccessDeniedError(SafePragError):
    """Identidade sem acesso à empresa solicitada."""

    status_code = 403


class NotFoundError(SafePragError):
    status_code = 404


class SubscriptionInactiveError(SafePragError):
    """Assinatura inativa: geração de PDF bloqueada."""

    status_code = 402

    def __init__(self, company_id: str, status: Optional[str] = None):
        super().__init__(
            "Assinatura inativa. Geração de PDF bloqueada para administradores e controladores.",
            company_id=company_id,
            status=status,
        )
        self.company_id = company_id
        self.status = status


class BillingUnavailableError(SafePragError):
    """Não foi possível consultar o status da assinatura."""

    status_code = 503

    def __init__(self, company_id: str, reason: str):
        super().__init__(
            "Não foi possível verificar a assinatura. Tente novamente em instantes.",
            company_id=company_id,
            reason=reason,
        )
        self.company_id = company_id
        self.reason = reason


class BillingConfigurationError(SafePragError):
    """Stripe ou preço não configurados."""

    status_code = 500


class PaymentProviderError(SafePragError):
    """Falha na chamada ao provedor de pagamentos."""

    status_code = 500


def to_http_exception(error: SafePragError) -> HTTPException:
    """Traduz erro de domínio para HTTPException com a mensagem em português."""
    return HTTPException(status_code=error.status_code, detail=error.message)
