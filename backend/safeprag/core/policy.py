"""
SafePrag - Política de Autorização

Ponto único de decisão sobre perfis: quem ignora a verificação de assinatura,
quem precisa de assinatura ativa e quem acessa dados de qual empresa.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from safeprag.core.config import settings


class Role(str, Enum):
    ADMIN = "admin"
    CONTROLADOR = "controlador"
    CLIENTE = "cliente"
    SUPERUSER = "superuser"
    SUPORTE = "suporte"


# Perfis de plataforma: enxergam todas as empresas e não pagam assinatura
PLATFORM_ROLES = {Role.SUPERUSER, Role.SUPORTE}


@dataclass(frozen=True)
class Identity:
    """Identidade autenticada extraída do token."""

    subject: str
    role: Role
    email: Optional[str] = None
    company_id: Optional[str] = None


def is_owner(identity: Identity) -> bool:
    """Dono da plataforma (configurado em OWNER_EMAILS)."""
    if not identity.email:
        return False
    return identity.email.strip().lower() in settings.owner_emails


def bypasses_billing(identity: Identity) -> bool:
    return is_owner(identity) or identity.role in PLATFORM_ROLES


def requires_active_subscription(identity: Identity) -> bool:
    """
    Perfis que só geram PDF com assinatura ativa.

    O cliente final nunca é bloqueado; admin e controlador dependem
    da assinatura da empresa.
    """
    if bypasses_billing(identity):
        return False
    return identity.role != Role.CLIENTE


def can_access_company(identity: Identity, company_id: str) -> bool:
    if bypasses_billing(identity):
        return True
    return identity.company_id is not None and identity.company_id == company_id
