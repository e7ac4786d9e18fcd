"""
SafePrag - API de Empresas

Perfil da empresa prestadora usado no cabeçalho dos relatórios.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from safeprag.core.auth import get_current_identity
from safeprag.core.database import get_db
from safeprag.core.policy import Identity, Role, bypasses_billing, can_access_company
from safeprag.models.schemas import CompanyData, CompanyRead
from safeprag.services.company_service import CompanyService, company_to_read

router = APIRouter(
    prefix="/companies",
    tags=["Empresas"],
)


@router.get("/{company_id}", response_model=CompanyRead)
async def get_company(
    company_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    if not can_access_company(identity, company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado a esta empresa")

    company = await CompanyService(db).get(company_id)
    if company is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Empresa não encontrada")
    return company_to_read(company)


@router.put("/{company_id}", response_model=CompanyRead)
async def save_company(
    company_id: str,
    body: CompanyData,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Grava os dados da empresa (somente admin da própria empresa)."""
    if not can_access_company(identity, company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado a esta empresa")
    if identity.role != Role.ADMIN and not bypasses_billing(identity):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Apenas administradores podem alterar os dados da empresa",
        )

    company = await CompanyService(db).upsert(company_id, body)
    return company_to_read(company)
