"""
SafePrag - Dados da Empresa

Perfil da empresa prestadora usado no cabeçalho dos relatórios.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from safeprag.core.logging_config import get_logger
from safeprag.models.database import Company
from safeprag.models.schemas import (
    CompanyData,
    CompanyRead,
    EnvironmentalLicense,
    SanitaryPermit,
)

log = get_logger(__name__)


def company_to_data(company: Company) -> CompanyData:
    env = None
    if company.environmental_license_number or company.environmental_license_date:
        env = EnvironmentalLicense(
            number=company.environmental_license_number,
            date=company.environmental_license_date,
        )
    permit = None
    if company.sanitary_permit_number or company.sanitary_permit_expiry_date:
        permit = SanitaryPermit(
            number=company.sanitary_permit_number,
            expiry_date=company.sanitary_permit_expiry_date,
        )
    return CompanyData(
        name=company.name,
        cnpj=company.cnpj,
        phone=company.phone,
        address=company.address,
        email=company.email,
        logo_url=company.logo_url,
        environmental_license=env,
        sanitary_permit=permit,
    )


def company_to_read(company: Company) -> CompanyRead:
    return CompanyRead(
        id=company.id,
        created_at=company.created_at,
        updated_at=company.updated_at,
        **company_to_data(company).model_dump(),
    )


class CompanyService:
    """CRUD do perfil da empresa."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, company_id: str) -> Optional[Company]:
        return await self.db.get(Company, company_id)

    async def get_data(self, company_id: str) -> CompanyData:
        """Dados para o relatório; empresa desconhecida vira placeholders."""
        company = await self.get(company_id)
        if company is None:
            log.warning("company_not_found_for_report", company_id=company_id)
            return CompanyData()
        return company_to_data(company)

    async def upsert(self, company_id: str, data: CompanyData) -> Company:
        """Grava todos os campos (PUT)."""
        company = await self.get(company_id)
        created = company is None
        if created:
            company = Company(id=company_id)
            self.db.add(company)

        env = data.environmental_license or EnvironmentalLicense()
        permit = data.sanitary_permit or SanitaryPermit()

        company.name = data.name
        company.cnpj = data.cnpj
        company.phone = data.phone
        company.address = data.address
        company.email = data.email
        company.logo_url = data.logo_url
        company.environmental_license_number = env.number
        company.environmental_license_date = env.date
        company.sanitary_permit_number = permit.number
        company.sanitary_permit_expiry_date = permit.expiry_date

        await self.db.flush()
        await self.db.refresh(company)

        log.info("company_saved", company_id=company_id, created=created)
        return company
