"""
SafePrag - Schemas Pydantic (Validação e Serialização)

Os registros de domínio são imutáveis: o relatório de uma ordem de serviço
é montado a partir de um ServiceOrderReportData congelado.
"""
from datetime import datetime
from typing import Optional, List, Tuple
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================

class ScheduleStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


CONFORME = "Conforme"

# Status que tornam o dispositivo elegível para contagem de pragas
PEST_COUNT_STATUSES = (
    "Refil substituído",
    "Atrativo biológico substituído",
    "Praga encontrada",
)
INACTIVE_STATUS = "inativo"

DEFAULT_DEVICE_TYPE = "Armadilha luminosa"


class DomainRecord(BaseModel):
    """Base dos registros de domínio (imutáveis)."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


# =============================================================================
# SERVIÇOS E PRODUTOS
# =============================================================================

class Product(DomainRecord):
    name: Optional[str] = None
    active_ingredient: Optional[str] = None
    chemical_group: Optional[str] = None
    registration: Optional[str] = None
    batch: Optional[str] = None
    validity: Optional[str] = None
    quantity: Optional[str] = None
    dilution: Optional[str] = None


class Service(DomainRecord):
    type: str = Field(..., min_length=1, max_length=200)
    target_pest: Optional[str] = None
    location: Optional[str] = None
    product: Optional[Product] = None


# =============================================================================
# DISPOSITIVOS
# =============================================================================

class DeviceStatus(DomainRecord):
    name: str = Field(..., min_length=1)
    count: int = Field(default=0, ge=0)
    devices: Tuple[int, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def default_count(cls, data):
        # Sem count explícito, conta os dispositivos listados
        if isinstance(data, dict) and data.get("count") is None:
            data = {**data, "count": len(data.get("devices") or [])}
        return data


class DeviceGroup(DomainRecord):
    type: str = Field(default=DEFAULT_DEVICE_TYPE, min_length=1)
    quantity: int = Field(..., ge=0)
    status: Tuple[DeviceStatus, ...] = ()
    device_numbers: Optional[Tuple[int, ...]] = None

    @property
    def all_device_numbers(self) -> Tuple[int, ...]:
        """Numeração completa do grupo (1..quantidade quando não informada)."""
        if self.device_numbers:
            return self.device_numbers
        return tuple(range(1, self.quantity + 1))


class InspectedDevice(DomainRecord):
    type: str = Field(default=DEFAULT_DEVICE_TYPE, min_length=1)
    number: int = Field(..., ge=0)
    status: Tuple[str, ...] = ()


# =============================================================================
# CONTAGEM DE PRAGAS
# =============================================================================

class PestEntry(DomainRecord):
    name: str = Field(..., min_length=1)
    count: int = Field(default=0, ge=0)


class DevicePestCount(DomainRecord):
    device_type: str = Field(default=DEFAULT_DEVICE_TYPE, min_length=1)
    device_number: int = Field(..., ge=0)
    pests: Tuple[PestEntry, ...] = ()


# =============================================================================
# CLIENTE E ASSINATURAS
# =============================================================================

class ClientInfo(DomainRecord):
    code: Optional[str] = None
    name: Optional[str] = None           # Razão social
    trade_name: Optional[str] = None     # Nome fantasia
    document: Optional[str] = None       # CNPJ/CPF
    city: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    contact: Optional[str] = None
    email: Optional[str] = None


class Signatures(DomainRecord):
    """Assinaturas em base64 (PNG/JPEG, com ou sem prefixo data:)."""

    controller: Optional[str] = None
    technical: Optional[str] = None
    client: Optional[str] = None

    controller_name: Optional[str] = None
    controller_phone: Optional[str] = None
    technical_name: Optional[str] = None
    technical_crea: Optional[str] = None
    client_contact: Optional[str] = None
    client_phone: Optional[str] = None


# =============================================================================
# ORDEM DE SERVIÇO
# =============================================================================

class ServiceOrderReportRequest(BaseModel):
    """Dados enviados ao finalizar uma ordem de serviço."""

    company_id: str = Field(..., min_length=1, max_length=100)
    date: Optional[str] = Field(None, description="YYYY-MM-DD, DD/MM/YYYY ou DD-MM-YYYY")
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    client: ClientInfo = Field(default_factory=ClientInfo)
    services: List[Service] = Field(default_factory=list)
    devices: List[DeviceGroup] = Field(default_factory=list)
    inspected_devices: List[InspectedDevice] = Field(default_factory=list)
    pest_counts: List[DevicePestCount] = Field(default_factory=list)
    observations: Optional[str] = Field(None, max_length=10_000)
    signatures: Signatures = Field(default_factory=Signatures)
    technician_name: Optional[str] = Field(None, max_length=200)
    schedule_id: Optional[str] = None


class ServiceOrderReportData(DomainRecord):
    """Entrada imutável de uma geração de relatório."""

    order_number: int = Field(..., ge=1)
    company_id: str
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    client: ClientInfo = ClientInfo()
    services: Tuple[Service, ...] = ()
    devices: Tuple[DeviceGroup, ...] = ()
    pest_counts: Tuple[DevicePestCount, ...] = ()
    observations: Optional[str] = None
    signatures: Signatures = Signatures()
    technician_name: Optional[str] = None

    @property
    def service_type(self) -> Optional[str]:
        return self.services[0].type if self.services else None

    @property
    def products(self) -> Tuple[Product, ...]:
        return tuple(s.product for s in self.services if s.product is not None)


class StoredReportSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_number: int
    company_id: str
    client_name: Optional[str] = None
    client_code: Optional[str] = None
    service_type: Optional[str] = None
    technician_name: Optional[str] = None
    service_date: Optional[str] = None
    filename: str
    size_bytes: int
    content_hash: str
    created_at: datetime


# =============================================================================
# EMPRESA
# =============================================================================

class EnvironmentalLicense(DomainRecord):
    number: Optional[str] = None
    date: Optional[str] = None


class SanitaryPermit(DomainRecord):
    number: Optional[str] = None
    expiry_date: Optional[str] = None


class CompanyData(DomainRecord):
    name: Optional[str] = Field(None, max_length=255)
    cnpj: Optional[str] = Field(None, max_length=20)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[str] = None
    email: Optional[str] = Field(None, max_length=255)
    logo_url: Optional[str] = None
    environmental_license: Optional[EnvironmentalLicense] = None
    sanitary_permit: Optional[SanitaryPermit] = None


class CompanyRead(CompanyData):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# BILLING
# =============================================================================

class BillingStatus(BaseModel):
    """Status de assinatura como exposto pela API (camelCase)."""

    model_config = ConfigDict(populate_by_name=True)

    active: bool = False
    status: str = "inactive"
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    customer_id: Optional[str] = Field(None, alias="customerId")
    price_id: Optional[str] = Field(None, alias="priceId")
    product_id: Optional[str] = Field(None, alias="productId")


class BillingRecord(BillingStatus):
    """Registro completo do cache local."""

    active_price_ids: List[str] = Field(default_factory=list, alias="activePriceIds")
    active_product_ids: List[str] = Field(default_factory=list, alias="activeProductIds")


class CheckoutCompany(BaseModel):
    id: Optional[str] = None
    cnpj: Optional[str] = None


class CheckoutSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: Optional[str] = Field(None, alias="companyId")
    cnpj: Optional[str] = None
    company: Optional[CheckoutCompany] = None
    price_id: Optional[str] = Field(None, alias="priceId")
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    success_url: Optional[str] = Field(None, alias="successUrl")
    cancel_url: Optional[str] = Field(None, alias="cancelUrl")

    @property
    def resolved_company_id(self) -> Optional[str]:
        """companyId, ou o CNPJ/ID da empresa quando ausente."""
        candidates = [self.company_id, self.cnpj]
        if self.company:
            candidates += [self.company.id, self.company.cnpj]
        for candidate in candidates:
            if candidate and str(candidate).strip():
                return str(candidate).strip()
        return None


class CheckoutSessionResponse(BaseModel):
    id: str
    url: Optional[str] = None


class PriceProduct(BaseModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None


class PriceRecurring(BaseModel):
    interval: Optional[str] = None
    interval_count: Optional[int] = None


class PriceInfo(BaseModel):
    """Preço como a página de checkout consome (id exposto como priceId)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="priceId")
    currency: Optional[str] = None
    unit_amount: Optional[int] = None
    recurring: Optional[PriceRecurring] = None
    product: Optional[PriceProduct] = None


class PriceList(BaseModel):
    data: List[PriceInfo] = Field(default_factory=list)


# =============================================================================
# AGENDAMENTOS
# =============================================================================

class ScheduleCreate(BaseModel):
    company_id: str = Field(..., min_length=1, max_length=100)
    client_name: str = Field(..., min_length=1, max_length=255)
    client_code: Optional[str] = Field(None, max_length=50)
    service_type: Optional[str] = Field(None, max_length=200)
    date: str = Field(..., description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM")
    technician_name: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        try:
            datetime.strptime(v, "%Y-%m-%d")
        except ValueError:
            raise ValueError("Data deve estar no formato YYYY-MM-DD")
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            datetime.strptime(v, "%H:%M")
        except ValueError:
            raise ValueError("Horário deve estar no formato HH:MM")
        return v


class ScheduleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str
    client_name: str
    client_code: Optional[str] = None
    service_type: Optional[str] = None
    date: str
    time: Optional[str] = None
    technician_name: Optional[str] = None
    notes: Optional[str] = None
    status: ScheduleStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ScheduleStatusUpdate(BaseModel):
    status: ScheduleStatus
