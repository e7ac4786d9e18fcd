"""
SafePrag - Modelos SQLAlchemy (ORM)
"""
from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    Column, DateTime, Integer, JSON, LargeBinary, String, Text,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class para todos os modelos"""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# MODELS
# =============================================================================

class Company(Base):
    """Dados da empresa prestadora (cabeçalho do relatório)."""

    __tablename__ = "companies"

    id = Column(String(100), primary_key=True)
    name = Column(String(255))
    cnpj = Column(String(20))
    phone = Column(String(30))
    address = Column(Text)
    email = Column(String(255))
    logo_url = Column(Text)  # data URL, base64 ou http(s)

    # Licenças
    environmental_license_number = Column(String(100))
    environmental_license_date = Column(String(20))
    sanitary_permit_number = Column(String(100))
    sanitary_permit_expiry_date = Column(String(20))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ServiceOrderCounter(Base):
    """Último número de OS emitido por empresa."""

    __tablename__ = "service_order_counters"

    company_id = Column(String(100), primary_key=True)
    last_number = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ServiceOrderReport(Base):
    """PDF finalizado de uma ordem de serviço, com metadados para listagem."""

    __tablename__ = "service_order_reports"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(100), nullable=False)
    order_number = Column(Integer, nullable=False)

    client_name = Column(String(255))
    client_code = Column(String(50))
    service_type = Column(String(200))
    services = Column(JSON, default=list)  # tipos de serviço realizados
    technician_name = Column(String(200))
    service_date = Column(String(20))

    filename = Column(String(500), nullable=False)
    content_hash = Column(String(64), nullable=False)  # SHA-256 do PDF
    size_bytes = Column(Integer, nullable=False)
    pdf = Column(LargeBinary, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("company_id", "order_number", name="uq_service_order_reports_company_order"),
        Index("idx_service_order_reports_company_created", "company_id", "created_at"),
    )


class Schedule(Base):
    """Visita agendada."""

    __tablename__ = "schedules"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(100), nullable=False, index=True)
    client_name = Column(String(255), nullable=False)
    client_code = Column(String(50))
    service_type = Column(String(200))
    date = Column(String(10), nullable=False)   # YYYY-MM-DD
    time = Column(String(5))                    # HH:MM
    technician_name = Column(String(200))
    notes = Column(Text)
    status = Column(String(20), nullable=False, default="pending")

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_schedules_company_date", "company_id", "date", "time"),
    )
