"""
SafePrag - API de Relatórios de Ordem de Serviço

- POST /reports/service-orders: finaliza a OS e devolve o PDF
- GET  /reports/service-orders: relatórios armazenados da empresa
- GET  /reports/service-orders/{order_number}/download: PDF armazenado
"""
import io
import unicodedata
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from safeprag.core.auth import get_current_identity
from safeprag.core.database import get_db
from safeprag.core.exceptions import SafePragError, to_http_exception
from safeprag.core.logging_config import get_logger
from safeprag.core.policy import Identity, can_access_company
from safeprag.models.schemas import ServiceOrderReportRequest, StoredReportSummary
from safeprag.services.billing_service import BillingGate, get_billing_status_provider
from safeprag.services.report_service import ServiceOrderReportService

log = get_logger(__name__)

router = APIRouter(
    prefix="/reports",
    tags=["Relatórios"],
)


def get_report_service(db: AsyncSession = Depends(get_db)) -> ServiceOrderReportService:
    return ServiceOrderReportService(db, BillingGate(get_billing_status_provider()))


def content_disposition(filename: str) -> str:
    """attachment com fallback ASCII e filename* em UTF-8 (RFC 5987)."""
    ascii_name = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    ascii_name = ascii_name.replace('"', "") or "relatorio.pdf"
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def pdf_response(pdf_bytes: bytes, filename: str, order_number: int, content_hash: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(filename),
            "Content-Length": str(len(pdf_bytes)),
            "X-Order-Number": str(order_number),
            "X-Content-Hash": content_hash,
        },
    )


def ensure_company_access(identity: Identity, company_id: str) -> None:
    if not can_access_company(identity, company_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso negado a esta empresa",
        )


@router.post("/service-orders")
async def finish_service_order(
    body: ServiceOrderReportRequest,
    identity: Identity = Depends(get_current_identity),
    service: ServiceOrderReportService = Depends(get_report_service),
):
    """
    Finaliza a ordem de serviço e gera o PDF.

    - 402: assinatura inativa (admin e controlador)
    - 503: não foi possível verificar a assinatura
    - 422: dados de dispositivos inconsistentes
    - 403: empresa de outro usuário
    """
    try:
        report, pdf_bytes = await service.finish_order(identity, body)
    except SafePragError as e:
        log.warning(
            "service_order_rejected",
            company_id=body.company_id,
            error_type=type(e).__name__,
            status_code=e.status_code,
        )
        raise to_http_exception(e)

    return pdf_response(pdf_bytes, report.filename, report.order_number, report.content_hash)


@router.get("/service-orders", response_model=List[StoredReportSummary])
async def list_service_orders(
    company_id: str = Query(..., min_length=1, max_length=100),
    identity: Identity = Depends(get_current_identity),
    service: ServiceOrderReportService = Depends(get_report_service),
):
    """Relatórios armazenados, do mais recente para o mais antigo."""
    ensure_company_access(identity, company_id)
    reports = await service.list_reports(company_id)
    return [StoredReportSummary.model_validate(r) for r in reports]


@router.get("/service-orders/{order_number}/download")
async def download_service_order(
    order_number: int,
    company_id: str = Query(..., min_length=1, max_length=100),
    identity: Identity = Depends(get_current_identity),
    service: ServiceOrderReportService = Depends(get_report_service),
):
    ensure_company_access(identity, company_id)
    try:
        report = await service.get_report(company_id, order_number)
    except SafePragError as e:
        raise to_http_exception(e)

    log.info("service_order_downloaded", company_id=company_id, order_number=order_number)
    return pdf_response(report.pdf, report.filename, report.order_number, report.content_hash)
