"""
SafePrag - Finalização de Ordem de Serviço

Fluxo de uma OS finalizada:
1. Autorização e verificação de assinatura (bloqueio total se inativa)
2. Reconciliação de dispositivos e filtro da contagem de pragas
3. Número sequencial da OS (por empresa, atribuído uma única vez)
4. Geração do PDF com os dados da empresa
5. Armazenamento do PDF com metadados para listagem
6. Conclusão do agendamento vinculado e evento ServiceOrderReportStored
"""
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from safeprag.core.events import EventBus, ServiceOrderReportStored, get_event_bus
from safeprag.core.exceptions import AccessDeniedError, NotFoundError
from safeprag.core.policy import Identity, can_access_company
from safeprag.middleware.logger import BusinessLoggerMixin
from safeprag.models.database import ServiceOrderCounter, ServiceOrderReport
from safeprag.models.schemas import (
    DeviceGroup,
    DevicePestCount,
    ScheduleStatus,
    ServiceOrderReportData,
    ServiceOrderReportRequest,
)
from safeprag.services.billing_service import BillingGate
from safeprag.services.company_service import CompanyService
from safeprag.services.device_reconciliation import (
    eligible_devices,
    filter_pest_counts,
    group_inspected_devices,
    reconcile_device_groups,
)
from safeprag.services.reports.pdf_generator import ServiceOrderReportGenerator, build_report_filename
from safeprag.services.scheduling_service import SchedulingService


def reconcile_request(request: ServiceOrderReportRequest) -> Tuple[List[DeviceGroup], List[DevicePestCount]]:
    """
    Grupos reconciliados e contagem de pragas filtrada.

    Grupos informados explicitamente têm precedência; tipos presentes só
    nas inspeções são agrupados a partir delas.
    """
    groups = list(request.devices)
    known_types = {g.type for g in groups}
    groups += [g for g in group_inspected_devices(request.inspected_devices) if g.type not in known_types]

    reconciled = reconcile_device_groups(groups)
    eligible = eligible_devices(reconciled, request.inspected_devices)
    return reconciled, filter_pest_counts(request.pest_counts, eligible)


def prepare_report_data(
    order_number: int,
    request: ServiceOrderReportRequest,
    devices: List[DeviceGroup],
    pest_counts: List[DevicePestCount],
) -> ServiceOrderReportData:
    return ServiceOrderReportData(
        order_number=order_number,
        company_id=request.company_id,
        date=request.date,
        start_time=request.start_time,
        end_time=request.end_time,
        client=request.client,
        services=tuple(request.services),
        devices=tuple(devices),
        pest_counts=tuple(pest_counts),
        observations=request.observations,
        signatures=request.signatures,
        technician_name=request.technician_name,
    )


class ServiceOrderReportService(BusinessLoggerMixin):
    """Orquestra a finalização de uma OS."""

    def __init__(
        self,
        db: AsyncSession,
        gate: BillingGate,
        generator: Optional[ServiceOrderReportGenerator] = None,
        bus: Optional[EventBus] = None,
    ):
        self.db = db
        self.gate = gate
        self.generator = generator or ServiceOrderReportGenerator()
        self.bus = bus or get_event_bus()

    # -------------------------------------------------------------------------
    # Numeração
    # -------------------------------------------------------------------------

    async def next_order_number(self, company_id: str) -> int:
        """Incrementa o contador da empresa dentro da transação atual."""
        result = await self.db.execute(
            select(ServiceOrderCounter)
            .where(ServiceOrderCounter.company_id == company_id)
            .with_for_update()
        )
        counter = result.scalar_one_or_none()
        if counter is None:
            counter = ServiceOrderCounter(company_id=company_id, last_number=0)
            self.db.add(counter)

        counter.last_number = (counter.last_number or 0) + 1
        await self.db.flush()
        return counter.last_number

    # -------------------------------------------------------------------------
    # Finalização
    # -------------------------------------------------------------------------

    async def finish_order(
        self,
        identity: Identity,
        request: ServiceOrderReportRequest,
    ) -> Tuple[ServiceOrderReport, bytes]:
        company_id = request.company_id
        if not can_access_company(identity, company_id):
            raise AccessDeniedError("Acesso negado a esta empresa", company_id=company_id)

        await self.gate.ensure_can_generate(identity, company_id)

        # Dados inconsistentes não consomem número de OS
        devices, pest_counts = reconcile_request(request)

        order_number = await self.next_order_number(company_id)
        data = prepare_report_data(order_number, request, devices, pest_counts)

        company = await CompanyService(self.db).get_data(company_id)
        pdf_bytes, placements, content_hash = await self.generator.generate(data, company)

        filename = build_report_filename(data.client.name, order_number, data.date, data.technician_name)
        report = ServiceOrderReport(
            company_id=company_id,
            order_number=order_number,
            client_name=data.client.name,
            client_code=data.client.code,
            service_type=data.service_type,
            services=[s.type for s in data.services],
            technician_name=data.technician_name,
            service_date=data.date,
            filename=filename,
            content_hash=content_hash,
            size_bytes=len(pdf_bytes),
            pdf=pdf_bytes,
        )
        self.db.add(report)
        await self.db.flush()

        if request.schedule_id:
            await self._complete_schedule(request.schedule_id, company_id)

        self.log_business(
            "service_order_finished",
            company_id=company_id,
            order_number=order_number,
            filename=filename,
            page_breaks=sum(1 for p in placements if p.break_inserted),
            role=identity.role.value,
        )
        await self.bus.publish(ServiceOrderReportStored(
            company_id=company_id,
            order_number=order_number,
            filename=filename,
            content_hash=content_hash,
            size_bytes=len(pdf_bytes),
        ))
        return report, pdf_bytes

    async def _complete_schedule(self, schedule_id: str, company_id: str) -> None:
        scheduling = SchedulingService(self.db, self.bus)
        try:
            schedule = await scheduling.get(schedule_id)
        except NotFoundError:
            self.log.warning("schedule_not_found_on_finish", schedule_id=schedule_id, company_id=company_id)
            return
        if schedule.company_id != company_id:
            self.log.warning("schedule_company_mismatch", schedule_id=schedule_id, company_id=company_id)
            return
        await scheduling.update_status(schedule_id, ScheduleStatus.COMPLETED)

    # -------------------------------------------------------------------------
    # Consulta
    # -------------------------------------------------------------------------

    async def list_reports(self, company_id: str) -> List[ServiceOrderReport]:
        result = await self.db.execute(
            select(ServiceOrderReport)
            .where(ServiceOrderReport.company_id == company_id)
            .order_by(ServiceOrderReport.order_number.desc())
        )
        return list(result.scalars().all())

    async def get_report(self, company_id: str, order_number: int) -> ServiceOrderReport:
        result = await self.db.execute(
            select(ServiceOrderReport).where(
                ServiceOrderReport.company_id == company_id,
                ServiceOrderReport.order_number == order_number,
            )
        )
        report = result.scalar_one_or_none()
        if report is None:
            raise NotFoundError("Relatório não encontrado", company_id=company_id, order_number=order_number)
        return report
