"""
SafePrag - Agendamento de Visitas
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from safeprag.core.events import EventBus, ScheduleStatusChanged, get_event_bus
from safeprag.core.exceptions import NotFoundError
from safeprag.middleware.logger import BusinessLoggerMixin
from safeprag.models.database import Schedule
from safeprag.models.schemas import ScheduleCreate, ScheduleStatus


class SchedulingService(BusinessLoggerMixin):
    """Criação, listagem e mudança de status de visitas."""

    def __init__(self, db: AsyncSession, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or get_event_bus()

    async def create(self, data: ScheduleCreate) -> Schedule:
        schedule = Schedule(
            company_id=data.company_id,
            client_name=data.client_name,
            client_code=data.client_code,
            service_type=data.service_type,
            date=data.date,
            time=data.time,
            technician_name=data.technician_name,
            notes=data.notes,
            status=ScheduleStatus.PENDING.value,
        )
        self.db.add(schedule)
        await self.db.flush()
        await self.db.refresh(schedule)

        self.log_business("schedule_created", schedule_id=schedule.id, company_id=schedule.company_id, date=schedule.date)
        return schedule

    async def list(
        self,
        company_id: str,
        status: Optional[ScheduleStatus] = None,
        date: Optional[str] = None,
    ) -> List[Schedule]:
        stmt = select(Schedule).where(Schedule.company_id == company_id)
        if status is not None:
            stmt = stmt.where(Schedule.status == status.value)
        if date is not None:
            stmt = stmt.where(Schedule.date == date)
        stmt = stmt.order_by(Schedule.date, Schedule.time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get(self, schedule_id: str) -> Schedule:
        schedule = await self.db.get(Schedule, schedule_id)
        if schedule is None:
            raise NotFoundError("Agendamento não encontrado", schedule_id=schedule_id)
        return schedule

    async def update_status(self, schedule_id: str, status: ScheduleStatus) -> Schedule:
        """Muda o status e publica ScheduleStatusChanged (se mudou)."""
        schedule = await self.get(schedule_id)
        previous = schedule.status
        if previous == status.value:
            return schedule

        schedule.status = status.value
        await self.db.flush()
        await self.db.refresh(schedule)

        await self.bus.publish(ScheduleStatusChanged(
            schedule_id=schedule.id,
            company_id=schedule.company_id,
            previous_status=previous,
            status=schedule.status,
        ))
        return schedule
