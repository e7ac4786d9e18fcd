"""
SafePrag - API de Agendamentos
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from safeprag.core.auth import get_current_identity
from safeprag.core.database import get_db
from safeprag.core.exceptions import NotFoundError, to_http_exception
from safeprag.core.policy import Identity, can_access_company
from safeprag.models.schemas import ScheduleCreate, ScheduleRead, ScheduleStatus, ScheduleStatusUpdate
from safeprag.services.scheduling_service import SchedulingService

router = APIRouter(
    prefix="/schedules",
    tags=["Agendamentos"],
)


def ensure_company_access(identity: Identity, company_id: str) -> None:
    if not can_access_company(identity, company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acesso negado a esta empresa")


@router.post("", response_model=ScheduleRead, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    body: ScheduleCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    ensure_company_access(identity, body.company_id)
    schedule = await SchedulingService(db).create(body)
    return ScheduleRead.model_validate(schedule)


@router.get("", response_model=List[ScheduleRead])
async def list_schedules(
    company_id: str = Query(..., min_length=1, max_length=100),
    status_filter: Optional[ScheduleStatus] = Query(None, alias="status"),
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Visitas da empresa ordenadas por data e horário."""
    ensure_company_access(identity, company_id)
    schedules = await SchedulingService(db).list(company_id, status=status_filter, date=date)
    return [ScheduleRead.model_validate(s) for s in schedules]


@router.patch("/{schedule_id}/status", response_model=ScheduleRead)
async def update_schedule_status(
    schedule_id: str,
    body: ScheduleStatusUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    service = SchedulingService(db)
    try:
        schedule = await service.get(schedule_id)
        ensure_company_access(identity, schedule.company_id)
        schedule = await service.update_status(schedule_id, body.status)
    except NotFoundError as e:
        raise to_http_exception(e)
    return ScheduleRead.model_validate(schedule)
