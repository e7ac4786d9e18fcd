"""
SafePrag - Testes de Agendamentos
"""
import pytest
from httpx import AsyncClient

from conftest import auth_headers
from safeprag.core.events import EventBus, ScheduleStatusChanged
from safeprag.models.schemas import ScheduleCreate, ScheduleStatus
from safeprag.services.scheduling_service import SchedulingService

SCHEDULES_URL = "/api/v1/schedules"


def visit(**overrides) -> dict:
    data = {
        "company_id": "empresa-1",
        "client_name": "Mercado Bom Preço",
        "client_code": "C010",
        "service_type": "Desinsetização",
        "date": "2026-10-20",
        "time": "09:00",
        "technician_name": "Ana Lima",
    }
    data.update(overrides)
    return data


class TestSchedulingService:

    @pytest.mark.asyncio
    async def test_status_change_publishes_event(self, db_session):
        bus = EventBus()
        received = []
        bus.subscribe(ScheduleStatusChanged, received.append)
        service = SchedulingService(db_session, bus)

        schedule = await service.create(ScheduleCreate(**visit()))
        assert schedule.status == "pending"

        await service.update_status(schedule.id, ScheduleStatus.IN_PROGRESS)
        await service.update_status(schedule.id, ScheduleStatus.IN_PROGRESS)

        assert len(received) == 1
        assert received[0].previous_status == "pending"
        assert received[0].status == "in_progress"


class TestSchedulesAPI:

    @pytest.mark.asyncio
    async def test_create_and_list_ordered(self, client: AsyncClient):
        headers = auth_headers("controlador")
        async with client:
            await client.post(SCHEDULES_URL, json=visit(date="2026-10-21", time="08:00"), headers=headers)
            await client.post(SCHEDULES_URL, json=visit(date="2026-10-20", time="14:00"), headers=headers)
            created = await client.post(SCHEDULES_URL, json=visit(date="2026-10-20", time="09:00"), headers=headers)
            await client.post(SCHEDULES_URL, json=visit(company_id="empresa-2"), headers=auth_headers("superuser"))
            listing = await client.get(SCHEDULES_URL, params={"company_id": "empresa-1"}, headers=headers)

        assert created.status_code == 201
        assert created.json()["status"] == "pending"
        items = listing.json()
        assert [(i["date"], i["time"]) for i in items] == [
            ("2026-10-20", "09:00"),
            ("2026-10-20", "14:00"),
            ("2026-10-21", "08:00"),
        ]

    @pytest.mark.asyncio
    async def test_filters(self, client: AsyncClient):
        headers = auth_headers("admin")
        async with client:
            first = (await client.post(SCHEDULES_URL, json=visit(), headers=headers)).json()
            await client.post(SCHEDULES_URL, json=visit(date="2026-10-22"), headers=headers)
            await client.patch(f"{SCHEDULES_URL}/{first['id']}/status", json={"status": "cancelled"}, headers=headers)

            cancelled = await client.get(
                SCHEDULES_URL, params={"company_id": "empresa-1", "status": "cancelled"}, headers=headers,
            )
            by_date = await client.get(
                SCHEDULES_URL, params={"company_id": "empresa-1", "date": "2026-10-22"}, headers=headers,
            )

        assert [s["id"] for s in cancelled.json()] == [first["id"]]
        assert len(by_date.json()) == 1

    @pytest.mark.asyncio
    async def test_invalid_date(self, client: AsyncClient):
        async with client:
            response = await client.post(SCHEDULES_URL, json=visit(date="20/10/2026"), headers=auth_headers("admin"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_schedule(self, client: AsyncClient):
        async with client:
            response = await client.patch(
                f"{SCHEDULES_URL}/nao-existe/status", json={"status": "completed"}, headers=auth_headers("admin"),
            )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_other_company_forbidden(self, client: AsyncClient):
        async with client:
            response = await client.post(SCHEDULES_URL, json=visit(company_id="empresa-2"), headers=auth_headers("admin"))
        assert response.status_code == 403
