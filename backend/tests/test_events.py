"""
SafePrag - Testes do Barramento de Eventos
"""
import pytest

from safeprag.core.events import (
    BillingStatusChanged,
    EventBus,
    ScheduleStatusChanged,
    ServiceOrderReportStored,
)


def billing_event(company_id: str = "empresa-1") -> BillingStatusChanged:
    return BillingStatusChanged(
        company_id=company_id,
        active=True,
        status="active",
        event_type="customer.subscription.updated",
    )


class TestEventBus:

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        bus = EventBus()
        received = []

        def on_sync(event):
            received.append(("sync", event.company_id))

        async def on_async(event):
            received.append(("async", event.company_id))

        bus.subscribe(BillingStatusChanged, on_sync)
        bus.subscribe(BillingStatusChanged, on_async)

        delivered = await bus.publish(billing_event())
        assert delivered == 2
        assert received == [("sync", "empresa-1"), ("async", "empresa-1")]

    @pytest.mark.asyncio
    async def test_handlers_are_per_event_type(self):
        bus = EventBus()
        received = []
        bus.subscribe(ScheduleStatusChanged, received.append)

        assert await bus.publish(billing_event()) == 0
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("falhou")

        bus.subscribe(ServiceOrderReportStored, broken)
        bus.subscribe(ServiceOrderReportStored, received.append)

        event = ServiceOrderReportStored(
            company_id="empresa-1",
            order_number=3,
            filename="Cliente - 3 - 01-01-2026 - Ana.pdf",
            content_hash="abc",
            size_bytes=100,
        )
        assert await bus.publish(event) == 1
        assert received == [event]

    def test_subscribe_is_idempotent(self):
        bus = EventBus()
        bus.subscribe(BillingStatusChanged, print)
        bus.subscribe(BillingStatusChanged, print)
        assert bus.handlers_for(BillingStatusChanged) == [print]

        bus.unsubscribe(BillingStatusChanged, print)
        assert bus.handlers_for(BillingStatusChanged) == []

    def test_events_are_immutable(self):
        event = billing_event()
        with pytest.raises(Exception):
            event.active = False
        assert event.occurred_at is not None
