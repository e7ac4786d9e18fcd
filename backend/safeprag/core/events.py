"""
SafePrag - Eventos da Aplicação

Barramento tipado: quem publica não conhece quem escuta.
Handlers podem ser síncronos ou assíncronos; falha em um handler
é logada e não afeta o publicador nem os demais handlers.
"""
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from safeprag.core.logging_config import get_logger

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# EVENTOS
# =============================================================================

@dataclass(frozen=True)
class BillingStatusChanged:
    company_id: str
    active: bool
    status: str
    event_type: str
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ServiceOrderReportStored:
    company_id: str
    order_number: int
    filename: str
    content_hash: str
    size_bytes: int
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ScheduleStatusChanged:
    schedule_id: str
    company_id: str
    previous_status: str
    status: str
    occurred_at: datetime = field(default_factory=_utcnow)


Handler = Callable[[Any], Union[None, Awaitable[None]]]


# =============================================================================
# BARRAMENTO
# =============================================================================

class EventBus:
    """Registro de handlers por tipo de evento."""

    def __init__(self):
        self._handlers: Dict[type, List[Handler]] = {}

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: Type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_type: Type) -> List[Handler]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event: Any) -> int:
        """
        Entrega o evento a todos os handlers do seu tipo.

        Retorna quantos handlers concluíram sem erro.
        """
        delivered = 0
        for handler in self.handlers_for(type(event)):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                log.warning(
                    "event_handler_failed",
                    event_type=type(event).__name__,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                    exc_info=e,
                )
        return delivered

    def clear(self) -> None:
        self._handlers.clear()


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Barramento único do processo."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def log_event(event: Any) -> None:
    """Handler de auditoria: registra todo evento de domínio no log."""
    payload = {k: v for k, v in vars(event).items() if k != "occurred_at"}
    log.info("domain_event", event_name=type(event).__name__, **payload)
