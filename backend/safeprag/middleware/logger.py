"""
SafePrag - Log de Requisições

- request_id (UUID4) ligado ao contexto do structlog
- Header X-Request-ID na resposta (reaproveita o do cliente quando enviado)
- Um evento request_completed por requisição, com status e duração
"""
import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from safeprag.core.logging_config import get_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    SKIP_PATHS = {"/health", "/health/", "/metrics", "/metrics/"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=path,
            method=request.method,
            client_ip=self._get_client_ip(request),
        )

        log = get_logger("safeprag.http")
        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            if path not in self.SKIP_PATHS:
                if status_code < 400:
                    log_method = log.info
                elif status_code < 500:
                    log_method = log.warning
                else:
                    log_method = log.error
                log_method("request_completed", status_code=status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms}ms"
        return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip
        if request.client:
            return request.client.host
        return "unknown"


class BusinessLoggerMixin:
    """
    Logging de eventos de negócio nos services.

        class ReportService(BusinessLoggerMixin):
            def finish(self):
                self.log_business("service_order_finished", order_number=12)
    """

    _log = None

    @property
    def log(self) -> structlog.BoundLogger:
        if self._log is None:
            self._log = get_logger(f"safeprag.{self.__class__.__name__}")
        return self._log

    def log_business(self, event: str, **kwargs) -> None:
        self.log.info(event, **kwargs)

    def log_error(self, event: str, error: Exception, **kwargs) -> None:
        self.log.error(event, error=str(error), exc_info=error, **kwargs)
