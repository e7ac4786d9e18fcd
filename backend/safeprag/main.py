"""
SafePrag - Controle de Pragas API

Aplicação principal FastAPI.
"""
import json
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from safeprag.core.config import settings
from safeprag.core.logging_config import setup_logging, get_logger
from safeprag.middleware.logger import RequestLoggingMiddleware
from safeprag.middleware.limits import LimitUploadSizeMiddleware


# Inicializar logging estruturado ANTES de qualquer outra coisa
setup_logging()

log = get_logger(__name__)


class UTF8JSONResponse(JSONResponse):
    """JSONResponse que garante encoding UTF-8."""
    media_type = "application/json; charset=utf-8"

    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            separators=(",", ":"),
        ).encode("utf-8")


# =============================================================================
# LIFESPAN (startup/shutdown)
# =============================================================================

def register_event_handlers() -> None:
    """Assina o log de eventos de domínio no barramento do processo."""
    from safeprag.core.events import (
        BillingStatusChanged,
        ScheduleStatusChanged,
        ServiceOrderReportStored,
        get_event_bus,
        log_event,
    )
    from safeprag.services.billing_service import get_billing_status_provider

    bus = get_event_bus()
    for event_type in (BillingStatusChanged, ServiceOrderReportStored, ScheduleStatusChanged):
        if log_event not in bus.handlers_for(event_type):
            bus.subscribe(event_type, log_event)

    # Provedor de status assina BillingStatusChanged ao ser criado
    get_billing_status_provider()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gerencia ciclo de vida da aplicação."""
    from safeprag.core.database import init_db

    log.info(
        "app_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        stripe_mode=settings.stripe_mode,
        billing_source="http" if settings.BILLING_API_URL else "local",
    )
    await init_db()
    register_event_handlers()

    yield

    log.info("app_stopping")


# =============================================================================
# APP INSTANCE
# =============================================================================

def create_app() -> FastAPI:
    """Factory para criar a aplicação FastAPI."""

    if settings.SECRET_KEY == "CHANGE-THIS-IN-PRODUCTION-USE-OPENSSL-RAND-HEX-32":
        if not settings.DEBUG:
            raise RuntimeError(
                "SECRET_KEY não configurada! "
                "Gere uma chave segura com: openssl rand -hex 32 "
                "e configure a variável de ambiente SECRET_KEY"
            )
        log.warning(
            "security.secret_key_not_configured",
            message="SECRET_KEY usando valor padrão - OK em desenvolvimento, INSEGURO em produção!"
        )

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
        ## API de Ordens de Serviço para Controle de Pragas

        - **Relatórios**: finalização da OS com PDF paginado e numeração sequencial
        - **Assinaturas**: status, checkout e preços via Stripe
        - **Webhook**: atualização do status de assinatura a partir da Stripe
        - **Empresas**: dados e licenças exibidos no cabeçalho do relatório
        - **Agendamentos**: visitas por empresa e status
        """,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        default_response_class=UTF8JSONResponse,
    )

    # CORS
    # Exemplo: ALLOWED_ORIGINS="https://app.safeprag.com.br,https://safeprag.com.br"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "stripe-signature"],
        expose_headers=["Content-Disposition", "X-Order-Number", "X-Content-Hash", "X-Request-ID"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        return response

    app.add_middleware(RequestLoggingMiddleware)

    # Adicionado por último = executado primeiro
    app.add_middleware(LimitUploadSizeMiddleware)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        log.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        cors_origin = settings.cors_origins[0] if settings.cors_origins else "*"
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Erro interno do servidor",
                "detail": str(exc) if settings.DEBUG else None,
            },
            headers={
                "Access-Control-Allow-Origin": cors_origin,
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
            },
        )

    register_routes(app)

    return app


def register_routes(app: FastAPI):
    """Registra todos os routers da API."""
    from safeprag.api import billing
    from safeprag.api import companies
    from safeprag.api import reports
    from safeprag.api import schedules
    from safeprag.api import webhooks

    @app.get("/", tags=["Sistema"])
    async def root():
        """Informações básicas da API."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "online",
            "docs": "/docs",
        }

    @app.get("/health", tags=["Sistema"])
    async def health_check():
        """Verifica se a API está funcionando."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    @app.get("/health/detailed", tags=["Sistema"])
    async def health_check_detailed():
        """Verifica o banco de dados e a configuração de billing."""
        from safeprag.core.database import check_db_health

        health = {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "checks": {}
        }

        db_health = await check_db_health()
        health["checks"]["database"] = db_health
        if db_health["status"] != "healthy":
            health["status"] = "degraded"

        health["checks"]["billing"] = {
            "source": "http" if settings.BILLING_API_URL else "local",
            "stripe_configured": bool(settings.STRIPE_SECRET_KEY),
            "stripe_mode": settings.stripe_mode,
            "webhook_secret_configured": bool(settings.stripe_webhook_secret),
        }

        return health

    @app.get("/metrics", tags=["Sistema"])
    async def metrics():
        """
        Métricas básicas da aplicação.

        Para integração com Prometheus/Grafana, usar bibliotecas dedicadas.
        """
        import os
        import psutil

        process = psutil.Process(os.getpid())

        return {
            "memory_mb": process.memory_info().rss / 1024 / 1024,
            "cpu_percent": process.cpu_percent(),
            "threads": process.num_threads(),
            "uptime_seconds": time.time() - process.create_time(),
        }

    # =========================================================================
    # ROTAS NA RAIZ (checkout e Stripe)
    # =========================================================================

    app.include_router(billing.router)
    app.include_router(webhooks.router)

    # =========================================================================
    # API ROUTES
    # =========================================================================

    app.include_router(reports.router, prefix=settings.API_PREFIX)
    app.include_router(companies.router, prefix=settings.API_PREFIX)
    app.include_router(schedules.router, prefix=settings.API_PREFIX)


# =============================================================================
# APP INSTANCE
# =============================================================================

app = create_app()


# =============================================================================
# MAIN (para desenvolvimento)
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "safeprag.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
