"""
SafePrag - Database Connection

Configuração resiliente com:
- SQLite (aiosqlite) em desenvolvimento, PostgreSQL (asyncpg) em produção
- Connection pooling configurável via env (apenas PostgreSQL)
- Health checks de conexão (pool_pre_ping)
"""
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from safeprag.core.config import settings
from safeprag.core.logging_config import get_logger

log = get_logger(__name__)


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

# Configurações de timeout para asyncpg (driver-level)
ASYNCPG_CONNECT_ARGS = {
    # Timeout para comandos individuais (segundos)
    "command_timeout": settings.DB_COMMAND_TIMEOUT,
    # Timeout para statements no PostgreSQL (milissegundos)
    "server_settings": {
        "statement_timeout": str(settings.DB_COMMAND_TIMEOUT * 1000),
    },
}


def build_engine(url: str = settings.DATABASE_URL) -> AsyncEngine:
    """Cria o engine de acordo com o driver da URL."""
    if url.startswith("sqlite"):
        # SQLite não tem pool real; uma conexão por sessão
        return create_async_engine(url, echo=settings.DEBUG, poolclass=NullPool)

    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        # Verifica conexão antes de usar (detecta conexões mortas)
        pool_pre_ping=True,
        connect_args=ASYNCPG_CONNECT_ARGS,
    )


engine = build_engine()

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# =============================================================================
# DEPENDENCY INJECTION
# =============================================================================

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency que fornece uma sessão de banco de dados.

    Uso com FastAPI:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            log.warning("db_session_rollback", error=str(e))
            raise
        finally:
            await session.close()


# =============================================================================
# HEALTH CHECK
# =============================================================================

async def check_db_health() -> dict:
    """
    Verifica saúde do banco de dados.
    Retorna status e, no PostgreSQL, métricas do pool.
    """
    from sqlalchemy import text

    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()

        health = {"status": "healthy", "driver": engine.dialect.name}
        pool = engine.pool
        if hasattr(pool, "checkedout"):
            health.update({
                "pool_size": pool.size(),
                "checked_in": pool.checkedin(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow(),
            })
        return health
    except Exception as e:
        log.error("db_health_check_failed", error=str(e))
        return {
            "status": "unhealthy",
            "error": str(e),
        }


# =============================================================================
# INITIALIZATION
# =============================================================================

async def init_db():
    """
    Inicializa o banco de dados.
    Em produção, usar Alembic para migrations.
    """
    from safeprag.models.database import Base

    if engine.dialect.name == "sqlite" and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    log.info("db_initialized", driver=engine.dialect.name)
