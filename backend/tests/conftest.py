"""
SafePrag - Configuração de Testes

Banco SQLite e arquivo de billing temporários, definidos ANTES de importar
a aplicação.
"""
import os
import sys
import tempfile
from pathlib import Path

# =============================================================================
# PASSO 1: FORÇAR AMBIENTE DE TESTE ANTES DE QUALQUER IMPORT
# =============================================================================
TEST_DIR = Path(tempfile.mkdtemp(prefix="safeprag-tests-"))

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DIR / 'test.db'}"
os.environ["BILLING_STORE_PATH"] = str(TEST_DIR / "billing.json")
os.environ["BILLING_STATUS_CACHE_SECONDS"] = "0"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["OWNER_EMAILS"] = "dono@safeprag.com.br"
os.environ["DEBUG"] = "false"

# Limpar módulos da app se já importados
for mod in list(sys.modules.keys()):
    if mod.startswith("safeprag"):
        del sys.modules[mod]

# =============================================================================
# PASSO 2: IMPORTS
# =============================================================================
import hashlib
import hmac
import json
import time

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# =============================================================================
# PASSO 3: CRIAR ENGINE DE TESTE
# =============================================================================
TEST_DB_URL = os.environ["DATABASE_URL"]

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    poolclass=NullPool,
)

test_session_maker = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# =============================================================================
# PASSO 4: SUBSTITUIR ENGINE NO MÓDULO DATABASE
# =============================================================================
from safeprag.core import database
database.engine = test_engine
database.async_session_maker = test_session_maker

from safeprag.main import app, register_event_handlers
from safeprag.core.auth import create_access_token
from safeprag.core.database import get_db
from safeprag.core.events import get_event_bus
from safeprag.models.database import Base
from safeprag.services.billing_service import reset_billing_status_provider
from safeprag.services.billing_store import get_billing_store


async def override_get_db():
    """Substitui get_db para usar o banco de teste."""
    async with test_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


app.dependency_overrides[get_db] = override_get_db


# =============================================================================
# PYTEST HOOKS
# =============================================================================

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: testes de integração")


def pytest_unconfigure(config):
    app.dependency_overrides.clear()


# =============================================================================
# FIXTURES DE ESTADO
# =============================================================================

@pytest.fixture(autouse=True)
def reset_billing_state():
    """Arquivo de billing vazio e barramento limpo a cada teste."""
    store_path = Path(os.environ["BILLING_STORE_PATH"])
    if store_path.exists():
        store_path.unlink()
    reset_billing_status_provider()
    get_event_bus().clear()
    register_event_handlers()
    yield
    reset_billing_status_provider()
    get_event_bus().clear()


@pytest_asyncio.fixture
async def db_tables():
    """Tabelas recriadas do zero."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest_asyncio.fixture
async def db_session(db_tables):
    async with test_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_tables):
    """Cliente HTTP para testar endpoints - NOVO a cada teste."""
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def billing_store():
    return get_billing_store()


# =============================================================================
# AUTENTICAÇÃO
# =============================================================================

def make_token(role: str, company_id: str = "empresa-1", email: str = None) -> str:
    data = {"sub": f"{role}-user", "role": role, "company_id": company_id}
    if email:
        data["email"] = email
    return create_access_token(data)


def auth_headers(role: str, company_id: str = "empresa-1", email: str = None) -> dict:
    return {"Authorization": f"Bearer {make_token(role, company_id, email)}"}


@pytest.fixture
def admin_headers() -> dict:
    return auth_headers("admin")


@pytest.fixture
def cliente_headers() -> dict:
    return auth_headers("cliente")


# =============================================================================
# STRIPE
# =============================================================================

def sign_payload(payload: str, secret: str = "whsec_test", timestamp: int = None) -> str:
    """Header stripe-signature válido para o payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


# =============================================================================
# DADOS DE EXEMPLO
# =============================================================================

@pytest.fixture
def service_order_payload() -> dict:
    """OS com 5 armadilhas: 1-2 refil substituído, 3 com praga, 4-5 conformes."""
    return {
        "company_id": "empresa-1",
        "date": "2026-10-15",
        "start_time": "08:00",
        "end_time": "10:30",
        "client": {
            "code": "C001",
            "name": "Padaria São João",
            "document": "12.345.678/0001-90",
            "city": "Campinas",
            "state": "SP",
            "address": "Rua das Flores, 100",
            "contact": "Maria",
            "phone": "(19) 99999-0000",
        },
        "services": [
            {
                "type": "Monitoramento",
                "target_pest": "Moscas",
                "location": "Área de produção",
                "product": {"name": "Refil adesivo", "batch": "L-2026"},
            },
        ],
        "devices": [
            {
                "type": "Armadilha luminosa",
                "quantity": 5,
                "status": [
                    {"name": "Refil substituído", "devices": [1, 2]},
                    {"name": "Praga encontrada", "devices": [3]},
                ],
            },
        ],
        "pest_counts": [
            {"device_type": "Armadilha luminosa", "device_number": 1, "pests": [{"name": "Mosca", "count": 4}]},
            {"device_type": "Armadilha luminosa", "device_number": 3, "pests": [
                {"name": "Mosca", "count": 2},
                {"name": "Mariposa", "count": 1},
            ]},
            {"device_type": "Armadilha luminosa", "device_number": 4, "pests": [{"name": "Mosca", "count": 7}]},
        ],
        "observations": "Área de estoque limpa.",
        "technician_name": "Carlos Souza",
    }
