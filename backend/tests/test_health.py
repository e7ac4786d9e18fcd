"""
SafePrag - Testes de Health Check e Infraestrutura
"""
import pytest
from httpx import AsyncClient


class TestHealthCheck:
    """Testes básicos de disponibilidade da API."""

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client: AsyncClient):
        """Endpoint raiz retorna informações da API."""
        async with client:
            response = await client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "online"
        assert data["name"] == "SafePrag Controle de Pragas"

    @pytest.mark.asyncio
    async def test_health_endpoint(self, client: AsyncClient):
        async with client:
            response = await client.get("/health")
        assert response.status_code == 200
        assert response.json().get("status") == "healthy"

    @pytest.mark.asyncio
    async def test_health_detailed_checks_database(self, client: AsyncClient):
        """Health detalhado consulta o banco e informa a configuração de billing."""
        async with client:
            response = await client.get("/health/detailed")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["database"]["driver"] == "sqlite"
        assert data["checks"]["billing"]["source"] == "local"
        assert data["checks"]["billing"]["webhook_secret_configured"] is True

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client: AsyncClient):
        async with client:
            response = await client.get("/metrics")
        assert response.status_code == 200
        data = response.json()
        assert data["memory_mb"] > 0
        assert "uptime_seconds" in data

    @pytest.mark.asyncio
    async def test_openapi_schema(self, client: AsyncClient):
        """Schema OpenAPI lista as rotas de relatórios e billing."""
        async with client:
            response = await client.get("/openapi.json")
        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/v1/reports/service-orders" in paths
        assert "/billing/status/{company_id}" in paths
        assert "/webhook" in paths


class TestMiddlewares:

    @pytest.mark.asyncio
    async def test_request_id_and_security_headers(self, client: AsyncClient):
        async with client:
            response = await client.get("/")
        assert response.headers.get("X-Request-ID")
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Process-Time"].endswith("ms")

    @pytest.mark.asyncio
    async def test_request_id_is_propagated(self, client: AsyncClient):
        async with client:
            response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    @pytest.mark.asyncio
    async def test_payload_too_large(self, client: AsyncClient):
        """Content-Length acima do limite retorna 413 sem chegar na rota."""
        async with client:
            response = await client.post(
                "/webhook",
                content=b"{}",
                headers={"Content-Length": str(50 * 1024 * 1024), "Content-Type": "application/json"},
            )
        assert response.status_code == 413
        assert "Payload muito grande" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_cors_preflight(self, client: AsyncClient):
        async with client:
            response = await client.options(
                "/api/v1/reports/service-orders",
                headers={
                    "Origin": "http://localhost:3000",
                    "Access-Control-Request-Method": "POST",
                },
            )
        assert response.status_code in [200, 204]
