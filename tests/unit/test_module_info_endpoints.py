"""Unit tests for /v1/info endpoints and the health check."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from modulehub.models.module_info import ModuleInfo
from modulehub.models.user import HashedPassword, User

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
TOKEN = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
PAYLOAD = {"module_name": "Databases", "module_duration": 12, "exam_type": "written"}


def _module(module_id=1, **overrides):
    fields = {
        "id": module_id,
        "created_at": NOW,
        "updated_at": NOW,
        "module_name": "Databases",
        "module_duration": 12,
        "exam_type": "written",
        "version": 1,
    }
    fields.update(overrides)
    return ModuleInfo(**fields)


@pytest.fixture
def headers():
    user = User(id=7, fname="Alice", email="alice@example.com", password=HashedPassword("$2b$04$hash"), activated=True)
    with patch("modulehub.api.dependencies.TokenService") as MockTokenService:
        MockTokenService.return_value.resolve = AsyncMock(return_value=user)
        yield {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def module_service():
    with patch("modulehub.api.module_info.ModuleInfoService") as MockService:
        yield MockService.return_value


class TestModuleInfo:
    def test_requires_authentication(self, client):
        response = client.get("/v1/info")
        assert response.status_code == 401

    def test_create(self, client, headers, module_service):
        module_service.create = AsyncMock(return_value=_module(5))

        response = client.post("/v1/info", headers=headers, json=PAYLOAD)

        assert response.status_code == 201
        assert response.headers["Location"] == "/v1/info/5"
        assert response.json()["module_info"]["module_name"] == "Databases"

    def test_create_invalid(self, client, headers, module_service):
        response = client.post("/v1/info", headers=headers, json={**PAYLOAD, "module_duration": 0})
        assert response.status_code == 400

    def test_list(self, client, headers, module_service):
        module_service.list_modules = AsyncMock(return_value=[_module(1), _module(2)])

        response = client.get("/v1/info", headers=headers)

        assert response.status_code == 200
        assert [m["id"] for m in response.json()["module_info"]] == [1, 2]

    def test_show(self, client, headers, module_service):
        module_service.get = AsyncMock(return_value=_module(3))
        response = client.get("/v1/info/3", headers=headers)
        assert response.status_code == 200
        assert response.json()["module_info"]["id"] == 3

    def test_show_not_found(self, client, headers, module_service):
        module_service.get = AsyncMock(return_value=None)
        response = client.get("/v1/info/3", headers=headers)
        assert response.status_code == 404

    def test_update(self, client, headers, module_service):
        module_service.update = AsyncMock(return_value=_module(3, exam_type="oral", version=2))

        response = client.put("/v1/info/3", headers=headers, json={**PAYLOAD, "exam_type": "oral"})

        assert response.status_code == 200
        assert response.json()["module_info"]["version"] == 2
        assert module_service.update.call_args[0][0] == 3

    def test_update_not_found(self, client, headers, module_service):
        module_service.update = AsyncMock(return_value=None)
        response = client.put("/v1/info/3", headers=headers, json=PAYLOAD)
        assert response.status_code == 404

    def test_delete(self, client, headers, module_service):
        module_service.delete = AsyncMock(return_value=True)
        response = client.delete("/v1/info/3", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"message": "module_info successfully deleted"}

    def test_delete_not_found(self, client, headers, module_service):
        module_service.delete = AsyncMock(return_value=False)
        response = client.delete("/v1/info/3", headers=headers)
        assert response.status_code == 404


class TestHealthcheck:
    def test_available(self, client):
        with patch("modulehub.api.health.db_health_check", new_callable=AsyncMock, return_value=True):
            response = client.get("/v1/healthcheck")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "available"
        assert body["database"] == "healthy"

    def test_database_down(self, client):
        with patch("modulehub.api.health.db_health_check", new_callable=AsyncMock, return_value=False):
            response = client.get("/v1/healthcheck")

        assert response.json()["database"] == "unhealthy"

    def test_correlation_id_header(self, client):
        with patch("modulehub.api.health.db_health_check", new_callable=AsyncMock, return_value=True):
            response = client.get("/v1/healthcheck", headers={"X-Correlation-Id": "abc-123"})

        assert response.headers["X-Correlation-Id"] == "abc-123"
