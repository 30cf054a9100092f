"""
API endpoint tests
"""

import uuid
import httpx
import pytest
import pytest_asyncio
from api.main import app
from api.dependencies import get_db
from core.config import settings
from ingestion.executor import ImportExecutor
from ingestion.fetcher import ExternalFetcher
from ingestion.index_client import IndexClient
from ingestion.job import ImportJobDriver
from ingestion.notifications import NotificationDispatcher
from unittest.mock import AsyncMock

API_HOST = "api.example.com"


class FakeServices:
    """External API and index gateway behind one mock transport"""

    def __init__(self, api_data, content_types):
        self.api_data = api_data
        self.content_types = content_types

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == API_HOST:
            return httpx.Response(200, json=self.api_data)
        if request.url.path == "/api/content/v3/types":
            return httpx.Response(200, json=self.content_types)
        return httpx.Response(200, json={})


@pytest.fixture
def services(mock_api_data, content_types_response):
    return FakeServices(mock_api_data, content_types_response)


@pytest_asyncio.fixture
async def client(session_factory, services):
    """HTTP client against the app with the test database and mocked services"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    http = httpx.AsyncClient(transport=httpx.MockTransport(services.handler))
    index_client = IndexClient("https://gateway.example.com", "app", "secret", client=http)
    driver = ImportJobDriver(
        session_factory=session_factory,
        executor=ImportExecutor(fetcher=ExternalFetcher(client=http), index_client=index_client),
        index_client=index_client,
        notifier=AsyncMock(spec=NotificationDispatcher),
    )

    original_driver = app.state.job_driver
    app.state.job_driver = driver
    app.dependency_overrides[get_db] = override_get_db

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.job_driver = original_driver


def configuration_payload(**overrides):
    payload = {
        "name": "Products feed",
        "target_source_id": "prod",
        "target_content_type": "Product",
        "api_url": "https://api.example.com/products",
        "http_method": "get",
        "auth_type": "bearer",
        "auth_value_or_password": "token",
        "field_mappings": [
            {"source_path": "name", "target_property": "Name"},
            {"source_path": "price", "target_property": "Price", "transformation": "to_float"},
        ],
        "id_field_mapping": "id",
        "schedule_frequency": "daily",
        "schedule_time_of_day": "02:00:00",
        "notification_email": "ops@example.com",
    }
    payload.update(overrides)
    return payload


async def create(client, **overrides) -> dict:
    response = await client.post("/imports", json=configuration_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# Health
# ============================================================================

@pytest.mark.asyncio
async def test_health_endpoint_database_connected(client):
    """Test health endpoint returns database status"""
    await create(client)

    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["scheduler_running"] is False
    assert data["total_configurations"] == 1
    assert data["active_configurations"] == 1
    assert data["failing_configurations"] == 0
    assert response.headers["X-Request-ID"].startswith("req_")


# ============================================================================
# CRUD
# ============================================================================

@pytest.mark.asyncio
async def test_create_configuration_initializes_schedule(client):
    data = await create(client)

    assert data["state"] == "scheduled"
    assert data["next_scheduled_run_at"] is not None
    assert data["next_scheduled_run_at"].endswith("02:00:00")
    assert data["http_method"] == "GET"
    assert data["consecutive_failures"] == 0
    assert data["field_mappings"][1]["transformation"] == "to_float"


@pytest.mark.asyncio
async def test_create_unscheduled_configuration_is_idle(client):
    data = await create(client, schedule_frequency="none")

    assert data["state"] == "idle"
    assert data["next_scheduled_run_at"] is None


@pytest.mark.asyncio
async def test_create_uses_configured_retry_default(client, monkeypatch):
    monkeypatch.setattr(settings, "DEFAULT_MAX_RETRIES", 5)

    data = await create(client)

    assert data["max_retries"] == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"target_source_id": "TOOLONG"},
    {"api_url": "ftp://example.com"},
    {"http_method": "TRACE"},
    {"schedule_day_of_week": 7},
    {"id_field_mapping": ""},
])
async def test_create_rejects_invalid_payload(client, overrides):
    response = await client.post("/imports", json=configuration_payload(**overrides))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_and_get(client):
    created = await create(client)

    listed = await client.get("/imports")
    fetched = await client.get(f"/imports/{created['id']}")

    assert [c["id"] for c in listed.json()] == [created["id"]]
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Products feed"


@pytest.mark.asyncio
async def test_get_unknown_configuration(client):
    response = await client.get(f"/imports/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "ResourceNotFoundError"


@pytest.mark.asyncio
async def test_update_schedule_recomputes_next_run(client):
    created = await create(client)

    response = await client.put(
        f"/imports/{created['id']}",
        json=configuration_payload(schedule_frequency="none", updated_by="operator"),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["next_scheduled_run_at"] is None
    assert data["state"] == "idle"
    assert data["updated_by"] == "operator"


@pytest.mark.asyncio
async def test_update_without_schedule_change_keeps_next_run(client):
    created = await create(client)

    response = await client.put(f"/imports/{created['id']}", json=configuration_payload(name="Renamed"))

    data = response.json()
    assert data["name"] == "Renamed"
    assert data["next_scheduled_run_at"] == created["next_scheduled_run_at"]


@pytest.mark.asyncio
async def test_delete_configuration(client):
    created = await create(client)

    deleted = await client.delete(f"/imports/{created['id']}")
    missing = await client.get(f"/imports/{created['id']}")
    deleted_again = await client.delete(f"/imports/{created['id']}")

    assert deleted.status_code == 204
    assert missing.status_code == 404
    assert deleted_again.status_code == 404


# ============================================================================
# Operator tools
# ============================================================================

@pytest.mark.asyncio
async def test_connection_test(client):
    created = await create(client)

    response = await client.post(f"/imports/{created['id']}/test-connection")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert "api_001" in data["sample_json"]


@pytest.mark.asyncio
async def test_preview(client):
    created = await create(client)

    response = await client.post(f"/imports/{created['id']}/preview")

    data = response.json()
    assert data["total_items_received"] == 2
    assert data["items"][0]["properties"]["Price"] == 99.99
    assert data["items"][0]["properties"]["Status"] == "Published"


@pytest.mark.asyncio
async def test_run_records_history_and_statistics(client):
    created = await create(client)

    run = await client.post(f"/imports/{created['id']}/run")
    history = await client.get(f"/imports/{created['id']}/history")
    statistics = await client.get(f"/imports/{created['id']}/statistics")
    failures = await client.get(f"/imports/{created['id']}/history", params={"failures_only": True})

    assert run.status_code == 200
    assert run.json()["success"] is True
    assert run.json()["items_imported"] == 2

    entries = history.json()
    assert len(entries) == 1
    assert entries[0]["was_scheduled"] is False
    assert failures.json() == []

    stats = statistics.json()
    assert stats["total_executions"] == 1
    assert stats["success_rate"] == 100.0
    assert stats["total_items_imported"] == 2


@pytest.mark.asyncio
async def test_run_with_unknown_content_type(client, services):
    services.content_types = {"contentTypes": {}}
    created = await create(client)

    response = await client.post(f"/imports/{created['id']}/run")

    assert response.status_code == 422
    assert response.json()["error"] == "SchemaNotFoundError"


@pytest.mark.asyncio
async def test_statistics_without_history(client):
    created = await create(client)

    response = await client.get(f"/imports/{created['id']}/statistics")

    assert response.json()["total_executions"] == 0
    assert response.json()["success_rate"] == 0.0


@pytest.mark.asyncio
async def test_initialize_schedule(client):
    created = await create(client)

    response = await client.post(f"/imports/{created['id']}/schedule/initialize")

    assert response.status_code == 200
    assert response.json()["state"] == "scheduled"


# ============================================================================
# Export / import
# ============================================================================

@pytest.mark.asyncio
async def test_export_then_import(client):
    await create(client)

    exported = await client.get("/imports/export")
    entries = exported.json()

    assert exported.status_code == 200
    assert len(entries) == 1
    assert entries[0]["auth_value_or_password"] == "token"
    assert "state" not in entries[0]

    imported = await client.post("/imports/import", json=entries)
    listed = await client.get("/imports")

    assert imported.status_code == 201
    assert imported.json()[0]["created_by"] == "import"
    assert len(listed.json()) == 2
    assert imported.json()[0]["field_mappings"] == entries[0]["field_mappings"]
