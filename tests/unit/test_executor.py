"""
Unit tests for the import executor: validation, operator tools and the
fetch → map → sync pipeline
"""

import json
import httpx
import pytest
from ingestion.executor import (
    JSON_PATH_IS_URL,
    NO_ITEMS_MAPPED,
    ImportExecutor,
    apply_index_defaults,
    deduplicate,
)
from ingestion.fetcher import ExternalFetcher
from ingestion.index_client import IndexClient
from ingestion.bulk_codec import parse_ndjson
from core.exceptions import ConfigurationError
from schemas.imports import ContentTypeSchema, CustomDataItem

API_HOST = "api.example.com"


class FakeServices:
    """External API and index gateway behind one mock transport"""

    def __init__(self, api_response=None, sync_response=None):
        self.api_response = api_response or httpx.Response(200, json=[])
        self.sync_response = sync_response or httpx.Response(200, json={})
        self.synced_payloads = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == API_HOST:
            if isinstance(self.api_response, Exception):
                raise self.api_response
            return self.api_response
        self.synced_payloads.append(request.content.decode("utf-8"))
        return self.sync_response

    def executor(self) -> ImportExecutor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return ImportExecutor(
            fetcher=ExternalFetcher(client=client),
            index_client=IndexClient("https://gateway.example.com", "app", "secret", client=client),
        )


@pytest.fixture
def schema():
    return ContentTypeSchema(name="Product", base_type="_Item")


class TestHelpers:

    def test_index_defaults_added(self):
        item = apply_index_defaults(CustomDataItem(id="a", properties={"Name": "A"}), "Product")
        assert item.properties == {
            "Name": "A",
            "ContentType": ["Product"],
            "Status": "Published",
            "RolesWithReadAccess": "Everyone",
        }

    def test_index_defaults_do_not_override(self):
        original = CustomDataItem(id="a", properties={"Status": "Draft"})
        item = apply_index_defaults(original, "Product")

        assert item.properties["Status"] == "Draft"
        assert "ContentType" not in original.properties

    def test_deduplicate_last_wins(self):
        warnings = []
        items = [
            CustomDataItem(id="a", properties={"v": 1}),
            CustomDataItem(id="b", properties={"v": 2}),
            CustomDataItem(id="a", properties={"v": 3}),
        ]

        unique = deduplicate(items, warnings)

        assert [(i.id, i.properties["v"]) for i in unique] == [("a", 3), ("b", 2)]
        assert len(warnings) == 1
        assert "'a'" in warnings[0]


class TestValidation:

    def test_valid(self, make_config):
        ImportExecutor.validate_configuration(make_config())

    @pytest.mark.parametrize("overrides", [
        {"api_url": "ftp://example.com/data"},
        {"api_url": "not a url"},
        {"http_method": "TRACE"},
        {"auth_type": "kerberos"},
        {"id_field_mapping": "  "},
        {"target_source_id": ""},
    ])
    def test_invalid(self, make_config, overrides):
        with pytest.raises(ConfigurationError):
            ImportExecutor.validate_configuration(make_config(**overrides))


class TestConnectionTest:

    @pytest.mark.asyncio
    async def test_success_with_sample(self, make_config, mock_api_data):
        services = FakeServices(api_response=httpx.Response(200, json=mock_api_data + [{"id": "third"}]))

        result = await services.executor().test_connection(make_config())

        assert result.success is True
        assert result.message == "Connection successful"
        sample = json.loads(result.sample_json)
        assert [e["id"] for e in sample] == ["api_001", "api_002"]

    @pytest.mark.asyncio
    async def test_json_path_is_url(self, make_config):
        services = FakeServices()

        result = await services.executor().test_connection(make_config(json_path="https://api.example.com/x"))

        assert result.success is False
        assert result.message == JSON_PATH_IS_URL

    @pytest.mark.asyncio
    async def test_timeout(self, make_config):
        services = FakeServices(api_response=httpx.ConnectTimeout("slow"))

        result = await services.executor().test_connection(make_config())

        assert result.success is False
        assert result.message == "Connection timed out"

    @pytest.mark.asyncio
    async def test_http_error(self, make_config):
        services = FakeServices(api_response=httpx.Response(401, text="denied"))

        result = await services.executor().test_connection(make_config())

        assert result.success is False
        assert result.message == "API returned 401: denied"

    @pytest.mark.asyncio
    async def test_wrong_path_returns_document_sample(self, make_config):
        services = FakeServices(api_response=httpx.Response(200, json={"data": {"rows": []}}))

        result = await services.executor().test_connection(make_config(json_path="data.items"))

        assert result.success is False
        assert "Could not find a JSON array at path 'data.items'" in result.message
        assert '"rows"' in result.sample_json

    @pytest.mark.asyncio
    async def test_root_object_without_path(self, make_config):
        services = FakeServices(api_response=httpx.Response(200, json={"data": []}))

        result = await services.executor().test_connection(make_config())

        assert result.success is False
        assert "JSON array at the root level" in result.message


class TestPreview:

    @pytest.mark.asyncio
    async def test_preview_maps_without_sync(self, make_config, mock_api_data):
        services = FakeServices(api_response=httpx.Response(200, json=mock_api_data))

        preview = await services.executor().preview_import(make_config())

        assert preview.total_items_received == 2
        assert preview.items_skipped == 0
        assert preview.items[0].properties["Name"] == "Test Product 1"
        assert preview.items[0].properties["ContentType"] == ["Product"]
        assert services.synced_payloads == []

    @pytest.mark.asyncio
    async def test_preview_fetch_failure(self, make_config):
        services = FakeServices(api_response=httpx.Response(500, text="down"))

        preview = await services.executor().preview_import(make_config())

        assert preview.items == []
        assert preview.warnings == ["API returned 500: down"]


class TestExecuteImport:
    """Full attempt"""

    @pytest.mark.asyncio
    async def test_successful_import(self, make_config, mock_api_data, schema):
        services = FakeServices(api_response=httpx.Response(200, json=mock_api_data))

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is True
        assert result.total_items_received == 2
        assert result.items_imported == 2
        assert result.items_skipped == 0
        assert result.items_failed == 0
        assert result.duration_seconds >= 0

        pushed = parse_ndjson(services.synced_payloads[0])
        assert [item.id for item in pushed] == ["api_001", "api_002"]
        assert pushed[0].properties["Status"] == "Published"

    @pytest.mark.asyncio
    async def test_elements_without_id_are_skipped(self, make_config, schema):
        data = [{"id": "a", "name": "X"}, {"name": "Y"}]
        services = FakeServices(api_response=httpx.Response(200, json=data))

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is True
        assert result.total_items_received == 2
        assert result.items_imported == 1
        assert result.items_skipped == 1
        assert any("Skipped" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_nothing_mapped_fails(self, make_config, schema):
        services = FakeServices(api_response=httpx.Response(200, json=[{"name": "Y"}]))

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is False
        assert result.errors == [NO_ITEMS_MAPPED]
        assert result.items_skipped == 1
        assert services.synced_payloads == []

    @pytest.mark.asyncio
    async def test_empty_array_fails(self, make_config, schema):
        services = FakeServices(api_response=httpx.Response(200, json=[]))

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is False
        assert result.total_items_received == 0

    @pytest.mark.asyncio
    async def test_fetch_failure(self, make_config, schema):
        services = FakeServices(api_response=httpx.Response(500, text="boom"))

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is False
        assert result.error_message == "API returned 500: boom"

    @pytest.mark.asyncio
    async def test_sync_failure(self, make_config, mock_api_data, schema):
        services = FakeServices(
            api_response=httpx.Response(200, json=mock_api_data),
            sync_response=httpx.Response(400, text="bad payload"),
        )

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is False
        assert result.total_items_received == 2
        assert result.items_imported == 0
        assert result.error_message.startswith("Error syncing data to the index: 400")

    @pytest.mark.asyncio
    async def test_partial_rejection(self, make_config, mock_api_data, schema):
        services = FakeServices(
            api_response=httpx.Response(200, json=mock_api_data),
            sync_response=httpx.Response(200, json={"errors": [{"_id": "api_002", "message": "bad field"}]}),
        )

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is True
        assert result.items_imported == 1
        assert result.items_failed == 1
        assert "Item 'api_002' rejected by the index: bad field" in result.warnings

    @pytest.mark.asyncio
    async def test_all_rejected_fails(self, make_config, mock_api_data, schema):
        rejections = {"errors": [{"_id": "api_001", "message": "x"}, {"_id": "api_002", "message": "y"}]}
        services = FakeServices(
            api_response=httpx.Response(200, json=mock_api_data),
            sync_response=httpx.Response(200, json=rejections),
        )

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.success is False
        assert result.items_failed == 2
        assert result.errors == ["All 2 items were rejected by the index"]

    @pytest.mark.asyncio
    async def test_duplicates_collapsed(self, make_config, schema):
        data = [{"id": "a", "name": "old"}, {"id": "a", "name": "new"}]
        services = FakeServices(api_response=httpx.Response(200, json=data))

        result = await services.executor().execute_import(make_config(), schema, "prod")

        assert result.items_imported == 1
        pushed = parse_ndjson(services.synced_payloads[0])
        assert [(i.id, i.properties["Name"]) for i in pushed] == [("a", "new")]

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_result(self, make_config, schema):
        services = FakeServices(api_response=httpx.Response(200, json=[{"id": "a"}]))
        executor = services.executor()

        async def explode(*args, **kwargs):
            raise RuntimeError("kaboom")

        executor.index_client.sync_items = explode

        result = await executor.execute_import(make_config(), schema, "prod")

        assert result.success is False
        assert result.errors == ["kaboom"]
