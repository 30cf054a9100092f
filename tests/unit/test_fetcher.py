"""
Unit tests for the external API fetcher
"""

import base64
import httpx
import pytest
from ingestion.fetcher import ExternalFetcher, build_auth_headers, preview_sample, truncate
from core.exceptions import (
    AuthenticationError,
    BadResponseError,
    FetchError,
    FetchTimeoutError,
    InvalidJSONError,
    JsonPathError,
    NetworkError,
    UpstreamNotFoundError,
)
from models.base import AuthenticationType


def make_fetcher(handler) -> ExternalFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExternalFetcher(client=client, timeout=5)


class TestAuthHeaders:
    """Authentication header construction"""

    def test_api_key_default_header(self):
        assert build_auth_headers("api_key", None, "secret") == {"X-API-Key": "secret"}

    def test_api_key_custom_header(self):
        assert build_auth_headers(AuthenticationType.API_KEY, "X-Token", "secret") == {"X-Token": "secret"}

    def test_basic(self):
        headers = build_auth_headers("basic", "user", "pass")
        expected = base64.b64encode(b"user:pass").decode("ascii")
        assert headers == {"Authorization": f"Basic {expected}"}

    def test_basic_without_username(self):
        assert build_auth_headers("basic", None, "pass") == {}

    def test_bearer(self):
        assert build_auth_headers("bearer", None, "tok") == {"Authorization": "Bearer tok"}

    def test_bearer_without_token(self):
        assert build_auth_headers("bearer", "ignored", None) == {}

    def test_none(self):
        assert build_auth_headers(None, "user", "pass") == {}


class TestHelpers:

    def test_truncate(self):
        assert truncate("abcdef", 3) == "abc..."
        assert truncate("abc", 3) == "abc"
        assert truncate(None, 3) == ""

    def test_preview_sample_limits_elements(self):
        sample = preview_sample([{"a": 1}, {"a": 2}, {"a": 3}])
        assert '"a": 2' in sample
        assert '"a": 3' not in sample


class TestFetch:
    """Request building and error classification"""

    @pytest.mark.asyncio
    async def test_sends_method_and_headers(self, make_config):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["headers"] = request.headers
            return httpx.Response(200, json=[{"id": 1}])

        config = make_config(
            http_method="POST",
            auth_type=AuthenticationType.BEARER,
            auth_value_or_password="tok",
            custom_headers={"X-Tenant": "acme", " ": "dropped"},
        )

        data = await make_fetcher(handler).fetch(config)

        assert data == [{"id": 1}]
        assert seen["method"] == "POST"
        assert seen["headers"]["Authorization"] == "Bearer tok"
        assert seen["headers"]["X-Tenant"] == "acme"

    @pytest.mark.asyncio
    async def test_json_path_narrowing(self, make_config):
        def handler(request):
            return httpx.Response(200, json={"data": {"items": [{"id": "a"}, {"id": "b"}]}})

        data = await make_fetcher(handler).fetch(make_config(json_path="data.items"))
        assert [e["id"] for e in data] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_root_not_array(self, make_config):
        def handler(request):
            return httpx.Response(200, json={"data": []})

        with pytest.raises(JsonPathError) as exc_info:
            await make_fetcher(handler).fetch(make_config())
        assert "not a valid JSON array at root level" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_path_not_array(self, make_config):
        def handler(request):
            return httpx.Response(200, json={"data": {"items": {"id": "a"}}})

        with pytest.raises(JsonPathError) as exc_info:
            await make_fetcher(handler).fetch(make_config(json_path="data.items"))
        assert str(exc_info.value) == "Could not find a JSON array at path 'data.items'."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error_class", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, UpstreamNotFoundError),
        (500, BadResponseError),
        (429, BadResponseError),
    ])
    async def test_http_errors(self, make_config, status, error_class):
        def handler(request):
            return httpx.Response(status, text="nope")

        with pytest.raises(error_class) as exc_info:
            await make_fetcher(handler).fetch_document(make_config())

        assert str(exc_info.value) == f"API returned {status}: nope"
        assert exc_info.value.context["status_code"] == status

    @pytest.mark.asyncio
    async def test_error_body_truncated(self, make_config):
        def handler(request):
            return httpx.Response(500, text="x" * 500)

        with pytest.raises(BadResponseError) as exc_info:
            await make_fetcher(handler).fetch_document(make_config())

        assert exc_info.value.status_code == 500
        assert str(exc_info.value).endswith("x" * 200 + "...")

    @pytest.mark.asyncio
    async def test_invalid_json(self, make_config):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(InvalidJSONError):
            await make_fetcher(handler).fetch_document(make_config())

    @pytest.mark.asyncio
    async def test_timeout(self, make_config):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetchTimeoutError):
            await make_fetcher(handler).fetch_document(make_config())

    @pytest.mark.asyncio
    async def test_connection_failure(self, make_config):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await make_fetcher(handler).fetch_document(make_config())

        assert isinstance(exc_info.value, FetchError)
        assert exc_info.value.context["api_url"] == "https://api.example.com/products"
