"""
External API fetcher.

Builds one HTTP request from an import configuration (method, custom
headers, authentication), sends it with a bounded timeout and narrows the
JSON response to the array selected by the configuration's json_path.
Every failure is raised as a FetchError subclass carrying the API URL in
its context.
"""

import base64
import json
from typing import Any, Dict, List, Optional

import httpx

from core.config import settings
from core.exceptions import (
    AuthenticationError,
    BadResponseError,
    FetchTimeoutError,
    InvalidJSONError,
    JsonPathError,
    NetworkError,
    UpstreamNotFoundError,
)
from ingestion.json_path import resolve
from models.base import AuthenticationType
import logging

logger = logging.getLogger(__name__)

DEFAULT_API_KEY_HEADER = "X-API-Key"


def truncate(text: Optional[str], max_length: int) -> str:
    if not text or len(text) <= max_length:
        return text or ""
    return text[:max_length] + "..."


def build_auth_headers(
    auth_type: Optional[str],
    key_or_username: Optional[str],
    value_or_password: Optional[str],
) -> Dict[str, str]:
    """
    Headers for the configured authentication scheme.

    - api_key: header named by key_or_username (default X-API-Key)
    - basic: Authorization: Basic base64(user:pass), only when a user is set
    - bearer: Authorization: Bearer <token>, only when a token is set
    - none: nothing
    """
    auth_type = AuthenticationType(auth_type or AuthenticationType.NONE)

    if auth_type is AuthenticationType.API_KEY:
        header_name = (key_or_username or "").strip() or DEFAULT_API_KEY_HEADER
        return {header_name: value_or_password or ""}

    if auth_type is AuthenticationType.BASIC and key_or_username:
        token = base64.b64encode(
            f"{key_or_username}:{value_or_password or ''}".encode("utf-8")
        ).decode("ascii")
        return {"Authorization": f"Basic {token}"}

    if auth_type is AuthenticationType.BEARER and value_or_password:
        return {"Authorization": f"Bearer {value_or_password}"}

    return {}


class ExternalFetcher:
    """
    Fetches JSON arrays from third-party APIs.

    Attributes:
        client: Shared httpx.AsyncClient; when None a client is created per call
        timeout: Default request timeout in seconds
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS

    def build_headers(self, config) -> Dict[str, str]:
        headers = build_auth_headers(
            config.auth_type,
            config.auth_key_or_username,
            config.auth_value_or_password,
        )
        for name, value in (config.custom_headers or {}).items():
            if name and name.strip():
                headers[name.strip()] = "" if value is None else str(value)
        return headers

    async def _send(self, config, timeout: float) -> httpx.Response:
        method = (config.http_method or "GET").upper()
        headers = self.build_headers(config)

        if self.client is not None:
            return await self.client.request(method, config.api_url, headers=headers, timeout=timeout)

        async with httpx.AsyncClient() as client:
            return await client.request(method, config.api_url, headers=headers, timeout=timeout)

    async def fetch_document(self, config, timeout: Optional[float] = None) -> Any:
        """
        Send the configured request and return the parsed JSON body.

        Raises:
            FetchTimeoutError: Request timed out
            NetworkError: Connection-level failure
            AuthenticationError: HTTP 401/403
            UpstreamNotFoundError: HTTP 404
            BadResponseError: Any other non-2xx status
            InvalidJSONError: Body is not JSON
        """
        timeout = timeout if timeout is not None else self.timeout
        context = {"api_url": config.api_url, "http_method": config.http_method}

        try:
            logger.debug(f"Fetching {config.http_method} {config.api_url}")
            response = await self._send(config, timeout)

        except httpx.TimeoutException as e:
            raise FetchTimeoutError(
                f"Request to {config.api_url} timed out after {timeout} seconds",
                context=context,
                original_exception=e
            )

        except httpx.RequestError as e:
            raise NetworkError(
                f"Connection failed: {e}",
                context=context,
                original_exception=e
            )

        if not response.is_success:
            status = response.status_code
            body = truncate(response.text, 200)
            context.update({"status_code": status, "response_body": body})
            message = f"API returned {status}: {body}"

            if status in (401, 403):
                raise AuthenticationError(message, context=context)
            if status == 404:
                raise UpstreamNotFoundError(message, context=context)
            raise BadResponseError(message, context=context, status_code=status)

        try:
            return response.json()
        except ValueError as e:
            context["response_body"] = truncate(response.text, 200)
            raise InvalidJSONError(
                "Response is not valid JSON",
                context=context,
                original_exception=e
            )

    @staticmethod
    def narrow(document: Any, json_path: Optional[str]) -> List[Any]:
        """
        Return the array at json_path (or the root when no path is set).

        Raises:
            JsonPathError: The path does not lead to a JSON array
        """
        resolution = resolve(document, json_path)

        if not resolution.found or not isinstance(resolution.value, list):
            if json_path and json_path.strip():
                message = f"Could not find a JSON array at path '{json_path}'."
            else:
                message = (
                    "Response is not a valid JSON array at root level. "
                    "Specify a JSON Path to navigate to the array."
                )
            raise JsonPathError(message, context={"json_path": json_path})

        return resolution.value

    async def fetch(self, config, timeout: Optional[float] = None) -> List[Any]:
        """Fetch and narrow in one step."""
        document = await self.fetch_document(config, timeout)
        return self.narrow(document, config.json_path)


def preview_sample(elements: List[Any], max_items: int = 2) -> str:
    """Pretty-printed JSON of the first ``max_items`` elements."""
    return json.dumps(elements[:max_items], indent=2, ensure_ascii=False)

