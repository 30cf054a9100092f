"""
Client for the hosted search index gateway.

Two calls are used by the import pipeline:
- GET  {gateway}/api/content/v3/types?id=<source>  schema lookup
- POST {gateway}/api/content/v2/data?id=<source>   bulk push (NDJSON body)

Both authenticate with HTTP Basic using the application key and secret.
"""

import base64
import json
import uuid
from typing import Any, Dict, List, Optional

import httpx

from core.config import settings
from core.exceptions import SyncError
from ingestion.bulk_codec import build_ndjson
from ingestion.fetcher import truncate
from schemas.imports import ContentTypeProperty, ContentTypeSchema, CustomDataItem, SyncOutcome
import logging

logger = logging.getLogger(__name__)


def parse_content_types(document: Dict[str, Any]) -> Dict[str, ContentTypeSchema]:
    """Content types of a types-endpoint response, keyed by name."""
    content_types = document.get("contentTypes") or {}
    schemas: Dict[str, ContentTypeSchema] = {}

    if isinstance(content_types, list):
        # Older responses list content types with an explicit name
        content_types = {
            entry.get("name"): entry for entry in content_types
            if isinstance(entry, dict) and entry.get("name")
        }

    for name, definition in content_types.items():
        if not isinstance(definition, dict):
            continue

        base_types = [t for t in definition.get("contentType") or [] if isinstance(t, str) and t]
        properties = []
        for prop_name, prop in (definition.get("properties") or {}).items():
            prop = prop if isinstance(prop, dict) else {}
            properties.append(ContentTypeProperty(
                name=prop_name,
                type=prop.get("type") or "String",
                searchable=prop.get("searchable") is True,
            ))

        schemas[name] = ContentTypeSchema(
            name=name,
            label=definition.get("label"),
            base_type=base_types[0] if base_types else None,
            properties=properties,
        )

    return schemas


def parse_rejections(body: str) -> List[Any]:
    """The "errors" array of a sync response; empty when absent or not JSON."""
    if not body or not body.strip():
        return []
    try:
        document = json.loads(body)
    except ValueError:
        return []
    if not isinstance(document, dict):
        return []
    errors = document.get("errors")
    return errors if isinstance(errors, list) else []


class IndexClient:
    """
    Pushes bulk payloads to the search index and reads content-type schemas.

    Attributes:
        gateway_url: Base URL of the index gateway
        app_key / secret: Credentials for HTTP Basic authentication
        client: Optional shared httpx.AsyncClient (injected in tests)
    """

    def __init__(
        self,
        gateway_url: Optional[str] = None,
        app_key: Optional[str] = None,
        secret: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.gateway_url = (gateway_url or settings.GRAPH_GATEWAY_URL).rstrip("/")
        self.app_key = app_key if app_key is not None else settings.GRAPH_APP_KEY
        self.secret = secret if secret is not None else settings.GRAPH_SECRET
        self.client = client

    def _auth_header(self) -> Dict[str, str]:
        if not self.app_key or not self.secret:
            raise SyncError(
                "Index credentials are not configured",
                context={"gateway_url": self.gateway_url}
            )
        token = base64.b64encode(f"{self.app_key}:{self.secret}".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}

    async def _request(self, method: str, url: str, timeout: float, **kwargs) -> httpx.Response:
        if self.client is not None:
            return await self.client.request(method, url, timeout=timeout, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, timeout=timeout, **kwargs)

    # ========================================================================
    # Schema lookup
    # ========================================================================

    async def get_content_type_schema(self, source_id: str, content_type: str) -> Optional[ContentTypeSchema]:
        """
        Resolve one content type of a source.

        Returns:
            The schema, or None when the source (HTTP 404) or content type
            does not exist

        Raises:
            SyncError: Transport failure or unexpected status
        """
        url = f"{self.gateway_url}/api/content/v3/types"
        context = {"source_id": source_id, "content_type": content_type}

        try:
            response = await self._request(
                "GET",
                url,
                timeout=settings.TEST_CONNECTION_TIMEOUT_SECONDS,
                params={"id": source_id},
                headers=self._auth_header(),
            )
        except httpx.HTTPError as e:
            raise SyncError(
                f"Schema lookup failed: {e}",
                context=context,
                original_exception=e
            )

        if response.status_code == 404:
            logger.warning(f"Source '{source_id}' not found in the index")
            return None

        if not response.is_success:
            raise SyncError(
                f"Schema lookup returned {response.status_code}: {truncate(response.text, 200)}",
                context={**context, "status_code": response.status_code}
            )

        try:
            document = response.json()
        except ValueError as e:
            raise SyncError("Schema lookup returned invalid JSON", context=context, original_exception=e)

        schema = parse_content_types(document if isinstance(document, dict) else {}).get(content_type)
        if schema is None:
            logger.warning(f"Content type '{content_type}' not found in source '{source_id}'")
        return schema

    # ========================================================================
    # Bulk push
    # ========================================================================

    async def sync_items(self, source_id: str, items: List[CustomDataItem], job_id: Optional[str] = None) -> SyncOutcome:
        """
        Push items as one NDJSON payload.

        Entries of the response's "errors" array that name an item id are
        returned as item-level rejections. Any other error entry rejects the
        whole payload.

        Raises:
            SyncError: Transport failure, non-2xx status or whole-payload rejection
        """
        if not source_id:
            raise SyncError("Source id is required")
        if not items:
            raise SyncError("At least one item is required", context={"source_id": source_id})

        job_id = job_id or str(uuid.uuid4())
        url = f"{self.gateway_url}/api/content/v2/data"
        context = {"source_id": source_id, "job_id": job_id, "items": len(items)}

        headers = self._auth_header()
        headers["Content-Type"] = "text/plain"
        headers["og-job-id"] = job_id

        try:
            response = await self._request(
                "POST",
                url,
                timeout=settings.SYNC_TIMEOUT_SECONDS,
                params={"id": source_id},
                headers=headers,
                content=build_ndjson(items).encode("utf-8"),
            )
        except httpx.TimeoutException as e:
            raise SyncError(
                f"Sync timed out after {settings.SYNC_TIMEOUT_SECONDS} seconds",
                context=context,
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise SyncError(
                f"Network error syncing data: {e}",
                context=context,
                original_exception=e
            )

        if not response.is_success:
            raise SyncError(
                f"Error syncing data to the index: {response.status_code} - {truncate(response.text, 500)}",
                context={**context, "status_code": response.status_code}
            )

        rejected: Dict[str, str] = {}
        for entry in parse_rejections(response.text):
            item_id = (entry.get("_id") or entry.get("id")) if isinstance(entry, dict) else None
            if item_id is None:
                raise SyncError(
                    f"Sync returned errors: {truncate(response.text, 500)}",
                    context=context
                )
            reason = entry.get("message") or entry.get("error") or json.dumps(entry)
            rejected[str(item_id)] = str(reason)

        logger.info(
            f"Synced {len(items)} items to source '{source_id}' "
            f"(job {job_id}, {len(rejected)} rejected)"
        )
        return SyncOutcome(job_id=job_id, items_sent=len(items), rejected=rejected)
