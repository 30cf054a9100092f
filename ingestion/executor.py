# ============================================================================
# File: ingestion/executor.py
# Description: Fetch → map → build → sync pipeline for one import configuration
# ============================================================================
"""
Import Executor - runs one import attempt for one configuration.

This module provides:
- Connection tests and previews for operators
- Configuration validation before an attempt starts
- The execution pipeline: fetch external JSON, map it to items, apply
  index defaults, de-duplicate, encode as NDJSON and push to the index
- Accurate per-attempt counts (received, imported, skipped, failed)

execute_import never raises: every failure becomes a failed ImportResult.
"""

import json
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from core.config import settings
from core.exceptions import ConfigurationError, FetchError, FetchTimeoutError, JsonPathError, SyncError
from ingestion.fetcher import ExternalFetcher, preview_sample, truncate
from ingestion.index_client import IndexClient
from ingestion.mapper import FieldMapper
from models.base import AuthenticationType
from schemas.imports import (
    ALLOWED_HTTP_METHODS,
    ConnectionTestResult,
    ContentTypeSchema,
    CustomDataItem,
    FetchResult,
    ImportResult,
    MappingOutcome,
    PreviewResult,
)
import logging

logger = logging.getLogger(__name__)

NO_ITEMS_MAPPED = "No items could be mapped from the external data"

JSON_PATH_IS_URL = (
    "JSON Path should be the path to the data array within the JSON response "
    "(e.g., 'products', 'data', 'results'), not a URL. The API URL should be "
    "entered in the 'API URL' field."
)


def apply_index_defaults(item: CustomDataItem, content_type: str) -> CustomDataItem:
    """Add the properties the index requires when the mapping did not set them."""
    properties = dict(item.properties)
    properties.setdefault("ContentType", [content_type])
    properties.setdefault("Status", "Published")
    properties.setdefault("RolesWithReadAccess", "Everyone")
    return item.model_copy(update={"properties": properties})


def deduplicate(items: List[CustomDataItem], warnings: List[str]) -> List[CustomDataItem]:
    """Keep the last item for each id, in first-seen order."""
    unique: Dict[str, CustomDataItem] = {}
    for item in items:
        if item.id in unique:
            warnings.append(f"Duplicate id '{item.id}': the later element replaces the earlier one")
        unique[item.id] = item
    return list(unique.values())


class ImportExecutor:
    """
    Runs imports for import configurations.

    Responsibilities:
    - Validate a configuration before an attempt
    - Orchestrate fetch → map → build → sync
    - Turn every failure into a failed ImportResult
    """

    def __init__(
        self,
        fetcher: Optional[ExternalFetcher] = None,
        index_client: Optional[IndexClient] = None,
    ):
        self.fetcher = fetcher or ExternalFetcher()
        self.index_client = index_client or IndexClient()

    # --------------------------------------------------
    # Validation
    # --------------------------------------------------

    @staticmethod
    def validate_configuration(config) -> None:
        """
        Raises:
            ConfigurationError: The configuration cannot be executed as written
        """
        context = {"config_id": str(getattr(config, "id", None)), "name": config.name}

        parsed = urlparse(config.api_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"Invalid API URL '{config.api_url}'", context=context)

        if (config.http_method or "GET").upper() not in ALLOWED_HTTP_METHODS:
            raise ConfigurationError(f"Unsupported HTTP method '{config.http_method}'", context=context)

        try:
            AuthenticationType(config.auth_type or AuthenticationType.NONE)
        except ValueError as e:
            raise ConfigurationError(
                f"Unsupported authentication type '{config.auth_type}'",
                context=context,
                original_exception=e
            )

        if not (config.id_field_mapping or "").strip():
            raise ConfigurationError("ID field mapping is required", context=context)

        if not (config.target_source_id or "").strip():
            raise ConfigurationError("Target source id is required", context=context)

    # --------------------------------------------------
    # Operator tools
    # --------------------------------------------------

    async def test_connection(self, config) -> ConnectionTestResult:
        """One fetch with the short timeout; sample is the first two elements."""
        json_path = (config.json_path or "").strip()
        if json_path.lower().startswith(("http://", "https://")):
            return ConnectionTestResult(success=False, message=JSON_PATH_IS_URL)

        try:
            document = await self.fetcher.fetch_document(config, timeout=settings.TEST_CONNECTION_TIMEOUT_SECONDS)
        except FetchTimeoutError:
            return ConnectionTestResult(success=False, message="Connection timed out")
        except FetchError as e:
            return ConnectionTestResult(success=False, message=str(e))

        try:
            elements = self.fetcher.narrow(document, config.json_path)
        except JsonPathError:
            if json_path:
                hint = f"Could not find a JSON array at path '{json_path}'. Check that the path is correct."
            else:
                hint = (
                    "The API must return a JSON array at the root level, or specify a JSON Path "
                    "to navigate to the array (e.g., 'data', 'results', 'items')."
                )
            return ConnectionTestResult(
                success=False,
                message=hint,
                sample_json=truncate(json.dumps(document, ensure_ascii=False), 500),
            )

        return ConnectionTestResult(
            success=True,
            message="Connection successful",
            sample_json=preview_sample(elements),
        )

    async def fetch_external_data(self, config) -> FetchResult:
        try:
            data = await self.fetcher.fetch(config)
        except FetchError as e:
            logger.warning(
                f"Fetch failed for '{config.name}': {e}",
                extra={"error_context": e.to_dict()}
            )
            return FetchResult(success=False, error=str(e))
        return FetchResult(success=True, data=data)

    def map_external_data_to_items(self, data: List[Any], config) -> MappingOutcome:
        return FieldMapper.for_configuration(config).map_items(data)

    async def preview_import(self, config, schema: Optional[ContentTypeSchema] = None) -> PreviewResult:
        """Fetch and map without calling the index."""
        fetch = await self.fetch_external_data(config)
        if not fetch.success:
            return PreviewResult(warnings=[fetch.error or "Failed to fetch data from external API"])

        outcome = self.map_external_data_to_items(fetch.data, config)
        content_type = schema.name if schema else config.target_content_type
        return PreviewResult(
            items=[apply_index_defaults(item, content_type) for item in outcome.items],
            warnings=outcome.warnings,
            total_items_received=outcome.received,
            items_skipped=outcome.skipped,
        )

    # --------------------------------------------------
    # Execution
    # --------------------------------------------------

    async def execute_import(self, config, schema: Optional[ContentTypeSchema], source_id: str) -> ImportResult:
        """
        Run fetch → map → build → sync for one configuration.

        Returns:
            ImportResult; never raises
        """
        started = time.perf_counter()

        def elapsed() -> float:
            return round(time.perf_counter() - started, 3)

        try:
            # --------------------------------------------------
            # PHASE 1: FETCH
            # --------------------------------------------------
            logger.info(f"Starting import '{config.name}' into source '{source_id}'")
            fetch = await self.fetch_external_data(config)
            if not fetch.success:
                return ImportResult.failed(fetch.error or "Failed to fetch data from external API", elapsed())

            # --------------------------------------------------
            # PHASE 2: MAP
            # --------------------------------------------------
            outcome = self.map_external_data_to_items(fetch.data, config)
            warnings = list(outcome.warnings)

            if not outcome.items:
                return ImportResult(
                    success=False,
                    total_items_received=outcome.received,
                    items_skipped=outcome.skipped,
                    errors=[NO_ITEMS_MAPPED],
                    warnings=warnings,
                    duration_seconds=elapsed(),
                )

            content_type = schema.name if schema else config.target_content_type
            items = deduplicate(
                [apply_index_defaults(item, content_type) for item in outcome.items],
                warnings,
            )

            # --------------------------------------------------
            # PHASE 3: BUILD + SYNC
            # --------------------------------------------------
            try:
                sync = await self.index_client.sync_items(source_id, items)
            except SyncError as e:
                logger.error(
                    f"Sync failed for '{config.name}': {e}",
                    extra={"error_context": e.to_dict()}
                )
                return ImportResult(
                    success=False,
                    total_items_received=outcome.received,
                    items_skipped=outcome.skipped,
                    errors=[str(e)],
                    warnings=warnings,
                    duration_seconds=elapsed(),
                )

            item_ids = {item.id for item in items}
            rejected = {item_id: reason for item_id, reason in sync.rejected.items() if item_id in item_ids}
            for item_id, reason in rejected.items():
                warnings.append(f"Item '{item_id}' rejected by the index: {reason}")

            imported = len(items) - len(rejected)
            if imported == 0:
                return ImportResult(
                    success=False,
                    total_items_received=outcome.received,
                    items_skipped=outcome.skipped,
                    items_failed=len(rejected),
                    errors=[f"All {len(items)} items were rejected by the index"],
                    warnings=warnings,
                    duration_seconds=elapsed(),
                )

            result = ImportResult.successful(
                received=outcome.received,
                imported=imported,
                skipped=outcome.skipped,
                failed=len(rejected),
                warnings=warnings,
                duration_seconds=elapsed(),
            )
            logger.info(
                f"Import '{config.name}' complete: {result.items_imported} imported, "
                f"{result.items_skipped} skipped, {result.items_failed} failed"
            )
            return result

        except Exception as e:
            logger.error(f"Unexpected error during import '{config.name}': {e}", exc_info=True)
            return ImportResult.failed(str(e), elapsed())
