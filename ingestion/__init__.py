"""
Import pipeline components: scheduling, execution and notification.

This package contains everything between "a configuration is due" and "its
items are in the search index":

Modules:
    json_path: Segment parser and tree walker for paths into parsed JSON
    bulk_codec: NDJSON bulk ingest payload builder and parser
    fetcher: External API requests (method, headers, authentication)
    mapper: Field mapping from external JSON elements to index items
    index_client: Search index gateway (schema lookup, bulk push)
    executor: Fetch → map → build → sync pipeline for one configuration
    state: Import lifecycle states and the allowed-transition table
    scheduler: Due lookup, next-run and retry-delay calculation, claims
    notifications: Failure and recovery emails
    job: Job driver run by APScheduler (and scripts/run_imports.py)

Subpackages:
    stores: ConfigurationStore / HistoryStore interfaces and SQLAlchemy implementations

Architecture:
    A job tick runs configurations one at a time:

    1. Claim - mark the configuration RUNNING (per-configuration lock)
    2. Execute - fetch, map, encode and push to the index
    3. Record - one history row per attempt, then retry/schedule update
    4. Notify - on recovery, or once when retries are exhausted

Usage:
    from ingestion.job import ImportJobDriver

    driver = ImportJobDriver()
    summary = await driver.execute()

Error Handling:
    Fetch and sync failures become failed ImportResults; configuration
    errors skip the configuration without a history row. See
    core.exceptions for the hierarchy.
"""

__all__ = [
    "ImportExecutor",
    "ImportScheduler",
    "ImportJobDriver",
    "ExternalFetcher",
    "FieldMapper",
    "IndexClient",
    "NotificationDispatcher",
]
