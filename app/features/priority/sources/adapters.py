"""
Source adapters shipped with the service.

- HttpBridgeAdapter: GETs an upstream bridge (the JIRA / Graph / Confluence
  client services) that returns the focus user's native records as JSON.
- FixtureAdapter: reads records from a JSON file (mock/test mode).
- UnconfiguredAdapter: placeholder for a source with neither; always fails,
  which the collector records as that source being unavailable.
"""

import asyncio
import json
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from app.config import Settings, settings
from app.features.priority.domain.models import Source
from app.features.priority.sources.base import RawSourceResult, SourceAdapter, SourceAdapterError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_TIMEOUT = 15  # seconds; the collector applies its own tighter bound
MAX_RETRIES = 2
BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {429, 502, 503, 504}

# Envelope keys the bridges use around record lists
RECORD_LIST_KEYS = ("items", "records", "issues", "value", "results", "pages", "emails")


def extract_records(payload: Any, source: Source) -> list[Mapping[str, Any]]:
    """Pull the record list out of a bridge payload."""
    if isinstance(payload, list):
        return [record for record in payload if isinstance(record, Mapping)]
    if isinstance(payload, Mapping):
        for key in RECORD_LIST_KEYS:
            if isinstance(payload.get(key), list):
                return [record for record in payload[key] if isinstance(record, Mapping)]
    raise SourceAdapterError(source, "Unexpected payload shape from source")


class HttpBridgeAdapter:
    """Fetches native records for one source from an HTTP bridge."""

    def __init__(self, source: Source, url_template: str, client: httpx.AsyncClient | None = None):
        self.source = source
        self.url_template = url_template
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    def _url_for(self, focus_user: str) -> str:
        return self.url_template.replace("{focus_user}", quote(focus_user, safe=""))

    async def _get_with_retry(self, url: str) -> httpx.Response:
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.get(url, headers={"Accept": "application/json"})
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Source bridge retrying request",
                        source=self.source.value,
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise SourceAdapterError(self.source, f"Request failed: {e}") from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Source bridge request error, retrying",
                    source=self.source.value,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise SourceAdapterError(self.source, "Retry loop exhausted")

    async def fetch(self, focus_user: str) -> RawSourceResult:
        response = await self._get_with_retry(self._url_for(focus_user))
        if response.status_code >= 400:
            raise SourceAdapterError(
                self.source, f"Upstream returned HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise SourceAdapterError(self.source, "Upstream returned invalid JSON") from e

        return RawSourceResult(
            source=self.source,
            records=extract_records(payload, self.source),
            fetched_at=datetime.now(UTC),
        )


class FixtureAdapter:
    """Serves records from a JSON file, re-read on every fetch."""

    def __init__(self, source: Source, path: str | Path):
        self.source = source
        self.path = Path(path)

    async def fetch(self, focus_user: str) -> RawSourceResult:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            payload = json.loads(text)
        except (OSError, ValueError) as e:
            raise SourceAdapterError(self.source, f"Fixture unreadable: {e}") from e

        return RawSourceResult(
            source=self.source,
            records=extract_records(payload, self.source),
            fetched_at=datetime.now(UTC),
        )


class UnconfiguredAdapter:
    def __init__(self, source: Source):
        self.source = source

    async def fetch(self, focus_user: str) -> RawSourceResult:
        raise SourceAdapterError(self.source, f"{self.source.label} source not configured")


def build_source_adapters(config: Settings = settings) -> list[SourceAdapter]:
    """One adapter per source: bridge URL first, then fixture, else unconfigured."""
    urls = config.source_urls()
    fixtures = config.source_fixtures()
    adapters: list[SourceAdapter] = []

    for source in Source:
        if urls.get(source.value):
            adapters.append(HttpBridgeAdapter(source, urls[source.value]))
        elif fixtures.get(source.value):
            adapters.append(FixtureAdapter(source, fixtures[source.value]))
        else:
            adapters.append(UnconfiguredAdapter(source))

    logger.info(
        "Source adapters configured",
        adapters={adapter.source.value: type(adapter).__name__ for adapter in adapters},
    )
    return adapters
