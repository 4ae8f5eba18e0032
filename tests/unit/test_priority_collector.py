import json

import httpx
import pytest

from app.config import Settings
from app.features.priority.domain.models import Source
from app.features.priority.sources import FixtureAdapter, SourceCollector, UnconfiguredAdapter
from app.features.priority.sources.adapters import (
    HttpBridgeAdapter,
    build_source_adapters,
    extract_records,
)
from app.features.priority.sources.base import SourceAdapterError
from tests.conftest import FakeAdapter, jira_records, outlook_records


@pytest.mark.asyncio
async def test_collect_normalizes_every_source():
    collector = SourceCollector(
        [
            FakeAdapter(Source.JIRA, jira_records()),
            FakeAdapter(Source.OUTLOOK, outlook_records()),
        ]
    )

    batches = await collector.collect("alice")

    assert [b.source for b in batches] == [Source.JIRA, Source.OUTLOOK]
    assert all(b.ok for b in batches)
    assert batches[0].items[0].id == "PROJ-101"


@pytest.mark.asyncio
async def test_slow_source_times_out_without_blocking_others():
    slow = FakeAdapter(Source.OUTLOOK, outlook_records(), delay=5)
    collector = SourceCollector(
        [FakeAdapter(Source.JIRA, jira_records()), slow], timeout_seconds=0.05
    )

    jira, outlook = await collector.collect("alice")

    assert jira.ok
    assert outlook.ok is False
    assert outlook.error == "Outlook unavailable: timed out after 0.05s"


@pytest.mark.asyncio
async def test_adapter_errors_become_failed_batches():
    collector = SourceCollector(
        [
            FakeAdapter(Source.JIRA, error=SourceAdapterError(Source.JIRA, "HTTP 502")),
            FakeAdapter(Source.CONFLUENCE, error=RuntimeError("boom")),
            UnconfiguredAdapter(Source.OUTLOOK),
        ]
    )

    jira, confluence, outlook = await collector.collect("alice")

    assert jira.error == "JIRA unavailable: HTTP 502"
    assert confluence.error == "Confluence unavailable: unexpected error: RuntimeError: boom"
    assert outlook.error == "Outlook unavailable: Outlook source not configured"


@pytest.mark.asyncio
async def test_fixture_adapter_reads_envelope(tmp_path):
    path = tmp_path / "jira.json"
    path.write_text(json.dumps({"issues": jira_records()}), encoding="utf-8")

    result = await FixtureAdapter(Source.JIRA, path).fetch("alice")

    assert result.records[0]["key"] == "PROJ-101"


@pytest.mark.asyncio
async def test_fixture_adapter_missing_file_raises(tmp_path):
    with pytest.raises(SourceAdapterError):
        await FixtureAdapter(Source.JIRA, tmp_path / "missing.json").fetch("alice")


def test_extract_records_rejects_unknown_shapes():
    assert extract_records({"value": [{"id": 1}, "junk"]}, Source.OUTLOOK) == [{"id": 1}]
    with pytest.raises(SourceAdapterError):
        extract_records({"unexpected": []}, Source.OUTLOOK)


def test_build_source_adapters_prefers_bridge_over_fixture():
    config = Settings(
        JIRA_SOURCE_URL="http://bridge/jira/{focus_user}",
        JIRA_FIXTURE_PATH="/tmp/jira.json",
        CONFLUENCE_FIXTURE_PATH="/tmp/confluence.json",
        CONFLUENCE_SOURCE_URL=None,
        OUTLOOK_SOURCE_URL=None,
        OUTLOOK_FIXTURE_PATH=None,
    )

    adapters = {a.source: type(a).__name__ for a in build_source_adapters(config)}

    assert adapters == {
        Source.JIRA: "HttpBridgeAdapter",
        Source.OUTLOOK: "UnconfiguredAdapter",
        Source.CONFLUENCE: "FixtureAdapter",
    }


@pytest.mark.asyncio
async def test_http_bridge_adapter_quotes_focus_user():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"items": jira_records()})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = HttpBridgeAdapter(Source.JIRA, "http://bridge/jira/{focus_user}", client=client)

    result = await adapter.fetch("Abrar ul haq N")
    await adapter.close()

    assert seen == ["http://bridge/jira/Abrar%20ul%20haq%20N"]
    assert result.records[0]["key"] == "PROJ-101"


@pytest.mark.asyncio
async def test_http_bridge_adapter_raises_on_server_error():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    adapter = HttpBridgeAdapter(Source.OUTLOOK, "http://bridge/outlook/{focus_user}", client=client)

    with pytest.raises(SourceAdapterError, match="HTTP 500"):
        await adapter.fetch("alice")
    await adapter.close()
