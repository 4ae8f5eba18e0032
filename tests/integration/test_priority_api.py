"""
End-to-end checks of the /api/priority routes over a service built from fake
adapters, plus the HTTP bridge adapter against a mocked upstream.
"""

import pytest
from fastapi.testclient import TestClient

from app.features.priority.domain.models import Source
from app.features.priority.services.dashboard_service import get_dashboard_service
from app.features.priority.sources.adapters import HttpBridgeAdapter
from app.features.priority.sources.base import SourceAdapterError
from app.main import app

client = TestClient(app)


@pytest.fixture
def service(make_service, adapters):
    service = make_service(adapters)
    app.dependency_overrides[get_dashboard_service] = lambda: service
    yield service
    app.dependency_overrides.pop(get_dashboard_service, None)


def test_dashboard_uses_camel_case_contract(service):
    response = client.get("/api/priority/dashboard", params={"focusUser": "alice"})

    assert response.status_code == 200
    data = response.json()
    assert data["focusUser"] == "alice"
    assert [b["id"] for b in data["urgencyBadges"]] == ["PROJ-101", "AAMk-1", "98765"]
    assert data["urgencyBadges"][0]["urgency"] == "CRITICAL"
    assert data["capacityIndicator"]["level"] == "LOW"
    assert data["summary"]["sourceStatus"]["jira"]["ok"] is True
    assert data["summary"]["sourceStatus"]["jira"]["itemCount"] == 1
    assert data["summary"]["totalItems"] == 3
    assert data["stale"] is False


def test_urgent_only_returns_high_and_critical(service):
    response = client.get("/api/priority/urgent", params={"focusUser": "alice"})

    assert response.status_code == 200
    assert [b["id"] for b in response.json()["urgencyBadges"]] == ["PROJ-101"]


def test_report_and_workload(service):
    report = client.get("/api/priority/report", params={"focusUser": "alice"}).json()
    workload = client.get("/api/priority/workload", params={"focusUser": "alice"}).json()

    assert report["narrative"].startswith("You have 3 open items")
    assert report["unavailableSources"] == []
    assert [s["urgency"] for s in report["sections"]] == ["CRITICAL", "HIGH", "MEDIUM", "LOW"]
    assert workload["totalItems"] == 3
    assert workload["capacityIndicator"]["percentage"] == 20


def test_report_filters_from_query(service):
    default = client.get("/api/priority/report", params={"focusUser": "alice"}).json()
    everything = client.get(
        "/api/priority/report", params={"focusUser": "alice", "minScore": 0}
    ).json()
    top_one = client.get(
        "/api/priority/report", params={"focusUser": "alice", "maxItems": 1}
    ).json()

    assert default["omittedItems"] == 1
    assert everything["omittedItems"] == 0
    assert [b["id"] for s in top_one["sections"] for b in s["badges"]] == ["PROJ-101"]


def test_report_rejects_out_of_range_filters(service):
    response = client.get("/api/priority/report", params={"focusUser": "alice", "maxItems": 0})

    assert response.status_code == 422


def test_missing_focus_user_is_503(service, adapters):
    response = client.get("/api/priority/dashboard")

    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "NoDataAvailable"
    assert sum(adapter.calls for adapter in adapters.values()) == 0


def test_malformed_focus_user_is_400(service):
    response = client.get("/api/priority/urgent", params={"focusUser": "<script>"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "InvalidFocusUser"


def test_all_sources_failed_is_503(make_service, failing_adapters):
    app.dependency_overrides[get_dashboard_service] = lambda: make_service(failing_adapters)
    try:
        response = client.get("/api/priority/dashboard", params={"focusUser": "alice"})
    finally:
        app.dependency_overrides.pop(get_dashboard_service, None)

    assert response.status_code == 503


def test_cache_clear_forces_refetch(service, adapters):
    client.get("/api/priority/dashboard", params={"focusUser": "alice"})

    response = client.post("/api/priority/cache/clear")
    client.get("/api/priority/dashboard", params={"focusUser": "alice"})

    assert response.status_code == 200
    assert response.json() == {"cleared": True, "entries": 1}
    assert all(adapter.calls == 2 for adapter in adapters.values())


def test_scoring_update_changes_ranking_and_clears_cache(service, adapters):
    client.get("/api/priority/dashboard", params={"focusUser": "alice"})

    response = client.put(
        "/api/priority/scoring", json={"baseWeights": {"flagged": 50}, "dueWeight": 45}
    )
    current = client.get("/api/priority/scoring").json()

    assert response.status_code == 200
    data = response.json()
    assert data["clearedEntries"] == 1
    assert data["dueWeight"] == 45
    assert current["baseWeights"]["flagged"] == 50
    assert current["clearedEntries"] is None

    client.get("/api/priority/dashboard", params={"focusUser": "alice"})
    assert all(adapter.calls == 2 for adapter in adapters.values())


def test_scoring_update_with_crossed_thresholds_is_400(service):
    response = client.put("/api/priority/scoring", json={"mediumThreshold": 80})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "InvalidScoringConfig"


def test_scoring_update_rejects_unknown_fields(service):
    response = client.put("/api/priority/scoring", json={"magicWeight": 3})

    assert response.status_code == 422


def test_views_for_role():
    response = client.get("/api/priority/views", params={"role": "cto"})

    assert response.status_code == 200
    data = response.json()
    assert data["role"] == "CTO"
    assert [v["id"] for v in data["views"]] == ["focus", "exec"]
    assert data["views"][1]["label"] == "Exec View"


@pytest.mark.asyncio
async def test_bridge_adapter_retries_gateway_errors(httpx_mock):
    url = "http://bridge.local/jira/alice%40example.com"
    httpx_mock.add_response(method="GET", url=url, status_code=502)
    httpx_mock.add_response(
        method="GET", url=url, json={"issues": [{"key": "PROJ-1"}, "junk"]}
    )
    adapter = HttpBridgeAdapter(Source.JIRA, "http://bridge.local/jira/{focus_user}")

    result = await adapter.fetch("alice@example.com")
    await adapter.close()

    assert [record["key"] for record in result.records] == ["PROJ-1"]


@pytest.mark.asyncio
async def test_bridge_adapter_rejects_invalid_json(httpx_mock):
    httpx_mock.add_response(
        method="GET", url="http://bridge.local/outlook/alice", text="<html>oops</html>"
    )
    adapter = HttpBridgeAdapter(Source.OUTLOOK, "http://bridge.local/outlook/{focus_user}")

    with pytest.raises(SourceAdapterError) as exc:
        await adapter.fetch("alice")
    await adapter.close()

    assert "invalid JSON" in str(exc.value)
