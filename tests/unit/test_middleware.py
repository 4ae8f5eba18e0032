from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from app.middleware import CORSMiddleware, RequestContextMiddleware


def build_app():
    app = FastAPI()
    app.add_middleware(CORSMiddleware, allowed_origins=["http://dashboard.local"])
    app.add_middleware(RequestContextMiddleware)

    @app.get("/ping")
    async def ping(request: Request):
        return {"request_id": request.state.request_id}

    return app


client = TestClient(build_app())


def test_allowed_origin_gets_cors_headers():
    response = client.get("/ping", headers={"Origin": "http://dashboard.local"})

    assert response.headers["access-control-allow-origin"] == "http://dashboard.local"
    assert "access-control-allow-credentials" not in response.headers


def test_preflight_from_unknown_origin_is_rejected():
    response = client.options(
        "/ping",
        headers={"Origin": "http://evil.local", "Access-Control-Request-Method": "GET"},
    )

    assert response.status_code == 403


def test_preflight_from_allowed_origin():
    response = client.options(
        "/ping",
        headers={"Origin": "http://dashboard.local", "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 204
    assert "POST" in response.headers["access-control-allow-methods"]


def test_request_id_is_reused_when_well_formed():
    response = client.get("/ping", headers={"X-Request-ID": "dash-12345678"})

    assert response.headers["x-request-id"] == "dash-12345678"
    assert response.json()["request_id"] == "dash-12345678"


def test_malformed_request_id_is_replaced():
    response = client.get("/ping", headers={"X-Request-ID": "bad id!"})

    assert response.headers["x-request-id"] != "bad id!"
    assert len(response.headers["x-request-id"]) == 36
