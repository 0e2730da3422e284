"""Tests for the health probe endpoints."""

import httpx
import pytest
from starlette.testclient import TestClient

from webdav_bridge.app import get_app
from webdav_bridge.config import Settings

pytestmark = pytest.mark.unit


def _client(settings, handler) -> TestClient:
    app = get_app(settings, upstream_transport=httpx.MockTransport(handler))
    return TestClient(app)


def test_liveness(settings):
    client = _client(settings, lambda request: httpx.Response(200))

    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "alive", "mode": "gateway"}


def test_liveness_reports_dev_mode():
    settings = Settings(dev_mode=True, metrics_enabled=False)
    client = _client(settings, lambda request: httpx.Response(200))

    assert client.get("/health/live").json()["mode"] == "dev"


def test_readiness_accepts_unauthenticated_upstream(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(401)

    response = _client(settings, handler).get("/health/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["checks"]["upstream_status"] == "401"
    assert seen[0].method == "OPTIONS"
    assert str(seen[0].url) == "https://dav.jianguoyun.com/dav/"


def test_readiness_fails_on_server_error(settings):
    response = _client(settings, lambda request: httpx.Response(503)).get(
        "/health/ready"
    )

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


def test_readiness_fails_when_unreachable(settings):
    def handler(request):
        raise httpx.ConnectError("Connection refused")

    response = _client(settings, handler).get("/health/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["upstream_reachable"].startswith("error:")


def test_metrics_middleware_is_optional():
    settings = Settings(metrics_enabled=True)
    client = _client(settings, lambda request: httpx.Response(200, text="ok"))

    response = client.get("/api/webdav/a.txt")

    assert response.status_code == 200
    assert response.text == "ok"


def test_lifespan_closes_upstream_clients(settings):
    with _client(settings, lambda request: httpx.Response(200, text="ok")) as client:
        assert client.get("/api/webdav/a.txt").text == "ok"
