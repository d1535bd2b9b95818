from __future__ import annotations


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_healthz_reports_snapshot_state(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["snapshot_enabled"] is False
    assert body["snapshot_generation"] is None


def test_metrics_endpoint(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "prs_dashboard_requests_total" in response.text


def test_access_logging_middleware_is_installed():
    from prs_api.main import app
    from prs_api.middleware.logging import RequestLoggingMiddleware

    assert any(middleware.cls is RequestLoggingMiddleware for middleware in app.user_middleware)
