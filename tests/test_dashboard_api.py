from __future__ import annotations

import json
import logging

import pytest

from conftest import NOW, FakeRunner, build_row, feed_record
from prs_api.dependencies.dashboard import get_dashboard_service
from prs_api.main import app
from prs_api.middleware.logging import ACCESS_LOGGER_NAME
from prs_api.services.dashboard import DashboardService, EngineConfig
from prs_api.services.errors import QueryExecutionError, QueryTimeoutError, Stage

HEADERS = {"X-User-Id": "10", "X-User-Role": "Engineer"}


@pytest.fixture()
def runner():
    fake = FakeRunner()
    app.dependency_overrides[get_dashboard_service] = lambda: DashboardService(
        None, EngineConfig(), runner=fake, now=lambda: NOW
    )
    yield fake
    app.dependency_overrides.pop(get_dashboard_service, None)


def test_requires_identity(client, runner):
    response = client.get("/v2/requisitions")
    assert response.status_code == 401
    assert runner.calls == []

    response = client.get("/v2/requisitions", headers={"X-User-Id": "abc"})
    assert response.status_code == 401


def test_returns_page_and_meta(client, runner):
    row = build_row(id=1, requestor_id=10)
    runner.records = [feed_record(row, my_request=True, totals=(12, 1, 0))]

    response = client.get("/v2/requisitions", params={"limit": 5, "page": 1}, headers=HEADERS)

    assert response.status_code == 200
    assert response.headers["x-dashboard-source"] == "optimized"
    body = response.json()
    assert body["all"][0]["doc_type"] == "R.S."
    assert body["all"][0]["ref_number"] == "requisition-1"
    assert body["my_request"][0]["id"] == 1
    assert body["meta"]["allTotal"] == 12
    assert body["meta"]["allTotalPages"] == 3
    assert body["meta"]["limit"] == 5


def test_passes_filters_and_order_through(client, runner):
    params = {
        "requestType": "my_approval",
        "filterBy": json.dumps({"company": "Cityland", "type": "PO"}),
        "order": json.dumps({"ref_number": "asc"}),
        "timeRange": "3 months",
    }
    response = client.get("/v2/requisitions", params=params, headers=HEADERS)

    assert response.status_code == 200
    assert runner.calls == ["optimized"]
    assert response.json()["my_approval"] == []


@pytest.mark.parametrize(
    "params",
    [
        {"filterBy": "{not json"},
        {"order": "[broken"},
        {"filterBy": json.dumps({"colour": "red"})},
        {"order": json.dumps({"colour": "asc"})},
        {"timeRange": "2 weeks"},
    ],
)
def test_invalid_input_is_unprocessable(client, runner, params):
    response = client.get("/v2/requisitions", params=params, headers=HEADERS)
    assert response.status_code == 422
    assert response.json()["detail"]["stage"] == "filter-compile"
    assert runner.calls == []


def test_unknown_request_type_is_unprocessable(client, runner):
    response = client.get("/v2/requisitions", params={"requestType": "everything"}, headers=HEADERS)
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["stage"] == "filter-compile"
    assert "everything" in detail["message"]
    assert runner.calls == []


def test_limit_bounds_are_enforced(client, runner):
    assert client.get("/v2/requisitions", params={"limit": 0}, headers=HEADERS).status_code == 422
    assert client.get("/v2/requisitions", params={"limit": 101}, headers=HEADERS).status_code == 422


def test_timeout_maps_to_gateway_timeout(client, runner):
    runner.fetch_error = QueryTimeoutError("Dashboard query exceeded its deadline", stage=Stage.PAGINATE)
    response = client.get("/v2/requisitions", headers=HEADERS)
    assert response.status_code == 504
    assert response.json()["detail"] == {"message": "Dashboard query exceeded its deadline", "stage": "paginate"}


def test_unrecovered_execution_error_maps_to_unavailable(client, runner):
    runner.fetch_error = QueryExecutionError("optimized failed", stage=Stage.PAGINATE)
    runner.legacy_error = QueryExecutionError("legacy failed", stage=Stage.PAGINATE)
    response = client.get("/v2/requisitions", headers=HEADERS)
    assert response.status_code == 503
    assert response.json()["detail"]["message"] == "legacy failed"
    assert runner.calls == ["optimized", "legacy"]


def test_recovered_fallback_is_reported_in_headers(client, runner):
    runner.fetch_error = QueryExecutionError("optimized failed", stage=Stage.PAGINATE)
    response = client.get("/v2/requisitions", headers=HEADERS)
    assert response.status_code == 200
    assert response.headers["x-dashboard-source"] == "fallback"


def test_access_log_carries_caller_and_source(client, runner, caplog):
    with caplog.at_level(logging.INFO, logger=ACCESS_LOGGER_NAME):
        client.get("/v2/requisitions", headers={**HEADERS, "X-Request-Id": "req-123"})

    lines = [json.loads(record.getMessage()) for record in caplog.records if record.name == ACCESS_LOGGER_NAME]
    entry = next(line for line in lines if line["path"] == "/v2/requisitions")
    assert entry["request_id"] == "req-123"
    assert entry["user_id"] == "10"
    assert entry["user_role"] == "Engineer"
    assert entry["dashboard_source"] == "optimized"
