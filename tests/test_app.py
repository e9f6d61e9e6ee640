import time

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import HISTORY_URL, by_period, make_response
from stockchart.app import create_app

MONTH = make_response((1700000000, 450.0), (1700086400, 455.5))
YEAR = make_response((1690000000, 300.0), (1700000000, 450.0))


def _wait_for(predicate, timeout: float = 3.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.02)


@pytest.fixture
def client(config):
    config.request_delay_seconds = 0
    config.cache_dir = None
    with TestClient(create_app(config)) as test_client:
        yield test_client


def test_ready(api_mock, client) -> None:
    resp = client.get("/ready")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_chart_serves_points_after_startup_refresh(api_mock, config) -> None:
    api_mock.get(HISTORY_URL).mock(return_value=httpx.Response(200, json=MONTH))
    config.request_delay_seconds = 0
    config.cache_dir = None

    with TestClient(create_app(config)) as client:
        _wait_for(lambda: client.get("/chart").json()["points"])
        body = client.get("/chart").json()

    assert body["symbol"] == "NVDA"
    assert body["range"] == "1M"
    assert body["points"] == [
        {"date": "2023-11-14T22:13:20.000Z", "value": 450.0},
        {"date": "2023-11-15T22:13:20.000Z", "value": 455.5},
    ]


def test_change_range_triggers_fetch_for_new_range(api_mock, config) -> None:
    route = api_mock.get(HISTORY_URL).mock(
        side_effect=by_period({"1mo": (200, MONTH), "12mo": (200, YEAR)})
    )
    config.request_delay_seconds = 0
    config.cache_dir = None

    with TestClient(create_app(config)) as client:
        resp = client.put("/chart/range", json={"range": "1y"})
        assert resp.status_code == 200
        assert resp.json()["range"] == "1Y"
        _wait_for(lambda: len(client.get("/chart").json()["points"]) == 2
                  and client.get("/chart").json()["points"][0]["value"] == 300.0)

    periods = [call.request.url.params["period"] for call in route.calls]
    assert "12mo" in periods


def test_change_range_rejects_unknown_range(api_mock, client) -> None:
    resp = client.put("/chart/range", json={"range": "10Y"})

    assert resp.status_code == 400
    assert "Unsupported range" in resp.json()["error"]


def test_ranges_table(api_mock, client) -> None:
    ranges = client.get("/chart/ranges").json()["ranges"]

    assert {"range": "5Y", "interval": "1mo", "period": "60mo"} in ranges
    assert len(ranges) == 6


def test_refresh_surfaces_upstream_failure(api_mock, client) -> None:
    api_mock.get(HISTORY_URL).mock(return_value=httpx.Response(429))

    resp = client.post("/chart/refresh")

    assert resp.status_code == 502
    assert resp.json() == {"error": "API Error: 429 Too Many Requests", "status": 429}


def test_health_reports_last_error(api_mock, config) -> None:
    api_mock.get(HISTORY_URL).mock(return_value=httpx.Response(503))
    config.request_delay_seconds = 0
    config.cache_dir = None

    with TestClient(create_app(config)) as client:
        _wait_for(lambda: client.get("/health").json().get("last_error"))
        body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["api_key_configured"] is True
    assert body["last_error"] == "API Error: 503 Service Unavailable"


def test_manual_refresh_is_reflected_in_chart(api_mock, config) -> None:
    api_mock.get(HISTORY_URL).mock(return_value=httpx.Response(200, json=MONTH))
    config.request_delay_seconds = 0
    config.cache_dir = None

    with TestClient(create_app(config)) as client:
        _wait_for(lambda: client.get("/chart").json()["points"])
        client.app.state.controller.points = []

        resp = client.post("/chart/refresh")
        body = client.get("/chart").json()

    assert resp.status_code == 200
    assert body["points"] == resp.json()["points"]
    assert len(body["points"]) == 2
