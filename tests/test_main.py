import pytest
from fastapi.testclient import TestClient

import catalog
import main


class RecordingLogger:
    def __init__(self):
        self.events = []

    def _record(self, event, **fields):
        self.events.append((event, fields))

    info = warning = exception = _record


@pytest.fixture()
def log(monkeypatch):
    recorder = RecordingLogger()
    monkeypatch.setattr(main, "logger", recorder)
    return recorder


@pytest.fixture()
def lenient_client():
    return TestClient(main.app, raise_server_exceptions=False)


def _handled(log):
    return [fields for event, fields in log.events if event == "Request handled"]


class TestRequestLogging:
    def test_successful_request_is_logged(self, lenient_client, log):
        assert lenient_client.get("/api/products").status_code == 200
        assert _handled(log)[0]["status"] == 200
        assert _handled(log)[0]["path"] == "/api/products"

    def test_unhandled_error_is_logged_as_500(self, lenient_client, log, monkeypatch):
        def broken_paginate(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(catalog, "paginate", broken_paginate)
        response = lenient_client.get("/api/products")

        assert response.status_code == 500
        assert response.json() == {"error": "Something went wrong!"}
        assert [f["status"] for f in _handled(log)] == [500]


class TestEnvelope:
    def test_unknown_route(self, client):
        response = client.get("/api/nowhere")
        assert response.status_code == 404
        assert response.json() == {"error": "Route not found"}

    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["success"] is True
        assert body["database"] == "connected"
