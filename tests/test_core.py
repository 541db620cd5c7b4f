from __future__ import annotations
import json
import logging

from app import create_app
from blueprints.core.routes import JSONFormatter

def test_health_ok():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health")
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["status"] == "ok"
        # request_id отдаём и в JSON, и в заголовке
        assert data["request_id"] == rv.headers["X-Request-Id"]

def test_request_id_is_propagated():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health", headers={"X-Request-Id": "abc123"})
        assert rv.headers["X-Request-Id"] == "abc123"
        assert rv.get_json()["request_id"] == "abc123"

def test_unknown_route_is_json_error():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/no/such/route")
        assert rv.status_code == 404
        js = rv.get_json()
        assert js["ok"] is False
        assert js["errors"][0]["code"] == "NOT_FOUND"

def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("timetable", logging.INFO, __file__, 1, "timetable generated", None, None)
    record.event = "timetable_generated"
    record.inserted = 30
    line = json.loads(JSONFormatter().format(record))
    assert line["msg"] == "timetable generated"
    assert line["event"] == "timetable_generated"
    assert line["inserted"] == 30
    assert line["level"] == "INFO"
