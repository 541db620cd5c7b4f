from __future__ import annotations
import json, logging
from datetime import datetime
from uuid import uuid4

from flask import g, jsonify, request
from werkzeug.wrappers.response import Response

from . import bp                 # используем bp из __init__.py

# поля из extra=..., которые попадают в JSON-строку лога
LOG_FIELDS = (
    "event", "path", "method", "status", "duration_ms", "request_id",
    "class_id", "academic_period_id", "inserted", "deleted", "empty_cells", "skipped",
    "row", "reason", "room", "attempt", "fn", "count", "scopes", "subject", "dropped", "code",
)

class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in LOG_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        return json.dumps(payload, ensure_ascii=False, default=str)

def _setup_structured_logging(app):
    root = logging.getLogger()
    has_json = any(
        isinstance(h, logging.StreamHandler)
        and isinstance(getattr(h, "formatter", None), JSONFormatter)
        for h in root.handlers
    )
    if not has_json:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.setLevel(app.config.get("LOG_LEVEL", logging.INFO))

@bp.before_app_request
def _start_timer():
    g._req_start = datetime.utcnow()
    g.request_id = request.headers.get("X-Request-Id") or uuid4().hex

@bp.after_app_request
def _log_request(response: Response):
    start = getattr(g, "_req_start", None)
    duration_ms = int((datetime.utcnow() - start).total_seconds() * 1000) if start else None
    extra = {
        "event":"http_request",
        "path":request.path,
        "method":request.method,
        "status":response.status_code,
        "duration_ms":duration_ms,
        "request_id":getattr(g, "request_id", None),
    }
    response.headers["X-Request-Id"] = extra["request_id"] or ""
    # логгер уже настроен в _on_register
    logging.getLogger(__name__).info("request handled", extra=extra)
    return response

@bp.record_once
def _on_register(state):
    _setup_structured_logging(state.app)

@bp.get("/health")
def health():
    return jsonify({
        "status":"ok",
        "ts": datetime.utcnow().isoformat(timespec="seconds")+"Z",
        "request_id": getattr(g, "request_id", None),
    })
