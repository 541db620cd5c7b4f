# blueprints/import_export/routes.py
from __future__ import annotations
from typing import Any, List, Optional, Tuple

from flask import Blueprint, request, jsonify
from pydantic import BaseModel

from errors import InvalidFormError
from . import services
from .services import ImportRow

api_bp = Blueprint("import_export_api", __name__)


class ImportOptions(BaseModel):
    class_id: Optional[int] = None
    academic_period_id: Optional[int] = None


# ---------- helpers ----------

def _options(source: Any) -> ImportOptions:
    # пустые строки из формы считаем «не задано»
    raw = {k: (source.get(k) or None) for k in ("class_id", "academic_period_id")}
    return ImportOptions.model_validate(raw)


def _json_rows() -> Tuple[List[ImportRow], ImportOptions]:
    payload = request.get_json(silent=True)
    if payload is None:
        raise InvalidFormError("request body must be JSON", code="BAD_REQUEST")
    # либо голый массив, либо {"rows": [...], "class_id": .., "academic_period_id": ..}
    if isinstance(payload, dict):
        opts = _options({**request.args.to_dict(), **payload})
        return services.rows_from_json(payload.get("rows")), opts
    return services.rows_from_json(payload), _options(request.args)


def _sheet_rows() -> Tuple[List[ImportRow], ImportOptions]:
    f = request.files.get("file")
    if f is None:
        raise InvalidFormError("file is required", code="BAD_REQUEST")
    header, data = services.read_table(f.filename or "", f.read())
    services.check_header(header)
    return services.rows_from_table(data), _options({**request.args.to_dict(), **request.form.to_dict()})


def _run(rows: List[ImportRow], opts: ImportOptions, commit: bool):
    fn = services.commit_import if commit else services.preview_import
    result = fn(rows, class_id=opts.class_id, period_id=opts.academic_period_id)
    return jsonify({"ok": True, "committed": commit, **result.to_dict()}), 200


# ---------- endpoints ----------

@api_bp.post("/import/json/preview")
def json_preview():
    rows, opts = _json_rows()
    return _run(rows, opts, commit=False)


@api_bp.post("/import/json/commit")
def json_commit():
    rows, opts = _json_rows()
    return _run(rows, opts, commit=True)


@api_bp.post("/import/spreadsheet/preview")
def spreadsheet_preview():
    rows, opts = _sheet_rows()
    return _run(rows, opts, commit=False)


@api_bp.post("/import/spreadsheet/commit")
def spreadsheet_commit():
    rows, opts = _sheet_rows()
    return _run(rows, opts, commit=True)
