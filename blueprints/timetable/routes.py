# blueprints/timetable/routes.py
from __future__ import annotations
from typing import Any, Dict

from flask import current_app, jsonify, request

from errors import InvalidFormError
from . import api_bp, cell_editor, services
from .cell_editor import CellEditor, CellRow
from .schemas import CellEditIn, CellIn, GenerateIn


def _period_arg():
    return request.args.get("academic_period_id", type=int)


def _editor_payload(editor: CellEditor) -> Dict[str, Any]:
    out = editor.to_dict()
    subgroups = [r.subgroup for r in editor.rows]
    out["candidates"] = [
        {
            "subgroup": sg,
            "teachers": [{"id": t.id, "name": t.name} for t in editor.teacher_candidates(sg)],
            "rooms": [{"id": r.id, "room_number": r.room_number} for r in editor.room_candidates(sg)],
        }
        for sg in subgroups
    ]
    return out


def _rows_from(body: CellIn):
    rows = [CellRow(subject=r.subject, teacher_id=r.teacher_id, room_id=r.room_id, subgroup=r.subgroup)
            for r in body.rows]
    return sorted(rows, key=lambda r: r.subgroup or 0)


# ---------- генерация ----------
@api_bp.post("/timetable/classes/<int:class_id>/generate")
def generate(class_id: int):
    body = GenerateIn.model_validate(request.get_json(silent=True) or {})
    if body.weekdays:
        unknown = [d for d in body.weekdays if d not in current_app.config["TIMETABLE_WEEKDAYS"]]
        if unknown:
            raise InvalidFormError("unknown weekdays", details={"weekdays": unknown})
    result = services.generate_for_class(class_id, body.academic_period_id, weekdays=body.weekdays)
    return jsonify({"ok": True, **result.to_dict()}), 200


# ---------- чтение ----------
@api_bp.get("/timetable/classes/<int:class_id>")
def class_grid(class_id: int):
    return jsonify(services.class_grid(class_id, _period_arg())), 200


@api_bp.get("/timetable/daily/<day>")
def daily_grid(day: str):
    if day not in current_app.config["DAILY_GRID_WEEKDAYS"]:
        raise InvalidFormError("unknown weekday", details={"day": day})
    data = services.daily_grid(
        day, _period_arg(),
        teacher_id=request.args.get("teacher_id", type=int),
        room_id=request.args.get("room_id", type=int),
    )
    return jsonify(data), 200


@api_bp.get("/timetable/conflicts")
def conflicts():
    return jsonify(services.period_conflicts(_period_arg())), 200


# ---------- клетка ----------
@api_bp.get("/timetable/classes/<int:class_id>/cells/<day>/<int:lesson_id>")
def cell_get(class_id: int, day: str, lesson_id: int):
    editor = cell_editor.open_cell(class_id, day, lesson_id, _period_arg(),
                                   current_app.config["TIMETABLE_WEEKDAYS"])
    return jsonify(_editor_payload(editor)), 200


@api_bp.post("/timetable/classes/<int:class_id>/cells/<day>/<int:lesson_id>/edit")
def cell_edit(class_id: int, day: str, lesson_id: int):
    """Один шаг формы: split/merge или смена поля с зависимыми сбросами. В БД не пишет."""
    body = CellEditIn.model_validate(request.get_json(silent=True) or {})
    editor = cell_editor.open_cell(class_id, day, lesson_id, body.academic_period_id,
                                   current_app.config["TIMETABLE_WEEKDAYS"],
                                   rows=_rows_from(body) if body.rows else None)
    if body.action == "split":
        editor.split()
    elif body.action == "merge":
        editor.merge()
    elif body.action == "set_subject":
        editor.set_subject(body.subgroup, body.subject or "")
    elif body.action == "set_teacher":
        editor.set_teacher(body.subgroup, body.teacher_id)
    else:
        editor.set_room(body.subgroup, body.room_id)
    return jsonify(_editor_payload(editor)), 200


@api_bp.put("/timetable/classes/<int:class_id>/cells/<day>/<int:lesson_id>")
def cell_save(class_id: int, day: str, lesson_id: int):
    body = CellIn.model_validate(request.get_json(silent=True) or {})
    editor = cell_editor.open_cell(class_id, day, lesson_id, body.academic_period_id,
                                   current_app.config["TIMETABLE_WEEKDAYS"], rows=_rows_from(body))
    drafts = cell_editor.save_cell(editor)
    return jsonify({"ok": True, "time_slots": [d.to_dict() for d in drafts]}), 200


@api_bp.delete("/timetable/classes/<int:class_id>/cells/<day>/<int:lesson_id>")
def cell_delete(class_id: int, day: str, lesson_id: int):
    cell_editor.clear_cell(class_id, day, lesson_id, _period_arg())
    return "", 204


# ---------- синхронизация учебного плана ----------
@api_bp.get("/timetable/syllabus-sync")
def syllabus_sync_preview():
    return jsonify({"items": services.syllabus_sync_preview()}), 200


@api_bp.post("/timetable/syllabus-sync")
def syllabus_sync_commit():
    return jsonify({"ok": True, "inserted": services.syllabus_sync_commit()}), 200
