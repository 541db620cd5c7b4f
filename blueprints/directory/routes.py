from __future__ import annotations
import logging
from typing import Any, Dict, List

from flask import (
    abort,
    jsonify,
    request,
    url_for,
)
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query

from . import bp
from .schemas import (
    AcademicPeriodIn, AcademicPeriodOut,
    ClassIn, ClassOut,
    LessonIn, LessonOut,
    RoomIn, RoomOut,
    SubjectIn, SubjectOut,
    SubjectTeacherIn, SubjectTeacherOut,
    SyllabusIn, SyllabusOut,
    TeacherIn, TeacherOut,
)
from errors import InvalidFormError, ReferenceResolutionError
from extensions import db
from models import (
    AcademicPeriod,
    Lesson,
    Room,
    SchoolClass,
    Subject,
    SubjectTeacher,
    Syllabus,
    Teacher,
    TimeSlot,
)

log = logging.getLogger(__name__)

# ----------------------- Helpers -----------------------
def ok(data: Any, status: int = 200):
    return jsonify(data), status

def created(location: str, data: Any):
    resp = jsonify(data)
    resp.status_code = 201
    resp.headers["Location"] = location
    return resp

def _list_args():
    q = request.args.get("q", "")
    page = max(1, request.args.get("page", 1, type=int))
    per_page = min(100, max(1, request.args.get("per_page", 20, type=int)))
    return q, page, per_page

def _paginate(query: Query, serializer, *, page: int, per_page: int, endpoint_fields: List):
    total = query.count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    items = [
        serializer.model_validate(_row_to_dict(r, endpoint_fields)).model_dump(mode="json")
        for r in rows
    ]
    return {"items": items, "meta": {"page": page, "per_page": per_page, "total": total}}

def _row_to_dict(row, fields: List[str]) -> Dict[str, Any]:
    out = {}
    for f in fields:
        if f == "room_ids":
            out[f] = [r.id for r in row.rooms]
            continue
        out[f] = getattr(row, f)
    return out

def _search_filter(model, q: str):
    # Поля для поиска
    fields_map = {
        SchoolClass: [SchoolClass.name, SchoolClass.literal],
        Teacher: [Teacher.name],
        Subject: [Subject.name],
        Room: [Room.room_number],
        AcademicPeriod: [AcademicPeriod.name],
    }
    cols = fields_map.get(model, [])
    t = str(q).strip()
    conds = [col.like(f"%{t}%") for col in cols]
    return or_(*conds) if conds else None

def _commit():
    """commit; при нарушении уникальности -> 409 (через обработчик в app)."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise

def _require(model, id_: int | None, field: str):
    if id_ is None:
        return None
    obj = db.session.get(model, id_)
    if obj is None:
        raise ReferenceResolutionError(f"unknown {field}", details={"field": field, "value": id_})
    return obj

def _get_or_404(model, id_: int):
    return db.session.get(model, id_) or abort(404)

def _dump(schema, row, fields):
    return schema.model_validate(_row_to_dict(row, fields)).model_dump(mode="json")

# ---- Classes ----
CLASS_FIELDS = ["id", "name", "grade", "literal", "room_id", "supervisor_teacher_id"]

def _apply_class(c: SchoolClass, parsed: ClassIn):
    _require(Room, parsed.room_id, "room_id")
    _require(Teacher, parsed.supervisor_teacher_id, "supervisor_teacher_id")
    c.grade = parsed.grade
    c.literal = parsed.literal.strip()
    c.name = (parsed.name or "").strip() or f"{parsed.grade}{c.literal}"
    c.room_id = parsed.room_id
    c.supervisor_teacher_id = parsed.supervisor_teacher_id

@bp.get("/api/classes")
def api_classes_list():
    q, page, per_page = _list_args()
    s = db.session.query(SchoolClass)
    if q:
        cond = _search_filter(SchoolClass, q)
        if cond is not None: s = s.filter(cond)
    s = s.order_by(SchoolClass.grade.asc(), SchoolClass.literal.asc())
    return ok(_paginate(s, ClassOut, page=page, per_page=per_page, endpoint_fields=CLASS_FIELDS))

@bp.post("/api/classes")
def api_classes_create():
    parsed = ClassIn.model_validate(request.get_json(silent=True) or {})
    c = SchoolClass()
    _apply_class(c, parsed)
    db.session.add(c)
    _commit()
    return created(url_for("directory.api_classes_get", id=c.id), _dump(ClassOut, c, CLASS_FIELDS))

@bp.get("/api/classes/<int:id>")
def api_classes_get(id: int):
    return ok(_dump(ClassOut, _get_or_404(SchoolClass, id), CLASS_FIELDS))

@bp.put("/api/classes/<int:id>")
def api_classes_update(id: int):
    parsed = ClassIn.model_validate(request.get_json(silent=True) or {})
    c = _get_or_404(SchoolClass, id)
    _apply_class(c, parsed)
    _commit()
    return ok({"ok": True})

@bp.delete("/api/classes/<int:id>")
def api_classes_delete(id: int):
    c = _get_or_404(SchoolClass, id)
    # зависимые строки удаляем явно, не полагаясь на ON DELETE в БД
    TimeSlot.query.filter_by(class_id=id).delete(synchronize_session=False)
    Syllabus.query.filter_by(class_id=id).delete(synchronize_session=False)
    SubjectTeacher.query.filter_by(class_id=id).delete(synchronize_session=False)
    db.session.delete(c)
    _commit()
    return "", 204

# ---- Subjects ----
SUBJECT_FIELDS = ["id", "name", "is_subgroup", "is_extracurricular"]

@bp.get("/api/subjects")
def api_subjects_list():
    q, page, per_page = _list_args()
    s = db.session.query(Subject)
    if q:
        cond = _search_filter(Subject, q)
        if cond is not None: s = s.filter(cond)
    s = s.order_by(Subject.name.asc())
    return ok(_paginate(s, SubjectOut, page=page, per_page=per_page, endpoint_fields=SUBJECT_FIELDS))

@bp.post("/api/subjects")
def api_subjects_create():
    parsed = SubjectIn.model_validate(request.get_json(silent=True) or {})
    s = Subject(name=parsed.name.strip(), is_subgroup=parsed.is_subgroup,
                is_extracurricular=parsed.is_extracurricular)
    db.session.add(s)
    _commit()
    return created(url_for("directory.api_subjects_get", id=s.id), _dump(SubjectOut, s, SUBJECT_FIELDS))

@bp.get("/api/subjects/<int:id>")
def api_subjects_get(id: int):
    return ok(_dump(SubjectOut, _get_or_404(Subject, id), SUBJECT_FIELDS))

@bp.put("/api/subjects/<int:id>")
def api_subjects_update(id: int):
    parsed = SubjectIn.model_validate(request.get_json(silent=True) or {})
    s = _get_or_404(Subject, id)
    s.name = parsed.name.strip()
    s.is_subgroup = parsed.is_subgroup
    s.is_extracurricular = parsed.is_extracurricular
    _commit()
    return ok({"ok": True})

@bp.delete("/api/subjects/<int:id>")
def api_subjects_delete(id: int):
    db.session.delete(_get_or_404(Subject, id))
    _commit()
    return "", 204

# ---- Teachers ----
TEACHER_FIELDS = ["id", "name", "subjects", "supervised_classes", "work_days", "is_part_time", "room_ids"]

def _apply_teacher(t: Teacher, parsed: TeacherIn):
    rooms = [_require(Room, rid, "room_ids") for rid in dict.fromkeys(parsed.room_ids)]
    t.name = parsed.name.strip()
    t.subjects = list(parsed.subjects)
    t.supervised_classes = list(parsed.supervised_classes)
    t.work_days = list(parsed.work_days)
    t.is_part_time = parsed.is_part_time
    t.rooms = rooms

@bp.get("/api/teachers")
def api_teachers_list():
    q, page, per_page = _list_args()
    s = db.session.query(Teacher)
    if q:
        cond = _search_filter(Teacher, q)
        if cond is not None: s = s.filter(cond)
    # ?subject=Math: только те, кто ведёт предмет (JSON-список, фильтруем в памяти)
    subject = request.args.get("subject")
    s = s.order_by(Teacher.name.asc())
    if subject:
        rows = [t for t in s.all() if subject in (t.subjects or [])]
        items = [_dump(TeacherOut, t, TEACHER_FIELDS) for t in rows]
        return ok({"items": items, "meta": {"page": 1, "per_page": len(items), "total": len(items)}})
    return ok(_paginate(s, TeacherOut, page=page, per_page=per_page, endpoint_fields=TEACHER_FIELDS))

@bp.post("/api/teachers")
def api_teachers_create():
    parsed = TeacherIn.model_validate(request.get_json(silent=True) or {})
    t = Teacher()
    _apply_teacher(t, parsed)
    db.session.add(t)
    _commit()
    return created(url_for("directory.api_teachers_get", id=t.id), _dump(TeacherOut, t, TEACHER_FIELDS))

@bp.get("/api/teachers/<int:id>")
def api_teachers_get(id: int):
    return ok(_dump(TeacherOut, _get_or_404(Teacher, id), TEACHER_FIELDS))

@bp.put("/api/teachers/<int:id>")
def api_teachers_update(id: int):
    parsed = TeacherIn.model_validate(request.get_json(silent=True) or {})
    t = _get_or_404(Teacher, id)
    _apply_teacher(t, parsed)
    _commit()
    return ok({"ok": True})

@bp.delete("/api/teachers/<int:id>")
def api_teachers_delete(id: int):
    db.session.delete(_get_or_404(Teacher, id))
    _commit()
    return "", 204

# ---- Rooms ----
ROOM_FIELDS = ["id", "room_number", "subject_id"]

@bp.get("/api/rooms")
def api_rooms_list():
    q, page, per_page = _list_args()
    s = db.session.query(Room)
    if q:
        cond = _search_filter(Room, q)
        if cond is not None: s = s.filter(cond)
    s = s.order_by(Room.room_number.asc())
    return ok(_paginate(s, RoomOut, page=page, per_page=per_page, endpoint_fields=ROOM_FIELDS))

@bp.post("/api/rooms")
def api_rooms_create():
    parsed = RoomIn.model_validate(request.get_json(silent=True) or {})
    _require(Subject, parsed.subject_id, "subject_id")
    r = Room(room_number=parsed.room_number.strip(), subject_id=parsed.subject_id)
    db.session.add(r)
    _commit()
    return created(url_for("directory.api_rooms_get", id=r.id), _dump(RoomOut, r, ROOM_FIELDS))

@bp.get("/api/rooms/<int:id>")
def api_rooms_get(id: int):
    return ok(_dump(RoomOut, _get_or_404(Room, id), ROOM_FIELDS))

@bp.put("/api/rooms/<int:id>")
def api_rooms_update(id: int):
    parsed = RoomIn.model_validate(request.get_json(silent=True) or {})
    r = _get_or_404(Room, id)
    _require(Subject, parsed.subject_id, "subject_id")
    r.room_number = parsed.room_number.strip()
    r.subject_id = parsed.subject_id
    _commit()
    return ok({"ok": True})

@bp.delete("/api/rooms/<int:id>")
def api_rooms_delete(id: int):
    db.session.delete(_get_or_404(Room, id))
    _commit()
    return "", 204

# ---- Lessons ----
LESSON_FIELDS = ["id", "lesson_number", "start_time", "end_time"]

@bp.get("/api/lessons")
def api_lessons_list():
    _, page, per_page = _list_args()
    s = db.session.query(Lesson).order_by(Lesson.lesson_number.asc())
    return ok(_paginate(s, LessonOut, page=page, per_page=per_page, endpoint_fields=LESSON_FIELDS))

@bp.post("/api/lessons")
def api_lessons_create():
    parsed = LessonIn.model_validate(request.get_json(silent=True) or {})
    ls = Lesson(lesson_number=parsed.lesson_number, start_time=parsed.start_time, end_time=parsed.end_time)
    db.session.add(ls)
    _commit()
    return created(url_for("directory.api_lessons_get", id=ls.id), _dump(LessonOut, ls, LESSON_FIELDS))

@bp.get("/api/lessons/<int:id>")
def api_lessons_get(id: int):
    return ok(_dump(LessonOut, _get_or_404(Lesson, id), LESSON_FIELDS))

@bp.put("/api/lessons/<int:id>")
def api_lessons_update(id: int):
    parsed = LessonIn.model_validate(request.get_json(silent=True) or {})
    ls = _get_or_404(Lesson, id)
    ls.lesson_number = parsed.lesson_number
    ls.start_time = parsed.start_time
    ls.end_time = parsed.end_time
    _commit()
    return ok({"ok": True})

@bp.delete("/api/lessons/<int:id>")
def api_lessons_delete(id: int):
    ls = _get_or_404(Lesson, id)
    TimeSlot.query.filter_by(lesson_id=id).delete(synchronize_session=False)
    db.session.delete(ls)
    _commit()
    return "", 204

# ---- Academic periods ----
PERIOD_FIELDS = ["id", "name", "start_date", "end_date", "is_active"]

def _apply_period(p: AcademicPeriod, parsed: AcademicPeriodIn):
    p.name = parsed.name.strip()
    p.start_date = parsed.start_date
    p.end_date = parsed.end_date
    p.is_active = parsed.is_active
    if parsed.is_active:
        # активный период только один
        q = AcademicPeriod.query.filter(AcademicPeriod.is_active.is_(True))
        if p.id is not None:
            q = q.filter(AcademicPeriod.id != p.id)
        q.update({AcademicPeriod.is_active: False}, synchronize_session=False)

@bp.get("/api/academic-periods")
def api_periods_list():
    q, page, per_page = _list_args()
    s = db.session.query(AcademicPeriod)
    if q:
        cond = _search_filter(AcademicPeriod, q)
        if cond is not None: s = s.filter(cond)
    s = s.order_by(AcademicPeriod.start_date.desc())
    return ok(_paginate(s, AcademicPeriodOut, page=page, per_page=per_page, endpoint_fields=PERIOD_FIELDS))

@bp.post("/api/academic-periods")
def api_periods_create():
    parsed = AcademicPeriodIn.model_validate(request.get_json(silent=True) or {})
    p = AcademicPeriod()
    _apply_period(p, parsed)
    db.session.add(p)
    _commit()
    return created(url_for("directory.api_periods_get", id=p.id), _dump(AcademicPeriodOut, p, PERIOD_FIELDS))

@bp.get("/api/academic-periods/<int:id>")
def api_periods_get(id: int):
    return ok(_dump(AcademicPeriodOut, _get_or_404(AcademicPeriod, id), PERIOD_FIELDS))

@bp.put("/api/academic-periods/<int:id>")
def api_periods_update(id: int):
    parsed = AcademicPeriodIn.model_validate(request.get_json(silent=True) or {})
    p = _get_or_404(AcademicPeriod, id)
    _apply_period(p, parsed)
    _commit()
    return ok({"ok": True})

@bp.delete("/api/academic-periods/<int:id>")
def api_periods_delete(id: int):
    p = _get_or_404(AcademicPeriod, id)
    # сетка периода уходит вместе с ним
    TimeSlot.query.filter_by(academic_period_id=id).delete(synchronize_session=False)
    db.session.delete(p)
    _commit()
    return "", 204

# ---- Syllabus ----
SYLLABUS_FIELDS = ["id", "class_id", "subject_id", "teacher_id", "hours_per_week"]

def _check_tuple(parsed):
    _require(SchoolClass, parsed.class_id, "class_id")
    _require(Subject, parsed.subject_id, "subject_id")
    _require(Teacher, parsed.teacher_id, "teacher_id")

@bp.get("/api/syllabus")
def api_syllabus_list():
    _, page, per_page = _list_args()
    s = db.session.query(Syllabus)
    class_id = request.args.get("class_id", type=int)
    if class_id:
        s = s.filter(Syllabus.class_id == class_id)
    s = s.order_by(Syllabus.class_id.asc(), Syllabus.id.asc())
    return ok(_paginate(s, SyllabusOut, page=page, per_page=per_page, endpoint_fields=SYLLABUS_FIELDS))

@bp.post("/api/syllabus")
def api_syllabus_create():
    parsed = SyllabusIn.model_validate(request.get_json(silent=True) or {})
    _check_tuple(parsed)
    row = Syllabus(class_id=parsed.class_id, subject_id=parsed.subject_id, teacher_id=parsed.teacher_id,
                   hours_per_week=parsed.hours_per_week)
    db.session.add(row)
    _commit()
    return created(url_for("directory.api_syllabus_get", id=row.id), _dump(SyllabusOut, row, SYLLABUS_FIELDS))

@bp.post("/api/syllabus/import")
def api_syllabus_import():
    """Массовая загрузка плана: JSON-массив строк, всё или ничего."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, list):
        raise InvalidFormError("syllabus import expects a JSON array", code="BAD_TEMPLATE")
    parsed = [SyllabusIn.model_validate(item) for item in payload]
    for p in parsed:
        _check_tuple(p)
    rows = [Syllabus(class_id=p.class_id, subject_id=p.subject_id, teacher_id=p.teacher_id,
                     hours_per_week=p.hours_per_week) for p in parsed]
    db.session.add_all(rows)
    _commit()
    log.info("syllabus imported", extra={"event": "syllabus_imported", "inserted": len(rows)})
    return ok({"ok": True, "inserted": len(rows),
               "items": [_dump(SyllabusOut, r, SYLLABUS_FIELDS) for r in rows]}, 201)

@bp.get("/api/syllabus/<int:id>")
def api_syllabus_get(id: int):
    return ok(_dump(SyllabusOut, _get_or_404(Syllabus, id), SYLLABUS_FIELDS))

@bp.put("/api/syllabus/<int:id>")
def api_syllabus_update(id: int):
    parsed = SyllabusIn.model_validate(request.get_json(silent=True) or {})
    row = _get_or_404(Syllabus, id)
    _check_tuple(parsed)
    row.class_id = parsed.class_id
    row.subject_id = parsed.subject_id
    row.teacher_id = parsed.teacher_id
    row.hours_per_week = parsed.hours_per_week
    _commit()
    return ok({"ok": True})

@bp.delete("/api/syllabus/<int:id>")
def api_syllabus_delete(id: int):
    db.session.delete(_get_or_404(Syllabus, id))
    _commit()
    return "", 204

# ---- Subject teachers ----
SUBJECT_TEACHER_FIELDS = ["id", "class_id", "subject_id", "teacher_id"]

@bp.get("/api/subject-teachers")
def api_subject_teachers_list():
    _, page, per_page = _list_args()
    s = db.session.query(SubjectTeacher)
    class_id = request.args.get("class_id", type=int)
    if class_id:
        s = s.filter(SubjectTeacher.class_id == class_id)
    s = s.order_by(SubjectTeacher.class_id.asc(), SubjectTeacher.id.asc())
    return ok(_paginate(s, SubjectTeacherOut, page=page, per_page=per_page,
                        endpoint_fields=SUBJECT_TEACHER_FIELDS))

@bp.post("/api/subject-teachers")
def api_subject_teachers_create():
    parsed = SubjectTeacherIn.model_validate(request.get_json(silent=True) or {})
    _check_tuple(parsed)
    row = SubjectTeacher(class_id=parsed.class_id, subject_id=parsed.subject_id, teacher_id=parsed.teacher_id)
    db.session.add(row)
    _commit()
    return created(url_for("directory.api_subject_teachers_get", id=row.id),
                   _dump(SubjectTeacherOut, row, SUBJECT_TEACHER_FIELDS))

@bp.get("/api/subject-teachers/<int:id>")
def api_subject_teachers_get(id: int):
    return ok(_dump(SubjectTeacherOut, _get_or_404(SubjectTeacher, id), SUBJECT_TEACHER_FIELDS))

@bp.put("/api/subject-teachers/<int:id>")
def api_subject_teachers_update(id: int):
    parsed = SubjectTeacherIn.model_validate(request.get_json(silent=True) or {})
    row = _get_or_404(SubjectTeacher, id)
    _check_tuple(parsed)
    row.class_id = parsed.class_id
    row.subject_id = parsed.subject_id
    row.teacher_id = parsed.teacher_id
    _commit()
    return ok({"ok": True})

@bp.delete("/api/subject-teachers/<int:id>")
def api_subject_teachers_delete(id: int):
    db.session.delete(_get_or_404(SubjectTeacher, id))
    _commit()
    return "", 204
