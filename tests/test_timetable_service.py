from __future__ import annotations
import pytest
from sqlalchemy.exc import OperationalError

from app import create_app
from errors import NoObligationsError, TransientFetchError, WriteError
from extensions import db
from models import Lesson, Room, SchoolClass, Subject, SubjectTeacher, Syllabus, Teacher, TimeSlot
from seed import seed_demo
from blueprints.timetable import services as svc
from blueprints.timetable import store
from blueprints.timetable.engine import SlotDraft


@pytest.fixture()
def app_ctx():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        ids = seed_demo()
        app.config["DEMO"] = ids
        yield app
        db.session.remove()
        db.drop_all()


def _ids(app):
    return app.config["DEMO"]["class_id"], app.config["DEMO"]["academic_period_id"]


def _teacher(name):
    return Teacher.query.filter_by(name=name).one()


def _new_class(name="10B", grade=10, literal="B"):
    c = SchoolClass(name=name, grade=grade, literal=literal)
    db.session.add(c)
    db.session.commit()
    return c


def _scope_count(class_id, period_id):
    return TimeSlot.query.filter_by(class_id=class_id, academic_period_id=period_id).count()


def test_generate_api_fills_week(app_ctx):
    cid, pid = _ids(app_ctx)
    client = app_ctx.test_client()
    r = client.post(f"/api/v1/timetable/classes/{cid}/generate", json={})
    assert r.status_code == 200
    js = r.get_json()
    assert js["ok"] is True and js["inserted"] == 30 and js["empty_cells"] == 0

    rows = TimeSlot.query.filter_by(class_id=cid, academic_period_id=pid).all()
    assert len(rows) == 30
    assert {r.teacher.name for r in rows} <= {"TeacherA", "TeacherB"}
    assert {r.room.room_number for r in rows} <= {"101", "102"}


def test_regeneration_replaces_scope(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    # метка в той же области: после перегенерации её быть не должно
    lesson = Lesson.query.filter_by(lesson_number=6).one()
    db.session.add(TimeSlot(class_id=cid, academic_period_id=pid, day="Friday", lesson_id=lesson.id,
                            subject="Marker", teacher_id=_teacher("TeacherA").id,
                            room_id=Room.query.filter_by(room_number="101").one().id, subgroup=1))
    db.session.commit()
    assert _scope_count(cid, pid) == 31

    svc.generate_for_class(cid, pid)
    rows = store.scope_rows(cid, pid)
    assert len(rows) == 30
    assert "Marker" not in {r.subject for r in rows}


def test_no_obligations_keeps_existing_rows(app_ctx):
    _, pid = _ids(app_ctx)
    c = _new_class()
    lesson = Lesson.query.filter_by(lesson_number=1).one()
    db.session.add(TimeSlot(class_id=c.id, academic_period_id=pid, day="Monday", lesson_id=lesson.id,
                            subject="Math", teacher_id=_teacher("TeacherA").id,
                            room_id=Room.query.filter_by(room_number="101").one().id))
    db.session.commit()

    with pytest.raises(NoObligationsError):
        svc.generate_for_class(c.id, pid)
    assert _scope_count(c.id, pid) == 1

    r = app_ctx.test_client().post(f"/api/v1/timetable/classes/{c.id}/generate", json={})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "NO_OBLIGATIONS"


def test_subject_teachers_fallback(app_ctx):
    _, pid = _ids(app_ctx)
    c = _new_class()
    science = Subject.query.filter_by(name="Science").one()
    db.session.add(SubjectTeacher(class_id=c.id, subject_id=science.id, teacher_id=_teacher("TeacherB").id))
    db.session.commit()

    result = svc.generate_for_class(c.id, pid)
    assert len(result.drafts) == 30
    assert {d.subject for d in result.drafts} == {"Science"}


def test_second_class_avoids_booked_teachers_and_rooms(app_ctx):
    cid, pid = _ids(app_ctx)
    c = _new_class()
    math = Subject.query.filter_by(name="Math").one()
    science = Subject.query.filter_by(name="Science").one()
    db.session.add_all([
        Syllabus(class_id=c.id, subject_id=math.id, teacher_id=_teacher("TeacherA").id, hours_per_week=4),
        Syllabus(class_id=c.id, subject_id=science.id, teacher_id=_teacher("TeacherB").id, hours_per_week=3),
    ])
    db.session.commit()

    svc.generate_for_class(cid, pid)
    second = svc.generate_for_class(c.id, pid)
    assert {d.teacher_id for d in second.drafts} == {_teacher("TeacherB").id}

    r = app_ctx.test_client().get(f"/api/v1/timetable/conflicts?academic_period_id={pid}")
    assert r.status_code == 200
    assert r.get_json()["conflicts"] == []


def test_failed_insert_keeps_previous_schedule(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    lesson = Lesson.query.first()
    bad = SlotDraft(day="Monday", lesson_id=lesson.id, subject="Math", teacher_id=_teacher("TeacherA").id,
                    room_id=Room.query.first().id, class_id=cid, academic_period_id=pid, subgroup=3)
    with pytest.raises(WriteError):
        store.replace_scope([(cid, pid)], [bad])
    assert _scope_count(cid, pid) == 30


def test_retry_gives_up_after_configured_attempts(app_ctx):
    app_ctx.config["FETCH_RETRY_ATTEMPTS"] = 3
    calls = []

    @store.with_retry
    def flaky():
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    with pytest.raises(TransientFetchError):
        flaky()
    assert len(calls) == 3


def test_retry_recovers_on_second_attempt(app_ctx):
    calls = []

    @store.with_retry
    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("SELECT 1", {}, Exception("busy"))
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 2


def test_class_grid_shape(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    r = app_ctx.test_client().get(f"/api/v1/timetable/classes/{cid}")
    assert r.status_code == 200
    js = r.get_json()
    assert js["class"]["name"] == "10A"
    assert [d["day"] for d in js["days"]] == ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
    cells = js["days"][0]["cells"]
    assert [c["lesson_number"] for c in cells] == [1, 2, 3, 4, 5, 6]
    assert cells[0]["start_time"] == "08:30"
    assert all(len(c["rows"]) == 1 and not c["is_split"] for c in cells)


def test_daily_grid_filters(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    client = app_ctx.test_client()

    r = client.get("/api/v1/timetable/daily/Monday")
    assert r.status_code == 200
    items = r.get_json()["items"]
    assert [i["lesson_number"] for i in items] == [1, 2, 3, 4, 5, 6]

    tb = _teacher("TeacherB").id
    r = client.get(f"/api/v1/timetable/daily/Monday?teacher_id={tb}")
    assert r.get_json()["items"] == []

    assert client.get("/api/v1/timetable/daily/Saturday").status_code == 200
    r = client.get("/api/v1/timetable/daily/Funday")
    assert r.status_code == 422


def test_generate_rejects_unknown_weekday(app_ctx):
    cid, _ = _ids(app_ctx)
    r = app_ctx.test_client().post(f"/api/v1/timetable/classes/{cid}/generate", json={"weekdays": ["Someday"]})
    assert r.status_code == 422
    assert _scope_count(*_ids(app_ctx)) == 0


def test_generate_unknown_class_is_404(app_ctx):
    r = app_ctx.test_client().post("/api/v1/timetable/classes/999/generate", json={})
    assert r.status_code == 404
    assert r.get_json()["errors"][0]["code"] == "NOT_FOUND"


def test_syllabus_sync_inserts_missing_pairs(app_ctx):
    cid, pid = _ids(app_ctx)
    teacher_c = Teacher(name="TeacherC", subjects=["Math"], supervised_classes=[], work_days=[])
    db.session.add(teacher_c)
    db.session.commit()
    lesson = Lesson.query.filter_by(lesson_number=1).one()
    db.session.add(TimeSlot(class_id=cid, academic_period_id=pid, day="Monday", lesson_id=lesson.id,
                            subject="Math", teacher_id=teacher_c.id,
                            room_id=Room.query.filter_by(room_number="101").one().id))
    db.session.commit()

    client = app_ctx.test_client()
    items = client.get("/api/v1/timetable/syllabus-sync").get_json()["items"]
    assert [(i["teacher_name"], i["existing"]) for i in items] == [("TeacherC", False)]

    r = client.post("/api/v1/timetable/syllabus-sync")
    assert r.get_json()["inserted"] == 1
    row = Syllabus.query.filter_by(class_id=cid, teacher_id=teacher_c.id).one()
    assert row.hours_per_week == 0
    assert client.post("/api/v1/timetable/syllabus-sync").get_json()["inserted"] == 0


def test_period_delete_removes_its_time_slots(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    client = app_ctx.test_client()
    assert client.delete(f"/directory/api/academic-periods/{pid}").status_code == 204
    assert TimeSlot.query.count() == 0


def test_class_delete_removes_slots_and_sync_still_works(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    client = app_ctx.test_client()
    assert client.delete(f"/directory/api/classes/{cid}").status_code == 204
    assert TimeSlot.query.filter_by(class_id=cid).count() == 0
    assert Syllabus.query.filter_by(class_id=cid).count() == 0

    r = client.get("/api/v1/timetable/syllabus-sync")
    assert r.status_code == 200
    assert r.get_json()["items"] == []


def test_lesson_delete_removes_its_cells(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    lesson = Lesson.query.filter_by(lesson_number=1).one()
    lesson_id = lesson.id
    client = app_ctx.test_client()
    assert client.delete(f"/directory/api/lessons/{lesson_id}").status_code == 204
    assert TimeSlot.query.filter_by(lesson_id=lesson_id).count() == 0
    assert _scope_count(cid, pid) == 25


def test_teacher_with_scheduled_lessons_cannot_be_deleted(app_ctx):
    cid, pid = _ids(app_ctx)
    svc.generate_for_class(cid, pid)
    teacher_id = _teacher("TeacherA").id
    r = app_ctx.test_client().delete(f"/directory/api/teachers/{teacher_id}")
    assert r.status_code == 409
    assert r.get_json()["errors"][0]["code"] == "FK_CONSTRAINT"
    assert _scope_count(cid, pid) == 30


def test_generate_rejects_weekend_days(app_ctx):
    cid, _ = _ids(app_ctx)
    r = app_ctx.test_client().post(f"/api/v1/timetable/classes/{cid}/generate",
                                   json={"weekdays": ["Monday", "Saturday"]})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["details"] == {"weekdays": ["Saturday"]}
    assert _scope_count(*_ids(app_ctx)) == 0
