from __future__ import annotations
from types import SimpleNamespace

import pytest

from app import create_app
from errors import InvalidFormError
from extensions import db
from models import Lesson, Room, SchoolClass, Teacher, TimeSlot
from seed import seed_demo
from blueprints.timetable.cell_editor import SINGLE, SPLIT, CellEditor, CellRow

# ---------- состояние редактора без БД ----------

R101 = SimpleNamespace(id=1, room_number="101")
R102 = SimpleNamespace(id=2, room_number="102")
R103 = SimpleNamespace(id=3, room_number="103")
T_MATH = SimpleNamespace(id=10, name="Ann", subjects=["Math"], rooms=[R101])
T_SCI = SimpleNamespace(id=11, name="Bob", subjects=["Science"], rooms=[])
T_BOTH = SimpleNamespace(id=12, name="Cid", subjects=["Math", "Science"], rooms=[R102, R103])


def _editor(rows=()):
    return CellEditor(class_id=1, period_id=1, day="Monday", lesson_id=5, rows=rows,
                      teachers=[T_MATH, T_SCI, T_BOTH], rooms=[R101, R102, R103])


def test_split_keeps_first_row_and_adds_empty_second():
    ed = _editor([CellRow("Math", 10, 1)])
    assert ed.state == SINGLE
    ed.split()
    assert ed.state == SPLIT
    first, second = ed.rows
    assert (first.subject, first.teacher_id, first.room_id, first.subgroup) == ("Math", 10, 1, 1)
    assert (second.subject, second.teacher_id, second.room_id, second.subgroup) == ("", None, None, 2)


def test_merge_drops_second_subgroup():
    ed = _editor([CellRow("Math", 10, 1, 1), CellRow("Science", 11, 2, 2)])
    ed.merge()
    assert ed.state == SINGLE
    assert len(ed.rows) == 1
    assert ed.rows[0].subject == "Math" and ed.rows[0].subgroup is None


def test_dependent_field_resets():
    ed = _editor([CellRow("Math", 10, 1)])
    ed.set_teacher(None, 12)
    assert ed.rows[0].room_id is None
    ed.set_room(None, 2)
    ed.set_subject(None, "Science")
    assert (ed.rows[0].teacher_id, ed.rows[0].room_id) == (None, None)


def test_candidates_follow_subject_and_teacher():
    ed = _editor([CellRow("Math")])
    assert [t.id for t in ed.teacher_candidates()] == [10, 12]
    ed.set_teacher(None, 12)
    assert [r.id for r in ed.room_candidates()] == [2, 3]
    # у учителя нет своих кабинетов — весь список
    ed.set_subject(None, "Science")
    ed.set_teacher(None, 11)
    assert [r.id for r in ed.room_candidates()] == [1, 2, 3]


def test_candidates_per_subgroup():
    ed = _editor([CellRow("Math", 10, 1)])
    ed.split()
    ed.set_subject(2, "Science")
    assert [t.id for t in ed.teacher_candidates(2)] == [11, 12]
    assert [t.id for t in ed.teacher_candidates(1)] == [10, 12]


def test_incomplete_rows_dropped_and_lone_subgroup_saved_as_whole_class():
    ed = _editor([CellRow("Math", 10, 1)])
    ed.split()
    ed.set_subject(2, "Science")  # без учителя и кабинета
    drafts = ed.rows_to_save()
    assert len(drafts) == 1
    assert drafts[0].subgroup is None


def test_empty_form_is_rejected():
    ed = _editor()
    with pytest.raises(InvalidFormError):
        ed.rows_to_save()


def test_more_than_two_rows_rejected():
    with pytest.raises(InvalidFormError):
        _editor([CellRow("A", 1, 1), CellRow("B", 2, 2), CellRow("C", 3, 3)])


# ---------- API ----------

@pytest.fixture()
def client():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        seed_demo()
        db.session.add(SchoolClass(name="10B", grade=10, literal="B"))
        db.session.commit()
        yield app.test_client()
        db.session.remove()
        db.drop_all()


def _ref():
    cls_a = SchoolClass.query.filter_by(name="10A").one()
    cls_b = SchoolClass.query.filter_by(name="10B").one()
    lesson = Lesson.query.filter_by(lesson_number=1).one()
    ta = Teacher.query.filter_by(name="TeacherA").one()
    tb = Teacher.query.filter_by(name="TeacherB").one()
    r101 = Room.query.filter_by(room_number="101").one()
    r102 = Room.query.filter_by(room_number="102").one()
    return SimpleNamespace(a=cls_a.id, b=cls_b.id, lesson=lesson.id, ta=ta.id, tb=tb.id, r101=r101.id, r102=r102.id)


def _url(class_id, lesson_id, day="Monday"):
    return f"/api/v1/timetable/classes/{class_id}/cells/{day}/{lesson_id}"


def test_save_with_empty_rows_writes_nothing(client):
    ref = _ref()
    r = client.put(_url(ref.a, ref.lesson), json={"rows": [{"subject": "", "teacher_id": None, "room_id": None}]})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "INVALID_FORM"
    assert TimeSlot.query.count() == 0


def test_save_split_cell_and_read_back(client):
    ref = _ref()
    rows = [
        {"subject": "Math", "teacher_id": ref.ta, "room_id": ref.r101, "subgroup": 1},
        {"subject": "Science", "teacher_id": ref.tb, "room_id": ref.r102, "subgroup": 2},
    ]
    r = client.put(_url(ref.a, ref.lesson), json={"rows": rows})
    assert r.status_code == 200
    assert sorted(s["subgroup"] for s in r.get_json()["time_slots"]) == [1, 2]

    r = client.get(_url(ref.a, ref.lesson))
    js = r.get_json()
    assert js["state"] == "split"
    assert [c["subgroup"] for c in js["candidates"]] == [1, 2]

    grid = client.get(f"/api/v1/timetable/classes/{ref.a}").get_json()
    assert grid["days"][0]["cells"][0]["is_split"] is True


def test_save_replaces_only_this_cell(client):
    ref = _ref()
    client.post(f"/api/v1/timetable/classes/{ref.a}/generate", json={})
    r = client.put(_url(ref.a, ref.lesson), json={"rows": [{"subject": "Science", "teacher_id": ref.tb,
                                                            "room_id": ref.r102}]})
    assert r.status_code == 200
    assert TimeSlot.query.filter_by(class_id=ref.a).count() == 30
    cell = TimeSlot.query.filter_by(class_id=ref.a, day="Monday", lesson_id=ref.lesson).all()
    assert [(c.subject, c.subgroup) for c in cell] == [("Science", None)]


def test_conflict_with_other_class_is_409(client):
    ref = _ref()
    ok = client.put(_url(ref.a, ref.lesson), json={"rows": [{"subject": "Math", "teacher_id": ref.ta,
                                                             "room_id": ref.r101}]})
    assert ok.status_code == 200

    busy_teacher = client.put(_url(ref.b, ref.lesson), json={"rows": [{"subject": "Math", "teacher_id": ref.ta,
                                                                       "room_id": ref.r102}]})
    assert busy_teacher.status_code == 409
    assert busy_teacher.get_json()["errors"][0]["code"] == "SCHEDULE_CONFLICT"

    busy_room = client.put(_url(ref.b, ref.lesson), json={"rows": [{"subject": "Science", "teacher_id": ref.tb,
                                                                    "room_id": ref.r101}]})
    assert busy_room.status_code == 409
    assert TimeSlot.query.filter_by(class_id=ref.b).count() == 0


def test_same_teacher_in_both_subgroups_is_409(client):
    ref = _ref()
    rows = [
        {"subject": "Math", "teacher_id": ref.ta, "room_id": ref.r101, "subgroup": 1},
        {"subject": "Math", "teacher_id": ref.ta, "room_id": ref.r102, "subgroup": 2},
    ]
    assert client.put(_url(ref.a, ref.lesson), json={"rows": rows}).status_code == 409


def test_edit_endpoint_runs_state_machine(client):
    ref = _ref()
    r = client.post(_url(ref.a, ref.lesson) + "/edit", json={
        "action": "split",
        "rows": [{"subject": "Math", "teacher_id": ref.ta, "room_id": ref.r101}],
    })
    assert r.status_code == 200
    js = r.get_json()
    assert js["state"] == "split"
    assert js["rows"][1] == {"subject": "", "teacher_id": None, "room_id": None, "subgroup": 2}

    r = client.post(_url(ref.a, ref.lesson) + "/edit", json={
        "action": "set_subject", "subgroup": 1, "subject": "Science",
        "rows": js["rows"],
    })
    row1 = r.get_json()["rows"][0]
    assert (row1["subject"], row1["teacher_id"], row1["room_id"]) == ("Science", None, None)
    assert [t["name"] for t in r.get_json()["candidates"][0]["teachers"]] == ["TeacherB"]
    assert TimeSlot.query.count() == 0


def test_delete_cell(client):
    ref = _ref()
    client.put(_url(ref.a, ref.lesson), json={"rows": [{"subject": "Math", "teacher_id": ref.ta,
                                                        "room_id": ref.r101}]})
    assert client.delete(_url(ref.a, ref.lesson)).status_code == 204
    assert TimeSlot.query.count() == 0


def test_unknown_day_or_lesson(client):
    ref = _ref()
    assert client.get(_url(ref.a, ref.lesson, day="Sunday")).status_code == 422
    assert client.get(_url(ref.a, 999)).status_code == 404
