from __future__ import annotations
import pytest
from app import create_app
from extensions import db
from models import AcademicPeriod

@pytest.fixture()
def client():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        yield app.test_client()
        db.session.remove()
        db.drop_all()

def test_class_crud_and_uniqueness(client):
    # create: имя выводится из параллели и литеры
    r = client.post("/directory/api/classes", json={"grade": 10, "literal": "A"})
    assert r.status_code == 201
    cid = r.get_json()["id"]
    assert r.get_json()["name"] == "10A"

    # get
    r = client.get(f"/directory/api/classes/{cid}")
    assert r.status_code == 200
    assert r.get_json()["grade"] == 10

    # unique name
    r = client.post("/directory/api/classes", json={"grade": 10, "literal": "A"})
    assert r.status_code == 409
    assert r.get_json()["errors"][0]["code"] == "UNIQUE_CONSTRAINT"

    # update
    r = client.put(f"/directory/api/classes/{cid}", json={"grade": 11, "literal": "A"})
    assert r.status_code == 200
    assert client.get(f"/directory/api/classes/{cid}").get_json()["name"] == "11A"

    # list + search
    r = client.get("/directory/api/classes?q=11")
    assert r.status_code == 200
    assert r.get_json()["meta"]["total"] == 1

    # delete
    assert client.delete(f"/directory/api/classes/{cid}").status_code == 204
    r = client.get(f"/directory/api/classes/{cid}")
    assert r.status_code == 404
    assert r.get_json()["ok"] is False

def test_teacher_with_room_affinities(client):
    r101 = client.post("/directory/api/rooms", json={"room_number": "101"}).get_json()["id"]
    r = client.post("/directory/api/teachers", json={"name": "TeacherA", "subjects": ["Math"],
                                                     "room_ids": [r101, r101]})
    assert r.status_code == 201
    assert r.get_json()["room_ids"] == [r101]
    assert r.get_json()["subjects"] == ["Math"]

    r = client.post("/directory/api/teachers", json={"name": "TeacherB", "room_ids": [999]})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "REFERENCE_NOT_FOUND"

    client.post("/directory/api/teachers", json={"name": "TeacherC", "subjects": ["Science"]})
    r = client.get("/directory/api/teachers?subject=Math")
    assert [t["name"] for t in r.get_json()["items"]] == ["TeacherA"]

def test_room_number_unique(client):
    assert client.post("/directory/api/rooms", json={"room_number": "101"}).status_code == 201
    assert client.post("/directory/api/rooms", json={"room_number": "101"}).status_code == 409

def test_lesson_time_range_validated(client):
    r = client.post("/directory/api/lessons", json={"lesson_number": 1, "start_time": "09:00", "end_time": "08:00"})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "VALIDATION_ERROR"

    r = client.post("/directory/api/lessons", json={"lesson_number": 1, "start_time": "08:30", "end_time": "09:15"})
    assert r.status_code == 201
    r = client.post("/directory/api/lessons", json={"lesson_number": 1, "start_time": "10:00", "end_time": "10:45"})
    assert r.status_code == 409

    r = client.get("/directory/api/lessons")
    assert r.get_json()["items"][0]["start_time"] == "08:30:00"

def test_single_active_period(client):
    p1 = client.post("/directory/api/academic-periods", json={
        "name": "Term 1", "start_date": "2026-09-01", "end_date": "2026-12-25", "is_active": True}).get_json()["id"]
    p2 = client.post("/directory/api/academic-periods", json={
        "name": "Term 2", "start_date": "2027-01-10", "end_date": "2027-05-31", "is_active": True}).get_json()["id"]
    assert client.get(f"/directory/api/academic-periods/{p1}").get_json()["is_active"] is False
    assert client.get(f"/directory/api/academic-periods/{p2}").get_json()["is_active"] is True
    assert AcademicPeriod.query.filter_by(is_active=True).count() == 1

    r = client.post("/directory/api/academic-periods", json={
        "name": "Bad", "start_date": "2027-01-10", "end_date": "2026-01-10"})
    assert r.status_code == 422

def test_syllabus_and_subject_teachers(client):
    cid = client.post("/directory/api/classes", json={"grade": 10, "literal": "A"}).get_json()["id"]
    sid = client.post("/directory/api/subjects", json={"name": "Math"}).get_json()["id"]
    tid = client.post("/directory/api/teachers", json={"name": "TeacherA"}).get_json()["id"]

    body = {"class_id": cid, "subject_id": sid, "teacher_id": tid, "hours_per_week": 4}
    r = client.post("/directory/api/syllabus", json=body)
    assert r.status_code == 201
    assert client.post("/directory/api/syllabus", json=body).status_code == 409

    r = client.get(f"/directory/api/syllabus?class_id={cid}")
    assert r.get_json()["items"][0]["hours_per_week"] == 4

    r = client.post("/directory/api/syllabus", json={**body, "teacher_id": 999})
    assert r.status_code == 422

    r = client.post("/directory/api/subject-teachers", json={"class_id": cid, "subject_id": sid, "teacher_id": tid})
    assert r.status_code == 201
    st = r.get_json()["id"]
    assert client.delete(f"/directory/api/subject-teachers/{st}").status_code == 204

def test_subject_flags_and_pagination(client):
    for name in ("Art", "Biology", "Chemistry"):
        client.post("/directory/api/subjects", json={"name": name})
    client.post("/directory/api/subjects", json={"name": "English", "is_subgroup": True})
    r = client.get("/directory/api/subjects?page=2&per_page=2")
    data = r.get_json()
    assert data["meta"] == {"page": 2, "per_page": 2, "total": 4}
    assert [s["name"] for s in data["items"]] == ["Chemistry", "English"]
    assert data["items"][1]["is_subgroup"] is True

def test_syllabus_bulk_import_is_all_or_nothing(client):
    cid = client.post("/directory/api/classes", json={"grade": 9, "literal": "B"}).get_json()["id"]
    math = client.post("/directory/api/subjects", json={"name": "Math"}).get_json()["id"]
    art = client.post("/directory/api/subjects", json={"name": "Art"}).get_json()["id"]
    tid = client.post("/directory/api/teachers", json={"name": "TeacherA"}).get_json()["id"]

    rows = [
        {"class_id": cid, "subject_id": math, "teacher_id": tid, "hours_per_week": 5},
        {"class_id": cid, "subject_id": art, "teacher_id": tid, "hours_per_week": 1},
    ]
    r = client.post("/directory/api/syllabus/import", json=rows)
    assert r.status_code == 201
    assert r.get_json()["inserted"] == 2
    assert client.get(f"/directory/api/syllabus?class_id={cid}").get_json()["meta"]["total"] == 2

    # повтор: дубликат кортежа -> 409, ничего не добавлено
    r = client.post("/directory/api/syllabus/import", json=rows)
    assert r.status_code == 409
    assert client.get(f"/directory/api/syllabus?class_id={cid}").get_json()["meta"]["total"] == 2

    # неизвестный учитель во второй строке -> вся пачка отклонена
    other = client.post("/directory/api/subjects", json={"name": "Music"}).get_json()["id"]
    r = client.post("/directory/api/syllabus/import", json=[
        {"class_id": cid, "subject_id": other, "teacher_id": tid},
        {"class_id": cid, "subject_id": other, "teacher_id": 999},
    ])
    assert r.status_code == 422
    assert client.get(f"/directory/api/syllabus?class_id={cid}").get_json()["meta"]["total"] == 2

    r = client.post("/directory/api/syllabus/import", json={"rows": rows})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "BAD_TEMPLATE"
