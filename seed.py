"""
Idempotent seed-скрипт.
Запуск:
  python seed.py --reset       # дропнуть и пересоздать БД + демо-данные
  python seed.py --generate    # после наполнения сгенерировать сетку 10A
  python seed.py               # мягкое наполнение недостающих данных (idempotent)
"""
from datetime import date, time
import argparse

from extensions import db
from models import AcademicPeriod, Lesson, Room, SchoolClass, Subject, Syllabus, Teacher

# звонки: 6 уроков по 45 минут
LESSON_TIMES = [
    (1, time(8, 30), time(9, 15)),
    (2, time(9, 25), time(10, 10)),
    (3, time(10, 30), time(11, 15)),
    (4, time(11, 35), time(12, 20)),
    (5, time(12, 30), time(13, 15)),
    (6, time(13, 25), time(14, 10)),
]


def get_or_create(model, defaults=None, **by):
    """Идемпотентное создание по уникальным ключам."""
    inst = db.session.query(model).filter_by(**by).first()
    if inst:
        return inst, False
    data = {}
    if defaults:
        data.update(defaults)
    data.update(by)
    inst = model(**data)
    db.session.add(inst)
    db.session.flush()
    return inst, True


def seed_demo() -> dict:
    """Класс 10A, уроки 1–6, Math/Science у TeacherA/TeacherB, кабинеты 101/102, активный период."""
    ids = {}
    for number, start, end in LESSON_TIMES:
        get_or_create(Lesson, defaults={"start_time": start, "end_time": end}, lesson_number=number)

    math, _ = get_or_create(Subject, name="Math")
    science, _ = get_or_create(Subject, name="Science")
    r101, _ = get_or_create(Room, room_number="101")
    r102, _ = get_or_create(Room, room_number="102")

    ta, _ = get_or_create(Teacher, defaults={"subjects": ["Math"], "supervised_classes": ["10A"],
                                             "work_days": []}, name="TeacherA")
    tb, _ = get_or_create(Teacher, defaults={"subjects": ["Science"], "supervised_classes": [],
                                             "work_days": []}, name="TeacherB")
    if not ta.rooms:
        ta.rooms = [r101]

    cls, _ = get_or_create(SchoolClass, defaults={"grade": 10, "literal": "A", "supervisor_teacher_id": ta.id},
                           name="10A")

    period = AcademicPeriod.query.filter_by(is_active=True).first()
    if period is None:
        today = date.today()
        start_year = today.year if today.month >= 9 else today.year - 1
        period, _ = get_or_create(
            AcademicPeriod,
            defaults={"start_date": date(start_year, 9, 1), "end_date": date(start_year + 1, 5, 31),
                      "is_active": True},
            name=f"{start_year}/{start_year + 1}",
        )

    get_or_create(Syllabus, defaults={"hours_per_week": 4}, class_id=cls.id, subject_id=math.id, teacher_id=ta.id)
    get_or_create(Syllabus, defaults={"hours_per_week": 3}, class_id=cls.id, subject_id=science.id,
                  teacher_id=tb.id)
    db.session.commit()

    ids.update(class_id=cls.id, academic_period_id=period.id)
    return ids


# ---- main ----
def main():
    from app import create_app
    from blueprints.timetable.services import generate_for_class

    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="drop + create + full seed (demo)")
    parser.add_argument("--generate", action="store_true", help="generate timetable for the demo class")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
        db.create_all()
        ids = seed_demo()
        print("[seed] reset+seed complete" if args.reset else "[seed] soft seed complete")
        if args.generate:
            result = generate_for_class(ids["class_id"], ids["academic_period_id"])
            print(f"[seed] generated {len(result.drafts)} time slots, {result.empty_cells} empty cells")


if __name__ == "__main__":
    main()
