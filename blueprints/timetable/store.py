# blueprints/timetable/store.py
from __future__ import annotations
import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from errors import NoObligationsError, NotFoundError, TransientFetchError, WriteError
from extensions import db
from models import (
    AcademicPeriod, Lesson, Room, SchoolClass, Subject, SubjectTeacher, Syllabus, Teacher, TimeSlot
)
from .engine import Obligation, Occupancy, SlotDraft

log = logging.getLogger(__name__)

T = TypeVar("T")
Scope = Tuple[int, int]  # (class_id, academic_period_id)


# ---------- ретраи чтения ----------
def with_retry(fn: Callable[..., T]) -> Callable[..., T]:
    """Повтор чтения при OperationalError с экспоненциальной паузой.

    Число попыток и базовая пауза берутся из конфига приложения
    (FETCH_RETRY_ATTEMPTS, FETCH_RETRY_BASE_DELAY). Для записи не использовать.
    """
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        attempts = int(current_app.config.get("FETCH_RETRY_ATTEMPTS", 3))
        base_delay = float(current_app.config.get("FETCH_RETRY_BASE_DELAY", 0.2))
        last_exc: Exception | None = None
        for attempt in range(attempts):
            try:
                return fn(*args, **kwargs)
            except OperationalError as e:
                last_exc = e
                db.session.rollback()
                log.warning("read failed, retrying", extra={"event": "fetch_retry", "attempt": attempt + 1,
                                                             "fn": fn.__name__})
                if attempt + 1 < attempts:
                    time.sleep(base_delay * (2 ** attempt))
        raise TransientFetchError(
            f"{fn.__name__} failed after {attempts} attempts",
            details={"reason": str(last_exc)},
        )
    return wrapper


# ---------- справочники ----------
@dataclass
class ReferenceData:
    lessons: List[Lesson]
    rooms: List[Room]
    teachers: List[Teacher]
    subjects: List[Subject]
    classes: List[SchoolClass]

    def subjects_by_name(self) -> Dict[str, Subject]:
        return {s.name: s for s in self.subjects}


@with_retry
def load_reference_data() -> ReferenceData:
    return ReferenceData(
        lessons=Lesson.query.order_by(Lesson.lesson_number.asc()).all(),
        rooms=Room.query.order_by(Room.room_number.asc()).all(),
        teachers=Teacher.query.order_by(Teacher.name.asc()).all(),
        subjects=Subject.query.order_by(Subject.name.asc()).all(),
        classes=SchoolClass.query.order_by(SchoolClass.grade.asc(), SchoolClass.literal.asc()).all(),
    )


@with_retry
def get_class(class_id: int) -> SchoolClass:
    cls = db.session.get(SchoolClass, class_id)
    if cls is None:
        raise NotFoundError("class not found", details={"class_id": class_id})
    return cls


@with_retry
def get_lesson(lesson_id: int) -> Lesson:
    lesson = db.session.get(Lesson, lesson_id)
    if lesson is None:
        raise NotFoundError("lesson not found", details={"lesson_id": lesson_id})
    return lesson


@with_retry
def resolve_period(period_id: Optional[int] = None) -> AcademicPeriod:
    """Явно указанный период или текущий (is_active, иначе самый поздний по start_date)."""
    if period_id is not None:
        p = db.session.get(AcademicPeriod, period_id)
        if p is None:
            raise NotFoundError("academic period not found", details={"academic_period_id": period_id})
        return p
    p = (AcademicPeriod.query.filter_by(is_active=True).order_by(AcademicPeriod.start_date.desc()).first()
         or AcademicPeriod.query.order_by(AcademicPeriod.start_date.desc()).first())
    if p is None:
        raise NotFoundError("no academic period defined")
    return p


@with_retry
def load_obligations(class_id: int) -> List[Obligation]:
    """Пары (предмет, учитель) класса: из учебного плана, иначе из subject_teachers."""
    rows = Syllabus.query.filter_by(class_id=class_id).order_by(Syllabus.id.asc()).all()
    if rows:
        return [Obligation(subject=r.subject.name, teacher_id=r.teacher_id, hours_per_week=r.hours_per_week)
                for r in rows]
    fallback = SubjectTeacher.query.filter_by(class_id=class_id).order_by(SubjectTeacher.id.asc()).all()
    if fallback:
        log.info("syllabus empty, using subject_teachers", extra={"event": "obligations_fallback",
                                                                 "class_id": class_id})
        return [Obligation(subject=r.subject.name, teacher_id=r.teacher_id) for r in fallback]
    raise NoObligationsError(
        "no syllabus or subject-teacher mapping for class",
        details={"class_id": class_id},
    )


@with_retry
def scope_rows(class_id: int, period_id: int) -> List[TimeSlot]:
    return (TimeSlot.query
            .filter_by(class_id=class_id, academic_period_id=period_id)
            .all())


@with_retry
def occupancy_rows_outside(class_ids: Iterable[int], period_id: int) -> List[TimeSlot]:
    ids = list(class_ids)
    q = TimeSlot.query.filter(TimeSlot.academic_period_id == period_id)
    if ids:
        q = q.filter(TimeSlot.class_id.notin_(ids))
    return q.all()


def occupancy_outside(class_ids: Iterable[int], period_id: int) -> Occupancy:
    """Занятость периода без строк указанных классов (их сетка будет перезаписана)."""
    return Occupancy.from_rows(occupancy_rows_outside(class_ids, period_id))


@with_retry
def cell_rows(period_id: int, day: str, lesson_id: int) -> List[TimeSlot]:
    return (TimeSlot.query
            .filter_by(academic_period_id=period_id, day=day, lesson_id=lesson_id)
            .all())


# ---------- запись ----------
def _to_model(d: SlotDraft) -> TimeSlot:
    return TimeSlot(
        class_id=d.class_id, academic_period_id=d.academic_period_id, day=d.day,
        lesson_id=d.lesson_id, subject=d.subject, teacher_id=d.teacher_id,
        room_id=d.room_id, subgroup=d.subgroup, is_extracurricular=d.is_extracurricular,
    )


def replace_scope(scopes: Sequence[Scope], drafts: Sequence[SlotDraft], *, cell: Optional[Tuple[str, int]] = None) -> int:
    """Удаляет строки области и вставляет новые одной транзакцией.

    Область: набор (class_id, period_id); с `cell` удаление сужается до одной
    клетки (day, lesson_id). При ошибке всё откатывается, прежнее расписание остаётся.
    """
    deleted = 0
    try:
        # удаление и вставка в одной транзакции сессии: commit или rollback целиком
        for class_id, period_id in scopes:
            q = TimeSlot.query.filter_by(class_id=class_id, academic_period_id=period_id)
            if cell is not None:
                q = q.filter_by(day=cell[0], lesson_id=cell[1])
            deleted += q.delete(synchronize_session=False)
        db.session.add_all([_to_model(d) for d in drafts])
        db.session.flush()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.error("schedule write failed", extra={"event": "write_failed", "scopes": list(scopes)})
        raise WriteError("failed to write time slots", details={"reason": str(e)}) from e
    log.info("schedule replaced", extra={"event": "schedule_replaced", "deleted": deleted,
                                         "inserted": len(drafts)})
    return len(drafts)
