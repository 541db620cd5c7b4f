# blueprints/timetable/services.py
from __future__ import annotations
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from errors import WriteError
from extensions import db
from models import Lesson, Subject, Syllabus, TimeSlot
from . import store
from .engine import SlotDraft, assign_slots, find_conflicts

log = logging.getLogger(__name__)


def _rng() -> random.Random:
    seed = current_app.config.get("TIMETABLE_RANDOM_SEED")
    return random.Random(seed)


# ===== генерация =====
@dataclass
class GenerationResult:
    class_id: int
    academic_period_id: int
    drafts: List[SlotDraft]
    empty_cells: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class_id": self.class_id,
            "academic_period_id": self.academic_period_id,
            "inserted": len(self.drafts),
            "empty_cells": self.empty_cells,
            "time_slots": [d.to_dict() for d in self.drafts],
        }


def generate_for_class(class_id: int, period_id: Optional[int] = None, *,
                       weekdays: Optional[List[str]] = None,
                       rng: Optional[random.Random] = None) -> GenerationResult:
    """Перегенерация расписания класса за период: полная замена, не слияние.

    Обязательства грузятся до любой записи, поэтому NoObligationsError не трогает
    текущую сетку. Занятость других классов периода учитывается.
    """
    cls = store.get_class(class_id)
    period = store.resolve_period(period_id)
    obligations = store.load_obligations(cls.id)
    ref = store.load_reference_data()
    occupancy = store.occupancy_outside([cls.id], period.id)
    days = weekdays or current_app.config["TIMETABLE_WEEKDAYS"]

    drafts = assign_slots(
        cls.id, days, ref.lessons, obligations, ref.rooms,
        period_id=period.id,
        rng=rng or _rng(),
        occupancy=occupancy,
        enforce_hours=bool(current_app.config.get("TIMETABLE_ENFORCE_WEEKLY_HOURS")),
    )
    store.replace_scope([(cls.id, period.id)], drafts)

    empty = len(days) * len(ref.lessons) - len(drafts)
    log.info("timetable generated", extra={"event": "timetable_generated", "class_id": cls.id,
                                           "academic_period_id": period.id, "inserted": len(drafts),
                                           "empty_cells": empty})
    return GenerationResult(class_id=cls.id, academic_period_id=period.id, drafts=drafts, empty_cells=empty)


# ===== чтение сетки =====
def _row_payload(ts: TimeSlot) -> Dict[str, Any]:
    out = ts.to_dict()
    out["teacher"] = ts.teacher.name if ts.teacher else None
    out["room"] = ts.room.room_number if ts.room else None
    out["class"] = ts.school_class.name if ts.school_class else None
    return out


def _fmt(t) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


def class_grid(class_id: int, period_id: Optional[int] = None) -> Dict[str, Any]:
    """Недельная сетка класса: дни × уроки, в клетке 0, 1 или 2 строки."""
    cls = store.get_class(class_id)
    period = store.resolve_period(period_id)
    lessons = store.load_reference_data().lessons
    rows = store.scope_rows(cls.id, period.id)

    by_cell: Dict[tuple, List[TimeSlot]] = {}
    for r in rows:
        by_cell.setdefault((r.day, r.lesson_id), []).append(r)

    days = []
    for day in current_app.config["TIMETABLE_WEEKDAYS"]:
        cells = []
        for ls in lessons:
            cell = sorted(by_cell.get((day, ls.id), []), key=lambda r: r.subgroup or 0)
            cells.append({
                "lesson_id": ls.id,
                "lesson_number": ls.lesson_number,
                "start_time": _fmt(ls.start_time),
                "end_time": _fmt(ls.end_time),
                "is_split": any(r.subgroup for r in cell),
                "rows": [_row_payload(r) for r in cell],
            })
        days.append({"day": day, "cells": cells})
    return {
        "class": {"id": cls.id, "name": cls.name},
        "academic_period_id": period.id,
        "days": days,
    }


@store.with_retry
def _day_rows(period_id: int, day: str, teacher_id: Optional[int], room_id: Optional[int]) -> List[TimeSlot]:
    q = (db.session.query(TimeSlot)
         .join(Lesson, Lesson.id == TimeSlot.lesson_id)
         .filter(TimeSlot.academic_period_id == period_id, TimeSlot.day == day))
    if teacher_id:
        q = q.filter(TimeSlot.teacher_id == teacher_id)
    if room_id:
        q = q.filter(TimeSlot.room_id == room_id)
    return q.order_by(Lesson.lesson_number.asc(), TimeSlot.class_id.asc(), TimeSlot.subgroup.asc()).all()


def daily_grid(day: str, period_id: Optional[int] = None, *,
               teacher_id: Optional[int] = None, room_id: Optional[int] = None) -> Dict[str, Any]:
    period = store.resolve_period(period_id)
    items = []
    for r in _day_rows(period.id, day, teacher_id, room_id):
        p = _row_payload(r)
        p["lesson_number"] = r.lesson.lesson_number
        p["start_time"] = _fmt(r.lesson.start_time)
        p["end_time"] = _fmt(r.lesson.end_time)
        items.append(p)
    return {"day": day, "academic_period_id": period.id, "items": items}


@store.with_retry
def _period_rows(period_id: int) -> List[TimeSlot]:
    return TimeSlot.query.filter_by(academic_period_id=period_id).all()


def period_conflicts(period_id: Optional[int] = None) -> Dict[str, Any]:
    period = store.resolve_period(period_id)
    rows = _period_rows(period.id)
    return {
        "academic_period_id": period.id,
        "conflicts": [c.__dict__ for c in find_conflicts(rows)],
    }


# ===== синхронизация учебного плана по сетке =====
def syllabus_sync_preview() -> List[Dict[str, Any]]:
    """Уникальные (класс, предмет, учитель) из time_slots и отметка, есть ли уже в плане."""
    subject_ids = {s.name: s.id for s in Subject.query.all()}
    existing = {(s.class_id, s.subject_id, s.teacher_id) for s in Syllabus.query.all()}

    found: Dict[tuple, Dict[str, Any]] = {}
    for ts in TimeSlot.query.all():
        sid = subject_ids.get(ts.subject)
        if sid is None:
            log.info("subject not found for sync", extra={"event": "sync_skip", "subject": ts.subject})
            continue
        key = (ts.class_id, sid, ts.teacher_id)
        if key in found:
            continue
        found[key] = {
            "class_id": ts.class_id,
            "class_name": ts.school_class.name,
            "subject_id": sid,
            "subject_name": ts.subject,
            "teacher_id": ts.teacher_id,
            "teacher_name": ts.teacher.name,
            "existing": key in existing,
        }
    return sorted(found.values(), key=lambda p: (p["class_name"], p["subject_name"]))


def syllabus_sync_commit() -> int:
    new = [p for p in syllabus_sync_preview() if not p["existing"]]
    try:
        for p in new:
            db.session.add(Syllabus(class_id=p["class_id"], subject_id=p["subject_id"],
                                    teacher_id=p["teacher_id"], hours_per_week=0))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise WriteError("failed to sync syllabus", details={"reason": str(e)}) from e
    return len(new)
