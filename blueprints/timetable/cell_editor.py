# blueprints/timetable/cell_editor.py
"""Ручное редактирование одной клетки (класс, период, день, урок).

Состояния: single: одна строка без подгруппы; split: ровно две строки,
подгруппы 1 и 2. Зависимые поля: смена предмета сбрасывает учителя и кабинет,
смена учителя сбрасывает кабинет.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from errors import InvalidFormError, ScheduleConflictError
from models import Room, Teacher, TimeSlot
from . import store
from .engine import Occupancy, SlotDraft

log = logging.getLogger(__name__)

SINGLE = "single"
SPLIT = "split"


@dataclass
class CellRow:
    subject: str = ""
    teacher_id: Optional[int] = None
    room_id: Optional[int] = None
    subgroup: Optional[int] = None

    def is_complete(self) -> bool:
        return bool(self.subject) and self.teacher_id is not None and self.room_id is not None


class CellEditor:
    def __init__(self, *, class_id: int, period_id: int, day: str, lesson_id: int,
                 rows: Sequence[CellRow] = (), teachers: Sequence[Teacher] = (), rooms: Sequence[Room] = ()):
        self.class_id = class_id
        self.period_id = period_id
        self.day = day
        self.lesson_id = lesson_id
        self.teachers = list(teachers)
        self.rooms = list(rooms)
        self.rows: List[CellRow] = [replace(r) for r in rows] or [CellRow()]
        if len(self.rows) > 2:
            raise InvalidFormError("a cell holds at most two rows", details={"rows": len(self.rows)})
        if len(self.rows) == 2:
            self.rows[0].subgroup, self.rows[1].subgroup = 1, 2
        else:
            self.rows[0].subgroup = None

    @classmethod
    def from_time_slots(cls, slots: Sequence[TimeSlot], **kw) -> "CellEditor":
        ordered = sorted(slots, key=lambda s: s.subgroup or 0)
        rows = [CellRow(subject=s.subject, teacher_id=s.teacher_id, room_id=s.room_id, subgroup=s.subgroup)
                for s in ordered]
        return cls(rows=rows, **kw)

    @property
    def state(self) -> str:
        return SPLIT if len(self.rows) == 2 else SINGLE

    def row(self, subgroup: Optional[int] = None) -> CellRow:
        if self.state == SINGLE:
            return self.rows[0]
        for r in self.rows:
            if r.subgroup == subgroup:
                return r
        return self.rows[0]

    # ---- переходы ----
    def split(self) -> None:
        if self.state == SPLIT:
            return
        first = self.rows[0]
        first.subgroup = 1
        self.rows.append(CellRow(subgroup=2))

    def merge(self) -> None:
        if self.state == SINGLE:
            return
        self.rows = [self.row(1)]
        self.rows[0].subgroup = None

    # ---- поля ----
    def set_subject(self, subgroup: Optional[int], subject: str) -> None:
        r = self.row(subgroup)
        r.subject = subject or ""
        r.teacher_id = None
        r.room_id = None

    def set_teacher(self, subgroup: Optional[int], teacher_id: Optional[int]) -> None:
        r = self.row(subgroup)
        r.teacher_id = teacher_id
        r.room_id = None

    def set_room(self, subgroup: Optional[int], room_id: Optional[int]) -> None:
        self.row(subgroup).room_id = room_id

    # ---- списки для выбора ----
    def teacher_candidates(self, subgroup: Optional[int] = None) -> List[Teacher]:
        subject = self.row(subgroup).subject
        return [t for t in self.teachers if subject and subject in (t.subjects or [])]

    def room_candidates(self, subgroup: Optional[int] = None) -> List[Room]:
        teacher_id = self.row(subgroup).teacher_id
        teacher = next((t for t in self.teachers if t.id == teacher_id), None)
        if teacher is None or not teacher.rooms:
            return list(self.rooms)
        own = {r.id for r in teacher.rooms}
        return [r for r in self.rooms if r.id in own]

    # ---- сохранение ----
    def rows_to_save(self) -> List[SlotDraft]:
        """Полные строки клетки; неполные отбрасываются. Ни одной полной: InvalidFormError."""
        if not self.day or self.lesson_id is None:
            raise InvalidFormError("day and lesson are required")
        drafts = [
            SlotDraft(day=self.day, lesson_id=self.lesson_id, subject=r.subject, teacher_id=r.teacher_id,
                      room_id=r.room_id, class_id=self.class_id, academic_period_id=self.period_id,
                      subgroup=r.subgroup)
            for r in self.rows if r.is_complete()
        ]
        if not drafts:
            raise InvalidFormError(
                "cell has no complete row: subject, teacher and room are required",
                details={"day": self.day, "lesson_id": self.lesson_id},
            )
        dropped = len(self.rows) - len(drafts)
        if dropped:
            log.info("incomplete cell rows dropped", extra={"event": "cell_rows_dropped", "dropped": dropped})
        # от пары осталась одна строка: сохраняется на весь класс
        if len(drafts) == 1:
            drafts[0].subgroup = None
        return drafts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class_id": self.class_id,
            "academic_period_id": self.period_id,
            "day": self.day,
            "lesson_id": self.lesson_id,
            "state": self.state,
            "rows": [r.__dict__ for r in self.rows],
        }


# ===== сервисные функции =====
def _check_cell(day: str, lesson_id: int, valid_days: Sequence[str]) -> None:
    if day not in valid_days:
        raise InvalidFormError("unknown weekday", details={"day": day})
    store.get_lesson(lesson_id)


def open_cell(class_id: int, day: str, lesson_id: int, period_id: Optional[int], valid_days: Sequence[str],
              rows: Optional[Sequence[CellRow]] = None) -> CellEditor:
    """Редактор клетки: строки из БД или переданные клиентом (незавершённая форма)."""
    cls = store.get_class(class_id)
    period = store.resolve_period(period_id)
    _check_cell(day, lesson_id, valid_days)
    ref = store.load_reference_data()
    kw = dict(class_id=cls.id, period_id=period.id, day=day, lesson_id=lesson_id,
              teachers=ref.teachers, rooms=ref.rooms)
    if rows is not None:
        return CellEditor(rows=rows, **kw)
    current = [r for r in store.cell_rows(period.id, day, lesson_id) if r.class_id == cls.id]
    return CellEditor.from_time_slots(current, **kw)


def save_cell(editor: CellEditor) -> List[SlotDraft]:
    """Проверяет клетку и заменяет её строки одной транзакцией.

    Учитель или кабинет, уже занятые другим классом в этот день и урок, дают
    ScheduleConflictError; в БД при этом ничего не пишется.
    """
    drafts = editor.rows_to_save()
    others = [r for r in store.cell_rows(editor.period_id, editor.day, editor.lesson_id)
              if r.class_id != editor.class_id]
    occupancy = Occupancy.from_rows(others)
    conflicts = []
    for d in drafts:
        if occupancy.teacher_busy(d.day, d.lesson_id, d.teacher_id):
            conflicts.append({"code": "TEACHER_DOUBLE_BOOKED", "teacher_id": d.teacher_id, "subgroup": d.subgroup})
        if d.room_id in occupancy.rooms_used(d.day, d.lesson_id):
            conflicts.append({"code": "ROOM_DOUBLE_BOOKED", "room_id": d.room_id, "subgroup": d.subgroup})
        occupancy.book(d.day, d.lesson_id, d.teacher_id, d.room_id)
    if conflicts:
        raise ScheduleConflictError(
            "teacher or room already booked in this cell",
            details={"conflicts": conflicts},
        )
    store.replace_scope([(editor.class_id, editor.period_id)], drafts, cell=(editor.day, editor.lesson_id))
    return drafts


def clear_cell(class_id: int, day: str, lesson_id: int, period_id: Optional[int]) -> None:
    cls = store.get_class(class_id)
    period = store.resolve_period(period_id)
    store.replace_scope([(cls.id, period.id)], [], cell=(day, lesson_id))
