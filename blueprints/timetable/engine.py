# blueprints/timetable/engine.py
"""Жадное заполнение недельной сетки одного класса.

Без БД и без Flask: на вход справочники, на выход черновики строк time_slots.
Перебор детерминирован (дни по порядку, уроки по lesson_number, обязательства
в исходном порядке); случайность только в выборе кабинета через переданный rng.
"""
from __future__ import annotations
import random
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

Cell = Tuple[str, int]  # (day, lesson_id)


class LessonLike(Protocol):
    id: int
    lesson_number: int


class RoomLike(Protocol):
    id: int


# ===== DTO =====
@dataclass(frozen=True)
class Obligation:
    subject: str
    teacher_id: int
    hours_per_week: Optional[int] = None


@dataclass
class SlotDraft:
    day: str
    lesson_id: int
    subject: str
    teacher_id: int
    room_id: int
    class_id: int
    academic_period_id: Optional[int] = None
    subgroup: Optional[int] = None
    is_extracurricular: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Conflict:
    code: str  # TEACHER_DOUBLE_BOOKED | ROOM_DOUBLE_BOOKED | CLASS_CELL_OVERFLOW | SUBGROUP_PAIR_BROKEN
    day: str
    lesson_id: int
    details: Dict[str, Any] = field(default_factory=dict)


# ===== занятость по клеткам =====
class Occupancy:
    """(day, lesson_id) -> занятые учителя и кабинеты."""

    def __init__(self):
        self._teachers: Dict[Cell, Set[int]] = defaultdict(set)
        self._rooms: Dict[Cell, Set[int]] = defaultdict(set)

    @classmethod
    def from_rows(cls, rows: Iterable[Any]) -> "Occupancy":
        occ = cls()
        for r in rows:
            occ.book(r.day, r.lesson_id, r.teacher_id, r.room_id)
        return occ

    def book(self, day: str, lesson_id: int, teacher_id: int | None, room_id: int | None) -> None:
        if teacher_id is not None:
            self._teachers[(day, lesson_id)].add(teacher_id)
        if room_id is not None:
            self._rooms[(day, lesson_id)].add(room_id)

    def teacher_busy(self, day: str, lesson_id: int, teacher_id: int) -> bool:
        return teacher_id in self._teachers.get((day, lesson_id), ())

    def rooms_used(self, day: str, lesson_id: int) -> Set[int]:
        return self._rooms.get((day, lesson_id), set())


def _pick_obligation(obligations: Sequence[Obligation], day: str, lesson_id: int, occupancy: Occupancy,
                     remaining: Optional[Dict[int, int]]) -> Optional[Tuple[int, Obligation]]:
    for idx, ob in enumerate(obligations):
        if remaining is not None and idx in remaining and remaining[idx] <= 0:
            continue
        if occupancy.teacher_busy(day, lesson_id, ob.teacher_id):
            continue
        return idx, ob
    return None


def assign_slots(
    class_id: int,
    weekdays: Sequence[str],
    lesson_slots: Sequence[LessonLike],
    obligations: Sequence[Obligation],
    rooms: Sequence[RoomLike],
    *,
    period_id: Optional[int] = None,
    rng: Optional[random.Random] = None,
    occupancy: Optional[Occupancy] = None,
    enforce_hours: bool = False,
) -> List[SlotDraft]:
    """Заполняет клетки (день × урок) класса первой подходящей парой (предмет, учитель).

    Клетка остаётся пустой, если все учителя заняты или свободных кабинетов нет.
    `occupancy` можно заранее наполнить строками других классов того же периода;
    он дополняется по ходу работы. При `enforce_hours` обязательство с исчерпанным
    недельным объёмом пропускается (None/0: без ограничения).
    """
    rng = rng or random.Random()
    occupancy = occupancy if occupancy is not None else Occupancy()
    ordered_slots = sorted(lesson_slots, key=lambda s: s.lesson_number)
    room_ids = [r.id for r in rooms]

    remaining: Optional[Dict[int, int]] = None
    if enforce_hours:
        remaining = {i: ob.hours_per_week for i, ob in enumerate(obligations) if ob.hours_per_week}

    drafts: List[SlotDraft] = []
    for day in weekdays:
        for slot in ordered_slots:
            picked = _pick_obligation(obligations, day, slot.id, occupancy, remaining)
            if picked is None:
                continue
            idx, ob = picked

            used_rooms = occupancy.rooms_used(day, slot.id)
            free_rooms = [rid for rid in room_ids if rid not in used_rooms]
            if not free_rooms:
                continue
            room_id = rng.choice(free_rooms)

            drafts.append(SlotDraft(
                day=day, lesson_id=slot.id, subject=ob.subject, teacher_id=ob.teacher_id,
                room_id=room_id, class_id=class_id, academic_period_id=period_id,
            ))
            occupancy.book(day, slot.id, ob.teacher_id, room_id)
            if remaining is not None and idx in remaining:
                remaining[idx] -= 1
    return drafts


def find_conflicts(rows: Iterable[Any]) -> List[Conflict]:
    """Проверка набора строк на двойные брони и сломанные пары подгрупп.

    Строки: любые объекты с day, lesson_id, class_id, teacher_id, room_id, subgroup.
    """
    by_cell: Dict[Cell, List[Any]] = defaultdict(list)
    for r in rows:
        by_cell[(r.day, r.lesson_id)].append(r)

    out: List[Conflict] = []
    for (day, lesson_id), cell_rows in by_cell.items():
        seen_t: Dict[int, int] = {}
        seen_r: Dict[int, int] = {}
        for r in cell_rows:
            if r.teacher_id is not None:
                if r.teacher_id in seen_t:
                    out.append(Conflict("TEACHER_DOUBLE_BOOKED", day, lesson_id,
                                        {"teacher_id": r.teacher_id, "class_ids": [seen_t[r.teacher_id], r.class_id]}))
                else:
                    seen_t[r.teacher_id] = r.class_id
            if r.room_id is not None:
                if r.room_id in seen_r:
                    out.append(Conflict("ROOM_DOUBLE_BOOKED", day, lesson_id,
                                        {"room_id": r.room_id, "class_ids": [seen_r[r.room_id], r.class_id]}))
                else:
                    seen_r[r.room_id] = r.class_id

        per_class: Dict[int, List[Any]] = defaultdict(list)
        for r in cell_rows:
            per_class[r.class_id].append(r)
        for cid, class_rows in per_class.items():
            subgroups = sorted(r.subgroup for r in class_rows if r.subgroup is not None)
            whole = [r for r in class_rows if r.subgroup is None]
            if whole and (len(whole) > 1 or subgroups):
                out.append(Conflict("CLASS_CELL_OVERFLOW", day, lesson_id,
                                    {"class_id": cid, "rows": len(class_rows)}))
            elif subgroups and subgroups != [1, 2]:
                out.append(Conflict("SUBGROUP_PAIR_BROKEN", day, lesson_id,
                                    {"class_id": cid, "subgroups": subgroups}))
    return out
