# blueprints/import_export/services.py
"""Импорт готового расписания из JSON / xlsx / csv в строки time_slots.

Ссылки разрешаются точным совпадением имён по справочникам; любая
неразрешённая ссылка валит весь импорт (ReferenceResolutionError), запись
идёт только через store.replace_scope, то есть целиком или никак.
"""
from __future__ import annotations
import csv
import logging
import re
from dataclasses import dataclass, field
from io import BytesIO, StringIO
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from flask import current_app
from openpyxl import load_workbook

from config import WEEKDAY_ALIASES, WEEKDAYS_FULL
from errors import InvalidFormError, ReferenceResolutionError
from blueprints.timetable import store
from blueprints.timetable.engine import Conflict, SlotDraft, find_conflicts

log = logging.getLogger(__name__)

# порядок колонок шаблона; заголовок сверяется по подстроке без учёта регистра
EXPECTED_HEADERS = ["Teacher", "Weekday", "Lesson number", "Class", "Subgroup", "Subject", "Room"]
JSON_KEYS = ["Teacher", "Weekday", "LessonNumber", "Class", "Subgroup", "Subject", "Room"]


# ---------- util: CSV чтение с автоопределением разделителя
def read_csv_text(text: str) -> tuple[list[str], list[list[str]]]:
    # пробуем угадать разделитель, иначе ','; запасной вариант ';'
    lines = text.splitlines()
    if not lines:
        return [], []
    try:
        dialect = csv.Sniffer().sniff(lines[0], delimiters=",;\t")
        delim = dialect.delimiter
    except csv.Error:
        delim = "," if ("," in lines[0]) else ";"
    reader = csv.reader(StringIO(text), delimiter=delim)
    rows = list(reader)
    if not rows:
        return [], []
    header, data = rows[0], rows[1:]
    return [h.strip() for h in header], [list(map(str.strip, r)) for r in data]


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    # openpyxl отдаёт числа как int/float: 3.0 -> "3"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_xlsx(raw: bytes) -> tuple[list[str], list[list[str]]]:
    """Первый лист книги: (заголовок, строки данных), всё приведено к строкам."""
    try:
        wb = load_workbook(BytesIO(raw), read_only=True, data_only=True)
    except Exception as e:  # openpyxl бросает разное на битом файле
        raise InvalidFormError("cannot read workbook", details={"reason": str(e)}, code="BAD_FILE") from e
    try:
        ws = wb.worksheets[0]
        rows = [[_cell_text(v) for v in r] for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()
    if not rows:
        return [], []
    # хвостовые полностью пустые строки в xlsx не редкость
    data = [r for r in rows[1:] if any(r)]
    return rows[0], data


def read_table(filename: str, raw: bytes) -> tuple[list[str], list[list[str]]]:
    name = (filename or "").lower()
    if name.endswith(".xlsx"):
        return read_xlsx(raw)
    if name.endswith(".csv"):
        return read_csv_text(raw.decode("utf-8-sig", errors="replace"))
    raise InvalidFormError("unsupported file type, expected .xlsx or .csv",
                           details={"filename": filename}, code="UNSUPPORTED_FORMAT")


def check_header(header: Sequence[str]) -> None:
    ok = len(header) >= len(EXPECTED_HEADERS) and all(
        expected.lower() in (header[i] or "").lower()
        for i, expected in enumerate(EXPECTED_HEADERS)
    )
    if not ok:
        raise InvalidFormError(
            "invalid spreadsheet structure, check the template columns",
            details={"expected": EXPECTED_HEADERS, "got": list(header)},
            code="BAD_TEMPLATE",
        )


# ---------- контракты
@dataclass
class ImportRow:
    row_index: int  # строка листа (с заголовком = 1) или позиция в JSON-массиве с 1
    teacher: str
    weekday: str
    lesson_number: Optional[int]
    class_name: str
    subgroup: str
    subject: str
    room: str


@dataclass
class RowError:
    row_index: int
    code: str
    details: dict[str, Any] | None = None


@dataclass
class NormalizedImport:
    academic_period_id: int
    drafts: List[SlotDraft]
    scopes: List[Tuple[int, int]]
    skipped: List[RowError] = field(default_factory=list)
    warnings: List[RowError] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "academic_period_id": self.academic_period_id,
            "rows": len(self.drafts),
            "class_ids": sorted({c for c, _ in self.scopes}),
            "time_slots": [d.to_dict() for d in self.drafts],
            "skipped": [e.__dict__ for e in self.skipped],
            "warnings": [e.__dict__ for e in self.warnings],
            "conflicts": [c.__dict__ for c in self.conflicts],
        }


def _int_or_none(s: Any) -> Optional[int]:
    if isinstance(s, bool):
        return None
    if isinstance(s, float):
        # 3.0 из JSON или Excel -> 3; дробные не принимаем
        return int(s) if s.is_integer() else None
    try:
        return int(str(s).strip())
    except (TypeError, ValueError):
        return None


def _s(v: Any) -> str:
    return "" if v is None else str(v).strip()


def rows_from_table(data: Iterable[Sequence[str]]) -> List[ImportRow]:
    out: List[ImportRow] = []
    for i, r in enumerate(data, start=2):
        cells = list(r) + [""] * (len(EXPECTED_HEADERS) - len(r))
        out.append(ImportRow(
            row_index=i, teacher=_s(cells[0]), weekday=_s(cells[1]),
            lesson_number=_int_or_none(cells[2]), class_name=_s(cells[3]),
            subgroup=_s(cells[4]), subject=_s(cells[5]), room=_s(cells[6]),
        ))
    return out


def rows_from_json(payload: Any) -> List[ImportRow]:
    if not isinstance(payload, list) or not all(isinstance(x, dict) for x in payload):
        raise InvalidFormError("JSON import must be an array of objects", details={"keys": JSON_KEYS},
                               code="BAD_TEMPLATE")
    return [
        ImportRow(
            row_index=i, teacher=_s(o.get("Teacher")), weekday=_s(o.get("Weekday")),
            lesson_number=_int_or_none(o.get("LessonNumber")), class_name=_s(o.get("Class")),
            subgroup=_s(o.get("Subgroup")), subject=_s(o.get("Subject")), room=_s(o.get("Room")),
        )
        for i, o in enumerate(payload, start=1)
    ]


def filter_rows(rows: Sequence[ImportRow], max_lesson: int) -> Tuple[List[ImportRow], List[RowError]]:
    """Отбрасывает строки без учителя/дня/номера урока/предмета и с номером вне 1..max_lesson."""
    kept: List[ImportRow] = []
    skipped: List[RowError] = []
    for r in rows:
        missing = [name for name, val in (("Teacher", r.teacher), ("Weekday", r.weekday),
                                          ("Lesson number", r.lesson_number), ("Subject", r.subject))
                   if val in ("", None)]
        if missing:
            skipped.append(RowError(r.row_index, "MISSING_REQUIRED", {"fields": missing}))
            log.warning("import row skipped", extra={"event": "import_row_skipped", "row": r.row_index,
                                                     "reason": "MISSING_REQUIRED"})
            continue
        if not 1 <= r.lesson_number <= max_lesson:
            skipped.append(RowError(r.row_index, "LESSON_OUT_OF_RANGE", {"lesson_number": r.lesson_number}))
            log.warning("import row skipped", extra={"event": "import_row_skipped", "row": r.row_index,
                                                     "reason": "LESSON_OUT_OF_RANGE"})
            continue
        kept.append(r)
    return kept, skipped


def normalize_weekday(raw: str) -> Optional[str]:
    value = raw.strip()
    if value in WEEKDAYS_FULL:
        return value
    low = value.lower()
    for day in WEEKDAYS_FULL:
        if day.lower() == low:
            return day
    return WEEKDAY_ALIASES.get(low)


def parse_subgroup(raw: str) -> Optional[int]:
    # "2", "2 группа", "подгруппа 1" -> число; пусто -> None
    digits = re.sub(r"[^\d]", "", raw or "")
    return int(digits) if digits else None


def _unresolved(row: ImportRow, what: str, value: Any) -> ReferenceResolutionError:
    return ReferenceResolutionError(
        f"row {row.row_index}: unknown {what} {value!r}",
        details={"row": row.row_index, "field": what, "value": value},
    )


def normalize_rows(
    rows: Sequence[ImportRow],
    ref: store.ReferenceData,
    *,
    period_id: int,
    selected_class_id: Optional[int] = None,
    split_unspecified: bool = True,
) -> NormalizedImport:
    """Разрешает имена в id и строит черновики строк time_slots.

    Предмет с флагом is_subgroup: номер подгруппы указан -> одна строка этой
    подгруппы; не указан -> две строки, у второй кабинет первый из справочника.
    Предмет без флага всегда идёт на весь класс.
    """
    teachers = {t.name: t for t in ref.teachers}
    rooms = {r.room_number: r for r in ref.rooms}
    lessons = {ls.lesson_number: ls for ls in ref.lessons}
    classes = {c.name: c for c in ref.classes}
    subjects = ref.subjects_by_name()

    drafts: List[SlotDraft] = []
    warnings: List[RowError] = []
    for row in rows:
        teacher = teachers.get(row.teacher)
        if teacher is None:
            raise _unresolved(row, "teacher", row.teacher)
        room = rooms.get(row.room)
        if room is None:
            raise _unresolved(row, "room", row.room)
        lesson = lessons.get(row.lesson_number)
        if lesson is None:
            raise _unresolved(row, "lesson", row.lesson_number)
        day = normalize_weekday(row.weekday)
        if day is None:
            raise _unresolved(row, "weekday", row.weekday)

        class_name = row.class_name.split("(")[0].strip()
        if class_name:
            cls = classes.get(class_name)
            if cls is None:
                raise _unresolved(row, "class", row.class_name)
            class_id = cls.id
        elif selected_class_id is not None:
            class_id = selected_class_id
        else:
            raise _unresolved(row, "class", row.class_name)

        subject = subjects.get(row.subject)
        flagged = bool(subject and subject.is_subgroup)
        extra = bool(subject and subject.is_extracurricular)
        base = dict(day=day, lesson_id=lesson.id, subject=row.subject, teacher_id=teacher.id,
                    class_id=class_id, academic_period_id=period_id, is_extracurricular=extra)

        if not flagged:
            drafts.append(SlotDraft(room_id=room.id, subgroup=None, **base))
            continue

        number = parse_subgroup(row.subgroup)
        if number is not None:
            if number not in (1, 2):
                raise InvalidFormError(f"row {row.row_index}: subgroup must be 1 or 2",
                                       details={"row": row.row_index, "subgroup": row.subgroup})
            drafts.append(SlotDraft(room_id=room.id, subgroup=number, **base))
        elif split_unspecified and ref.rooms:
            fallback = ref.rooms[0]
            drafts.append(SlotDraft(room_id=room.id, subgroup=1, **base))
            drafts.append(SlotDraft(room_id=fallback.id, subgroup=2, **base))
            warnings.append(RowError(row.row_index, "SUBGROUP_ROOM_DEFAULTED",
                                     {"room": fallback.room_number}))
            log.warning("subgroup 2 room defaulted", extra={"event": "import_subgroup_defaulted",
                                                            "row": row.row_index,
                                                            "room": fallback.room_number})
        else:
            drafts.append(SlotDraft(room_id=room.id, subgroup=None, **base))

    scopes = sorted({(d.class_id, period_id) for d in drafts})
    return NormalizedImport(academic_period_id=period_id, drafts=drafts, scopes=scopes, warnings=warnings)


# ---------- фасад
def _prepare(rows: Sequence[ImportRow], *, class_id: Optional[int], period_id: Optional[int]) -> NormalizedImport:
    cfg = current_app.config
    period = store.resolve_period(period_id)
    if class_id is not None:
        store.get_class(class_id)
    kept, skipped = filter_rows(rows, int(cfg.get("IMPORT_MAX_LESSON_NUMBER", 8)))
    if not kept:
        raise InvalidFormError("no valid lessons found in import", details={"skipped": len(skipped)},
                               code="EMPTY_IMPORT")
    result = normalize_rows(
        kept, store.load_reference_data(),
        period_id=period.id,
        selected_class_id=class_id,
        split_unspecified=bool(cfg.get("IMPORT_SPLIT_UNSPECIFIED_SUBGROUPS", True)),
    )
    result.skipped = skipped
    others = store.occupancy_rows_outside([c for c, _ in result.scopes], period.id)
    result.conflicts = find_conflicts([*others, *result.drafts])
    return result


def preview_import(rows: Sequence[ImportRow], *, class_id: Optional[int] = None,
                   period_id: Optional[int] = None) -> NormalizedImport:
    """Нормализация без записи: черновики, пропущенные строки и найденные конфликты."""
    return _prepare(rows, class_id=class_id, period_id=period_id)


def commit_import(rows: Sequence[ImportRow], *, class_id: Optional[int] = None,
                  period_id: Optional[int] = None) -> NormalizedImport:
    result = _prepare(rows, class_id=class_id, period_id=period_id)
    if result.conflicts:
        log.warning("import has conflicts", extra={"event": "import_conflicts",
                                                   "count": len(result.conflicts)})
    store.replace_scope(result.scopes, result.drafts)
    log.info("timetable imported", extra={"event": "timetable_imported", "inserted": len(result.drafts),
                                          "skipped": len(result.skipped), "scopes": result.scopes})
    return result
