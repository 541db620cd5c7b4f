from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class GenerateIn(BaseModel):
    academic_period_id: Optional[int] = None
    # по умолчанию TIMETABLE_WEEKDAYS из конфига
    weekdays: Optional[List[str]] = None


class CellRowIn(BaseModel):
    subject: str = ""
    teacher_id: Optional[int] = None
    room_id: Optional[int] = None
    subgroup: Optional[int] = Field(None, ge=1, le=2)


class CellIn(BaseModel):
    academic_period_id: Optional[int] = None
    rows: List[CellRowIn] = Field(default_factory=list, max_length=2)


class CellEditIn(CellIn):
    action: Literal["split", "merge", "set_subject", "set_teacher", "set_room"]
    subgroup: Optional[int] = Field(None, ge=1, le=2)
    subject: Optional[str] = None
    teacher_id: Optional[int] = None
    room_id: Optional[int] = None
