from __future__ import annotations
from datetime import date, time
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator

from .validators import ensure_date_range, ensure_time_range

# ---------- Classes ----------
class ClassIn(BaseModel):
    grade: int = Field(ge=1, le=12)
    literal: str = Field("", max_length=10)
    # пусто -> f"{grade}{literal}"
    name: Optional[str] = Field(None, max_length=50)
    room_id: Optional[int] = None
    supervisor_teacher_id: Optional[int] = None

class ClassOut(BaseModel):
    id: int
    name: str
    grade: int
    literal: str
    room_id: Optional[int] = None
    supervisor_teacher_id: Optional[int] = None

# ---------- Subjects ----------
class SubjectIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    is_subgroup: bool = False
    is_extracurricular: bool = False

class SubjectOut(SubjectIn):
    id: int

# ---------- Teachers ----------
class TeacherIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subjects: List[str] = Field(default_factory=list)
    supervised_classes: List[str] = Field(default_factory=list)
    work_days: List[str] = Field(default_factory=list)
    is_part_time: bool = False
    room_ids: List[int] = Field(default_factory=list)

class TeacherOut(TeacherIn):
    id: int

# ---------- Rooms ----------
class RoomIn(BaseModel):
    room_number: str = Field(min_length=1, max_length=50)
    subject_id: Optional[int] = None

class RoomOut(RoomIn):
    id: int

# ---------- Lessons ----------
class LessonIn(BaseModel):
    lesson_number: int = Field(ge=1)
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_range(self):
        ensure_time_range(self.start_time, self.end_time)
        return self

class LessonOut(LessonIn):
    id: int

# ---------- Academic periods ----------
class AcademicPeriodIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    start_date: date
    end_date: date
    is_active: bool = False

    @model_validator(mode="after")
    def check_range(self):
        ensure_date_range(self.start_date, self.end_date)
        return self

class AcademicPeriodOut(AcademicPeriodIn):
    id: int

# ---------- Syllabus ----------
class SyllabusIn(BaseModel):
    class_id: int
    subject_id: int
    teacher_id: int
    hours_per_week: Optional[int] = Field(None, ge=0)

class SyllabusOut(SyllabusIn):
    id: int

# ---------- Subject teachers ----------
class SubjectTeacherIn(BaseModel):
    class_id: int
    subject_id: int
    teacher_id: int

class SubjectTeacherOut(SubjectTeacherIn):
    id: int
