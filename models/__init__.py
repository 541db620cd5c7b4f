from datetime import datetime, time, date

from sqlalchemy import (
    ForeignKey, UniqueConstraint, Index, CheckConstraint, Boolean, Date, DateTime, Time,
    Integer, JSON
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from extensions import db


# ---------- Association Tables ----------
teacher_rooms = db.Table(
    "teacher_rooms",
    db.Column("teacher_id", db.Integer, db.ForeignKey("teachers.id", ondelete="CASCADE"), primary_key=True),
    db.Column("room_id", db.Integer, db.ForeignKey("rooms.id", ondelete="CASCADE"), primary_key=True),
    db.UniqueConstraint("teacher_id", "room_id", name="uq_teacher_rooms_teacher_room"),
)


# ---------- Reference Entities ----------
class AcademicPeriod(db.Model):
    __tablename__ = "academic_periods"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<AcademicPeriod {self.name}>"


class Teacher(db.Model):
    __tablename__ = "teachers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)
    # имена предметов и классов, как их хранит справочник
    subjects: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    supervised_classes: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    work_days: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    is_part_time: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    rooms = relationship("Room", secondary=teacher_rooms, order_by="Room.room_number")

    def __repr__(self):
        return f"<Teacher {self.name}>"


class Subject(db.Model):
    __tablename__ = "subjects"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False, unique=True)
    is_subgroup: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_extracurricular: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Subject {self.name}>"


class Room(db.Model):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(primary_key=True)
    room_number: Mapped[str] = mapped_column(db.String(50), nullable=False, unique=True)
    subject_id: Mapped[int | None] = mapped_column(ForeignKey("subjects.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    subject = relationship("Subject")

    def __repr__(self):
        return f"<Room {self.room_number}>"


class SchoolClass(db.Model):
    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(50), nullable=False, unique=True, index=True)
    grade: Mapped[int] = mapped_column(Integer, nullable=False)
    literal: Mapped[str] = mapped_column(db.String(10), nullable=False, default="")
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id", ondelete="SET NULL"))
    supervisor_teacher_id: Mapped[int | None] = mapped_column(ForeignKey("teachers.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    room = relationship("Room", foreign_keys=[room_id])
    supervisor = relationship("Teacher")

    def __repr__(self):
        return f"<SchoolClass {self.name}>"


class Lesson(db.Model):
    """Урок как слот дня: порядковый номер и интервал времени."""
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(primary_key=True)
    lesson_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("lesson_number", name="uq_lessons_lesson_number"),
        Index("ix_lessons_lesson_number", "lesson_number"),
    )


class Syllabus(db.Model):
    __tablename__ = "syllabus"

    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    hours_per_week: Mapped[int | None] = mapped_column(Integer)

    school_class = relationship("SchoolClass")
    subject = relationship("Subject")
    teacher = relationship("Teacher")

    __table_args__ = (
        UniqueConstraint("class_id", "subject_id", "teacher_id", name="uq_syllabus_tuple"),
    )


class SubjectTeacher(db.Model):
    __tablename__ = "subject_teachers"

    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)

    subject = relationship("Subject")
    teacher = relationship("Teacher")

    __table_args__ = (
        UniqueConstraint("class_id", "subject_id", "teacher_id", name="uq_subject_teachers_tuple"),
    )


# ---------- Schedule ----------
class TimeSlot(db.Model):
    """Одна клетка расписания класса: день, урок, (подгруппа) -> предмет/учитель/кабинет."""
    __tablename__ = "time_slots"

    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    academic_period_id: Mapped[int] = mapped_column(ForeignKey("academic_periods.id", ondelete="CASCADE"), nullable=False)
    day: Mapped[str] = mapped_column(db.String(16), nullable=False)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    subject: Mapped[str] = mapped_column(db.String(255), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id", ondelete="RESTRICT"), nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False)
    subgroup: Mapped[int | None] = mapped_column(Integer)
    is_extracurricular: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass")
    lesson = relationship("Lesson")
    teacher = relationship("Teacher")
    room = relationship("Room")

    __table_args__ = (
        CheckConstraint("subgroup IS NULL OR subgroup IN (1, 2)", name="ck_time_slots_subgroup"),
        Index("ix_time_slots_scope", "class_id", "academic_period_id"),
        Index("ix_time_slots_cell", "academic_period_id", "day", "lesson_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "class_id": self.class_id,
            "academic_period_id": self.academic_period_id,
            "day": self.day,
            "lesson_id": self.lesson_id,
            "subject": self.subject,
            "teacher_id": self.teacher_id,
            "room_id": self.room_id,
            "subgroup": self.subgroup,
            "is_extracurricular": self.is_extracurricular,
        }
