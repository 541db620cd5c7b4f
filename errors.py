from __future__ import annotations
from typing import Any


class TimetableError(Exception):
    """Базовая ошибка: код, сообщение, детали и HTTP-статус для ответа."""
    code = "TIMETABLE_ERROR"
    status = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ReferenceResolutionError(TimetableError):
    # строка импорта ссылается на неизвестного учителя/кабинет/урок/класс
    code = "REFERENCE_NOT_FOUND"
    status = 422


class NoObligationsError(TimetableError):
    code = "NO_OBLIGATIONS"
    status = 422


class InvalidFormError(TimetableError):
    code = "INVALID_FORM"
    status = 422


class ScheduleConflictError(TimetableError):
    code = "SCHEDULE_CONFLICT"
    status = 409


class NotFoundError(TimetableError):
    code = "NOT_FOUND"
    status = 404


class TransientFetchError(TimetableError):
    code = "FETCH_FAILED"
    status = 503


class WriteError(TimetableError):
    code = "WRITE_FAILED"
    status = 500
