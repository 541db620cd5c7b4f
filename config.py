from __future__ import annotations
import os
from pathlib import Path

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
WEEKDAYS_FULL = WEEKDAYS + ["Saturday", "Sunday"]

# названия дней из импортируемых файлов -> канонические
WEEKDAY_ALIASES = {
    "понедельник": "Monday",
    "вторник": "Tuesday",
    "среда": "Wednesday",
    "четверг": "Thursday",
    "пятница": "Friday",
    "суббота": "Saturday",
    "воскресенье": "Sunday",
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
    "sun": "Sunday",
}

class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    BASE_DIR = Path(__file__).resolve().parent
    # SQLite file in project directory
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'app.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    TIMETABLE_WEEKDAYS = WEEKDAYS
    DAILY_GRID_WEEKDAYS = WEEKDAYS_FULL
    TIMETABLE_RANDOM_SEED: int | None = None
    TIMETABLE_ENFORCE_WEEKLY_HOURS = False

    # ретраи только для чтения
    FETCH_RETRY_ATTEMPTS = 3
    FETCH_RETRY_BASE_DELAY = 0.2

    IMPORT_MAX_LESSON_NUMBER = 8
    IMPORT_SPLIT_UNSPECIFIED_SUBGROUPS = True

class DevConfig(BaseConfig):
    DEBUG = True
    SEED_TEST_DATA = True

class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SEED_TEST_DATA = False
    TIMETABLE_RANDOM_SEED = 1
    FETCH_RETRY_BASE_DELAY = 0.0

class ProdConfig(BaseConfig):
    DEBUG = False
    SEED_TEST_DATA = False

config_map = {
    "dev": DevConfig,
    "test": TestConfig,
    "prod": ProdConfig,
    "default": DevConfig,
}
