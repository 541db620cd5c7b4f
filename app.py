from __future__ import annotations
import logging
import os
from importlib import import_module
from flask import Flask, jsonify
from pydantic import ValidationError
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from config import config_map
from errors import TimetableError
from extensions import db, migrate

log = logging.getLogger(__name__)

def _seed_from_config(app):
    if not app.config.get("SEED_TEST_DATA"):
        return
    with app.app_context():
        # таблицы может ещё не быть (alembic upgrade и т.п.)
        if not inspect(db.engine).has_table("time_slots"):
            return
        from seed import seed_demo  # локальный импорт, чтобы избежать циклов
        seed_demo()

def _errors(*items):
    return {"ok": False, "errors": list(items)}

def _pydantic_errors_safe(ve: ValidationError):
    errs = ve.errors()  # список dict
    for e in errs:
        if "ctx" in e and isinstance(e["ctx"], dict):
            e["ctx"] = {k: str(v) for k, v in e["ctx"].items()}
        e.pop("url", None)
    return errs

def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(TimetableError)
    def _timetable_error(ex: TimetableError):
        level = logging.ERROR if ex.status >= 500 else logging.WARNING
        log.log(level, ex.message, extra={"event": "request_failed", "code": ex.code})
        return jsonify(_errors(ex.to_dict())), ex.status

    @app.errorhandler(ValidationError)
    def _validation_error(ex: ValidationError):
        return jsonify(_errors({"code": "VALIDATION_ERROR", "message": "invalid request body",
                                "details": _pydantic_errors_safe(ex)})), 422

    @app.errorhandler(IntegrityError)
    def _integrity_error(ex: IntegrityError):
        db.session.rollback()
        # Нормализуем в 409 CONFLICT
        if "FOREIGN KEY" in str(ex.orig).upper():
            return jsonify(_errors({"code": "FK_CONSTRAINT", "message": "Row is still referenced",
                                    "details": {}})), 409
        return jsonify(_errors({"code": "UNIQUE_CONSTRAINT", "message": "Unique constraint violation",
                                "details": {}})), 409

    @app.errorhandler(HTTPException)
    def _http_error(ex: HTTPException):
        code = (ex.name or "error").upper().replace(" ", "_")
        return jsonify(_errors({"code": code, "message": ex.description, "details": {}})), ex.code

def register_blueprints(app: Flask) -> None:
    # Жёстко импортируем модуль с маршрутами core перед взятием bp
    import_module("blueprints.core.routes")
    from blueprints.core import bp as core_bp
    from blueprints.directory import bp as directory_bp
    from blueprints.timetable import api_bp as timetable_api_bp
    from blueprints.import_export.routes import api_bp as import_export_api_bp

    # core без префикса → '/health' в корне
    app.register_blueprint(core_bp)
    app.register_blueprint(directory_bp, url_prefix="/directory")
    app.register_blueprint(timetable_api_bp, url_prefix="/api/v1")
    app.register_blueprint(import_export_api_bp, url_prefix="/api/v1")

def create_app(config_name: str | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    cfg_name = config_name or os.getenv("FLASK_CONFIG", "default")
    app.config.from_object(config_map[cfg_name])
    # --- ВАЖНО: изоляция БД в тестах ---
    # pytest всегда выставляет переменную окружения PYTEST_CURRENT_TEST.
    # Делаем БД в памяти, чтобы никакие изменения из одного теста не протекали в другой.
    if os.environ.get("PYTEST_CURRENT_TEST"):
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"connect_args": {"check_same_thread": False}})

    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError:
        pass
    db.init_app(app)
    migrate.init_app(app, db)
    register_error_handlers(app)
    register_blueprints(app)
    _seed_from_config(app)
    return app
