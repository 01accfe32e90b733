import logging

from flask import Flask, current_app, request
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .extensions import cors, db
from .routes import errors, health, inventory, products
from config import Config
from . import models  # ensure models are registered with SQLAlchemy


def _ping_database() -> None:
    """Raise :class:`OperationalError` when the configured database is unreachable."""

    with db.engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def _configure_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)


def _api_path(app: Flask, path: str) -> str:
    prefix = (app.config.get("API_PREFIX") or "").rstrip("/")
    return f"{prefix}{path}"


def _cors_origins(app: Flask):
    raw = app.config.get("CORS_ORIGINS") or "*"
    if isinstance(raw, str):
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        return "*" if origins in ([], ["*"]) else origins
    return list(raw)


def create_app(config_override=None):
    app = Flask(__name__)

    # load configuration from environment variables
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    _configure_logging(app)

    # /health reports these; startup continues during an outage.
    app.config.setdefault("DATABASE_AVAILABLE", True)
    app.config.setdefault("DATABASE_ERROR", None)

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///:memory:"):
        engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        connect_args = engine_options.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine_options.setdefault("poolclass", StaticPool)

    db.init_app(app)
    cors.init_app(app, origins=_cors_origins(app))

    database_available = True
    database_error_message: str | None = None

    # create tables if they do not exist
    with app.app_context():
        try:
            _ping_database()
        except OperationalError as exc:
            database_available = False
            root_cause = getattr(exc, "orig", exc)
            details = str(root_cause).strip()
            database_error_message = (
                "Unable to connect to the configured database. Start the "
                "PostgreSQL service or update the DB_URL setting, then restart "
                "the server."
            )
            if details:
                database_error_message += f" (Error: {details})"
            message_suffix = f": {details}" if details else ""
            current_app.logger.error(
                "Database connection unavailable during startup%s",
                message_suffix,
                exc_info=current_app.debug,
            )
            db.session.remove()
            try:
                db.engine.dispose()
            except Exception:  # pragma: no cover - best-effort cleanup
                pass
        else:
            try:
                db.create_all()
                current_app.logger.info("Database tables verified")
            except SQLAlchemyError:  # pragma: no cover
                database_available = False
                database_error_message = (
                    "The database schema could not be initialized. Review the logs "
                    "for details and restart once resolved."
                )
                current_app.logger.exception("Database initialization error")
                db.session.remove()

    app.config["DATABASE_AVAILABLE"] = database_available
    app.config["DATABASE_ERROR"] = database_error_message

    # register blueprints
    app.register_blueprint(errors.bp)
    app.register_blueprint(products.bp, url_prefix=_api_path(app, "/products"))
    app.register_blueprint(inventory.bp, url_prefix=_api_path(app, "/inventory"))
    app.register_blueprint(health.bp, url_prefix=_api_path(app, "/health"))

    def _should_log_request() -> bool:
        if not request.endpoint:
            return False
        if request.method == "OPTIONS":
            return False
        return True

    @app.after_request
    def _log_request(response):
        if _should_log_request():
            app.logger.debug(
                "%s %s -> %s", request.method, request.path, response.status_code
            )
        return response

    return app
