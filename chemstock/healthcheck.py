import argparse
import datetime as dt
import logging
import os

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError

from config import Config

REQUIRED_TABLES = ("chemical_products", "inventory", "stock_movements")


def _mask_db_url(raw_url: str) -> str:
    try:
        parsed = make_url(raw_url)
        if parsed.password:
            parsed = parsed.set(password="***")
        return parsed.render_as_string(hide_password=False)
    except Exception:
        if "@" in raw_url:
            prefix, remainder = raw_url.split("@", 1)
            if ":" in prefix:
                user, _ = prefix.rsplit(":", 1)
                return f"{user}:***@{remainder}"
        return raw_url


def _render_banner(lines: list[str]) -> str:
    width = max(len(line) for line in lines) + 4
    border = "+" + "-" * (width - 2) + "+"
    body = [f"| {line.ljust(width - 4)} |" for line in lines]
    return "\n".join([border, *body, border])


def _build_engine(database_url: str):
    return create_engine(database_url, pool_pre_ping=True)


def _check_database(engine, logger: logging.Logger) -> tuple[bool, str | None]:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True, None
    except SQLAlchemyError as exc:
        logger.warning("Database connection failed: %s", exc)
        return False, str(exc)


def _missing_tables(engine, logger: logging.Logger) -> list[str]:
    try:
        existing = set(inspect(engine).get_table_names())
    except SQLAlchemyError as exc:
        logger.warning("Schema inspection failed: %s", exc)
        return list(REQUIRED_TABLES)
    return [table for table in REQUIRED_TABLES if table not in existing]


def _overall_status(database_ok: bool, missing_tables: list[str]) -> str:
    if not database_ok:
        return "FAIL"
    if missing_tables:
        return "WARN"
    return "OK"


def run_healthcheck(nonfatal: bool, database_url: str | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logger = logging.getLogger("chemstock.healthcheck")

    database_url = database_url or Config.SQLALCHEMY_DATABASE_URI
    masked_url = _mask_db_url(database_url)

    engine = _build_engine(database_url)
    try:
        database_ok, error_message = _check_database(engine, logger)
        missing = _missing_tables(engine, logger) if database_ok else []
    finally:
        engine.dispose()

    status = _overall_status(database_ok, missing)
    timestamp = dt.datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")
    bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")
    workers = os.getenv("GUNICORN_WORKERS", "2")

    lines = [
        f"Chemical Stock API Health Check - {timestamp}",
        f"App boot status: {status}",
        f"DB connection: {'OK' if database_ok else 'FAIL'}",
        f"Schema: {'missing ' + ', '.join(missing) if missing else 'OK'}",
        f"DB_URL: {masked_url}",
        f"Gunicorn: bind={bind} workers={workers}",
    ]

    if error_message:
        lines.append(f"DB error: {error_message}")

    print(_render_banner(lines))

    if status != "OK" and not nonfatal:
        return 1
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Chemical stock API health check")
    parser.add_argument(
        "--fatal",
        action="store_true",
        help="Exit with non-zero status when checks fail",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL to check instead of DB_URL",
    )
    args = parser.parse_args(argv)

    exit_code = run_healthcheck(nonfatal=not args.fatal, database_url=args.db_url)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
