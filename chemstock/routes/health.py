from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from chemstock.extensions import db


bp = Blueprint("health", __name__, url_prefix="/health")


def _database_online() -> bool:
    try:
        with db.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.warning("Health check could not reach the database: %s", exc)
        return False
    return True


@bp.get("")
def health():
    online = _database_online()
    return jsonify(
        {
            "status": "OK",
            "message": "Server is running",
            "database": "online" if online else "offline",
        }
    )
