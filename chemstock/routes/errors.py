from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from werkzeug.exceptions import HTTPException

from chemstock.errors import StockError
from chemstock.extensions import db

bp = Blueprint("errors", __name__)


def _rollback() -> None:
    try:
        db.session.rollback()
    except Exception:  # pragma: no cover - best-effort cleanup
        current_app.logger.exception("Failed to roll back session after error")


@bp.app_errorhandler(StockError)
def handle_stock_error(error: StockError):
    _rollback()

    if error.expected:
        current_app.logger.info("%s: %s", error.code, error.message)
    else:
        current_app.logger.exception(
            "Stock operation failed: %s", error.message, exc_info=error.__cause__ or error
        )

    payload = {"error": error.message, "code": error.code}
    payload.update(error.extra())
    return jsonify(payload), error.status_code


@bp.app_errorhandler(HTTPException)
def handle_http_error(error: HTTPException):
    # Redirects and other non-error responses pass through untouched.
    if error.code is not None and error.code < 400:
        return error

    if error.code and error.code >= 500:
        _rollback()
        current_app.logger.error("HTTP %s: %s", error.code, error.description)

    return jsonify({"error": error.description or error.name}), error.code or 500


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    _rollback()
    current_app.logger.exception("Unhandled exception", exc_info=error)
    return jsonify({"error": "Internal Server Error"}), 500
