from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from chemstock.routes.products import json_body
from chemstock.services import inventory_queries
from chemstock.services.stock_update import apply_movement


bp = Blueprint("inventory", __name__, url_prefix="/inventory")


@bp.get("")
def list_inventory():
    """Current stock for every product, ordered by product name."""

    return jsonify([view.to_dict() for view in inventory_queries.list_inventory()])


@bp.get("/product/<int(min=1, max=2147483647):product_id>")
def product_inventory(product_id: int):
    return jsonify(inventory_queries.get_inventory(product_id).to_dict())


@bp.post("/update-stock")
def update_stock():
    """Record an IN or OUT movement.

    Expects ``{"product_id", "movement_type", "quantity"}``. Answers 400 with
    ``currentStock`` and ``requested`` when an OUT exceeds the balance.
    """

    payload = json_body()
    result = apply_movement(
        payload.get("product_id"),
        payload.get("movement_type"),
        payload.get("quantity"),
    )
    return jsonify(result.to_dict())


@bp.get("/history/<int(min=1, max=2147483647):product_id>")
def product_history(product_id: int):
    return jsonify(
        [view.to_dict() for view in inventory_queries.product_history(product_id)]
    )


@bp.get("/history")
def recent_history():
    cap = current_app.config.get("HISTORY_LIMIT", inventory_queries.HISTORY_CAP)
    limit = request.args.get("limit", type=int)
    movements = inventory_queries.recent_history(limit, cap=cap)
    return jsonify([view.to_dict() for view in movements])
