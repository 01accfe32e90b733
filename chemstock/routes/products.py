from __future__ import annotations

from flask import Blueprint, jsonify, request

from chemstock.errors import InvalidInput
from chemstock.services import inventory_queries, products


bp = Blueprint("products", __name__, url_prefix="/products")


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidInput("Request body must be a JSON object")
    return payload


@bp.get("")
def list_products():
    """All products with their current stock, newest first."""

    return jsonify([view.to_dict() for view in inventory_queries.list_products()])


@bp.get("/<int(min=1, max=2147483647):product_id>")
def get_product(product_id: int):
    return jsonify(inventory_queries.get_product(product_id).to_dict())


@bp.post("")
def create_product():
    payload = json_body()
    view = products.create_product(
        payload.get("product_name"),
        payload.get("cas_number"),
        payload.get("unit_of_measurement"),
    )
    return jsonify(view.to_dict()), 201


@bp.put("/<int(min=1, max=2147483647):product_id>")
def update_product(product_id: int):
    payload = json_body()
    view = products.update_product(
        product_id,
        payload.get("product_name"),
        payload.get("cas_number"),
        payload.get("unit_of_measurement"),
    )
    return jsonify(view.to_dict())


@bp.delete("/<int(min=1, max=2147483647):product_id>")
def delete_product(product_id: int):
    products.delete_product(product_id)
    return jsonify({"message": "Product deleted successfully"})


@bp.get("/search/<path:term>")
def search_products(term: str):
    """Search by product name or CAS number."""

    return jsonify([view.to_dict() for view in inventory_queries.search_products(term)])
