from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chemstock.errors import Conflict, Internal, InvalidInput, NotFound
from chemstock.extensions import db
from chemstock.models import ChemicalProduct, InventoryBalance, UnitOfMeasurement
from chemstock.services.inventory_queries import ProductView, get_product


def _clean_fields(
    product_name: object, cas_number: object, unit_of_measurement: object
) -> tuple[str, str, str]:
    values = []
    for raw in (product_name, cas_number, unit_of_measurement):
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidInput("All fields are required")
        values.append(raw.strip())

    name, cas, unit = values
    if unit not in UnitOfMeasurement.ALL:
        raise InvalidInput("Invalid unit of measurement. Must be KG, MT, or Litre")
    if len(name) > 255:
        raise InvalidInput("Product name must be 255 characters or fewer")
    if len(cas) > 50:
        raise InvalidInput("CAS number must be 50 characters or fewer")
    return name, cas, unit


def _cas_taken(cas_number: str, exclude_id: int | None = None) -> bool:
    query = ChemicalProduct.query.filter(ChemicalProduct.cas_number == cas_number)
    if exclude_id is not None:
        query = query.filter(ChemicalProduct.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def _is_duplicate_cas(error: IntegrityError) -> bool:
    original = getattr(error, "orig", None)
    pgcode = getattr(original, "pgcode", None)
    if pgcode == "23505":
        diag = getattr(original, "diag", None)
        constraint = getattr(diag, "constraint_name", None) if diag else None
        if constraint:
            return "cas_number" in constraint

    message = str(error).lower()
    return "unique" in message and "cas_number" in message


def _commit(action: str) -> None:
    """Commit the session, mapping storage failures onto the error taxonomy."""

    try:
        db.session.commit()
    except IntegrityError as error:
        db.session.rollback()
        if _is_duplicate_cas(error):
            raise Conflict("CAS number must be unique") from error
        raise Internal(f"Failed to {action}") from error
    except SQLAlchemyError as error:
        db.session.rollback()
        raise Internal(f"Failed to {action}") from error


def create_product(
    product_name: object, cas_number: object, unit_of_measurement: object
) -> ProductView:
    """Register a product together with its zero balance row."""

    name, cas, unit = _clean_fields(product_name, cas_number, unit_of_measurement)
    if _cas_taken(cas):
        raise Conflict("CAS number must be unique")

    product = ChemicalProduct(
        product_name=name,
        cas_number=cas,
        unit_of_measurement=unit,
        balance=InventoryBalance(current_stock_quantity=Decimal("0")),
    )
    db.session.add(product)
    _commit("create product")

    current_app.logger.info("Created product %s (%s)", product.id, cas)
    return get_product(product.id)


def update_product(
    product_id: int,
    product_name: object,
    cas_number: object,
    unit_of_measurement: object,
) -> ProductView:
    name, cas, unit = _clean_fields(product_name, cas_number, unit_of_measurement)

    product = db.session.get(ChemicalProduct, product_id)
    if product is None:
        raise NotFound("Product not found")
    if _cas_taken(cas, exclude_id=product_id):
        raise Conflict("CAS number must be unique")

    product.product_name = name
    product.cas_number = cas
    product.unit_of_measurement = unit
    product.updated_at = datetime.utcnow()
    _commit("update product")

    current_app.logger.info("Updated product %s", product_id)
    return get_product(product_id)


def delete_product(product_id: int) -> None:
    """Delete a product; its balance and movement history go with it."""

    product = db.session.get(ChemicalProduct, product_id)
    if product is None:
        raise NotFound("Product not found")

    db.session.delete(product)
    _commit("delete product")

    current_app.logger.info("Deleted product %s and its stock history", product_id)
