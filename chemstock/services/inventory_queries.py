from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_

from chemstock.errors import NotFound
from chemstock.extensions import db
from chemstock.models import ChemicalProduct, InventoryBalance, StockMovement

HISTORY_CAP = 100


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ProductView:
    id: int
    product_name: str
    cas_number: str
    unit_of_measurement: str
    current_stock_quantity: Decimal
    created_at: datetime | None
    updated_at: datetime | None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "cas_number": self.cas_number,
            "unit_of_measurement": self.unit_of_measurement,
            "current_stock_quantity": float(self.current_stock_quantity),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class InventoryView:
    id: int
    product_name: str
    cas_number: str
    unit_of_measurement: str
    current_stock_quantity: Decimal
    last_updated: datetime | None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "cas_number": self.cas_number,
            "unit_of_measurement": self.unit_of_measurement,
            "current_stock_quantity": float(self.current_stock_quantity),
            "last_updated": _iso(self.last_updated),
        }


@dataclass(frozen=True)
class MovementView:
    id: int
    product_id: int
    movement_type: str
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    created_at: datetime | None
    product_name: str
    cas_number: str

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": float(self.quantity),
            "previous_stock": float(self.previous_stock),
            "new_stock": float(self.new_stock),
            "created_at": _iso(self.created_at),
            "product_name": self.product_name,
            "cas_number": self.cas_number,
        }


def _stock_column():
    return func.coalesce(InventoryBalance.current_stock_quantity, 0).label(
        "current_stock_quantity"
    )


def _product_query():
    return db.session.query(
        ChemicalProduct.id,
        ChemicalProduct.product_name,
        ChemicalProduct.cas_number,
        ChemicalProduct.unit_of_measurement,
        _stock_column(),
        ChemicalProduct.created_at,
        ChemicalProduct.updated_at,
    ).outerjoin(InventoryBalance, InventoryBalance.product_id == ChemicalProduct.id)


def _product_view(row) -> ProductView:
    (
        product_id,
        product_name,
        cas_number,
        unit,
        stock,
        created_at,
        updated_at,
    ) = row
    return ProductView(
        id=product_id,
        product_name=product_name,
        cas_number=cas_number,
        unit_of_measurement=unit,
        current_stock_quantity=to_decimal(stock),
        created_at=created_at,
        updated_at=updated_at,
    )


def list_products() -> list[ProductView]:
    rows = (
        _product_query()
        .order_by(ChemicalProduct.created_at.desc(), ChemicalProduct.id.desc())
        .all()
    )
    return [_product_view(row) for row in rows]


def get_product(product_id: int) -> ProductView:
    row = _product_query().filter(ChemicalProduct.id == product_id).first()
    if row is None:
        raise NotFound("Product not found")
    return _product_view(row)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_products(term: str | None) -> list[ProductView]:
    """Match ``term`` case-insensitively anywhere in the name or CAS number.

    Wildcard characters in ``term`` are matched literally.
    """

    term = (term or "").strip()
    if not term:
        return []

    pattern = f"%{_escape_like(term.lower())}%"
    rows = (
        _product_query()
        .filter(
            or_(
                func.lower(ChemicalProduct.product_name).like(pattern, escape="\\"),
                func.lower(ChemicalProduct.cas_number).like(pattern, escape="\\"),
            )
        )
        .order_by(ChemicalProduct.product_name, ChemicalProduct.id)
        .all()
    )
    return [_product_view(row) for row in rows]


def _inventory_query():
    return db.session.query(
        ChemicalProduct.id,
        ChemicalProduct.product_name,
        ChemicalProduct.cas_number,
        ChemicalProduct.unit_of_measurement,
        _stock_column(),
        InventoryBalance.updated_at.label("last_updated"),
    ).outerjoin(InventoryBalance, InventoryBalance.product_id == ChemicalProduct.id)


def _inventory_view(row) -> InventoryView:
    product_id, product_name, cas_number, unit, stock, last_updated = row
    return InventoryView(
        id=product_id,
        product_name=product_name,
        cas_number=cas_number,
        unit_of_measurement=unit,
        current_stock_quantity=to_decimal(stock),
        last_updated=last_updated,
    )


def list_inventory() -> list[InventoryView]:
    rows = (
        _inventory_query()
        .order_by(ChemicalProduct.product_name, ChemicalProduct.id)
        .all()
    )
    return [_inventory_view(row) for row in rows]


def get_inventory(product_id: int) -> InventoryView:
    row = _inventory_query().filter(ChemicalProduct.id == product_id).first()
    if row is None:
        raise NotFound("Product not found")
    return _inventory_view(row)


def _history_query():
    return (
        db.session.query(
            StockMovement.id,
            StockMovement.product_id,
            StockMovement.movement_type,
            StockMovement.quantity,
            StockMovement.previous_stock,
            StockMovement.new_stock,
            StockMovement.created_at,
            ChemicalProduct.product_name,
            ChemicalProduct.cas_number,
        )
        .join(ChemicalProduct, ChemicalProduct.id == StockMovement.product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    )


def _movement_view(row) -> MovementView:
    (
        movement_id,
        product_id,
        movement_type,
        quantity,
        previous_stock,
        new_stock,
        created_at,
        product_name,
        cas_number,
    ) = row
    return MovementView(
        id=movement_id,
        product_id=product_id,
        movement_type=movement_type,
        quantity=to_decimal(quantity),
        previous_stock=to_decimal(previous_stock),
        new_stock=to_decimal(new_stock),
        created_at=created_at,
        product_name=product_name,
        cas_number=cas_number,
    )


def product_history(product_id: int) -> list[MovementView]:
    rows = _history_query().filter(StockMovement.product_id == product_id).all()
    return [_movement_view(row) for row in rows]


def clamp_history_limit(limit: int | None, cap: int = HISTORY_CAP) -> int:
    if limit is None:
        return cap
    return max(1, min(limit, cap))


def recent_history(limit: int | None = None, cap: int = HISTORY_CAP) -> list[MovementView]:
    """Newest movements across all products, never more than ``cap`` rows."""

    rows = _history_query().limit(clamp_history_limit(limit, cap)).all()
    return [_movement_view(row) for row in rows]
