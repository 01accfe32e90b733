"""Apply IN/OUT stock movements.

A movement reads the product's balance under a row lock, checks it against
the requested change, writes the new balance and appends the matching
:class:`~chemstock.models.StockMovement` in a single transaction. Either both
writes commit or neither does.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chemstock.errors import (
    InsufficientStock,
    Internal,
    InvalidInput,
    NotFound,
    StockError,
)
from chemstock.extensions import db
from chemstock.models import (
    MAX_ID,
    ChemicalProduct,
    InventoryBalance,
    MovementType,
    StockMovement,
)
from chemstock.services.inventory_queries import to_decimal

TWO_PLACES = Decimal("0.01")
# NUMERIC(10, 2) upper bound.
MAX_QUANTITY = Decimal("99999999.99")
DEFAULT_MAX_ATTEMPTS = 3

_REQUIRED_MESSAGE = "Product ID, movement type, and quantity are required"


@dataclass(frozen=True)
class StockUpdateResult:
    product_id: int
    movement_type: str
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal

    def to_dict(self) -> dict[str, object]:
        return {
            "message": "Stock updated successfully",
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": float(self.quantity),
            "previous_stock": float(self.previous_stock),
            "new_stock": float(self.new_stock),
        }


def parse_product_id(raw: object) -> int:
    if raw is None or raw == "":
        raise InvalidInput(_REQUIRED_MESSAGE)
    if isinstance(raw, bool):
        raise InvalidInput("Product ID must be an integer")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        raise InvalidInput("Product ID must be an integer")
    # Ids outside the key range cannot name a stored product.
    if not 0 < value <= MAX_ID:
        raise NotFound("Product not found")
    return value


def parse_movement_type(raw: object) -> str:
    if raw is None or raw == "":
        raise InvalidInput(_REQUIRED_MESSAGE)
    if raw not in MovementType.ALL:
        raise InvalidInput("Movement type must be IN or OUT")
    return raw


def parse_quantity(raw: object) -> Decimal:
    """Return ``raw`` as a positive two-place :class:`Decimal`."""

    if raw is None or raw == "":
        raise InvalidInput(_REQUIRED_MESSAGE)
    if isinstance(raw, bool) or not isinstance(raw, (int, float, Decimal, str)):
        raise InvalidInput("Quantity must be a positive number")

    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise InvalidInput("Quantity must be a positive number") from None

    if not value.is_finite() or value <= 0:
        raise InvalidInput("Quantity must be a positive number")

    try:
        value = value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits for the decimal context.
        raise InvalidInput(f"Quantity must not exceed {MAX_QUANTITY}") from None
    if value <= 0:
        raise InvalidInput("Quantity must be a positive number")
    if value > MAX_QUANTITY:
        raise InvalidInput(f"Quantity must not exceed {MAX_QUANTITY}")
    return value


def _locked_balance(product_id: int) -> InventoryBalance:
    """Return the product's balance row, locked until the transaction ends.

    The row is created at zero when the product has never been touched.
    """

    balance = (
        InventoryBalance.query.filter_by(product_id=product_id)
        .populate_existing()
        .with_for_update()
        .one_or_none()
    )
    if balance is None:
        balance = InventoryBalance(
            product_id=product_id, current_stock_quantity=Decimal("0")
        )
        db.session.add(balance)
        db.session.flush()
    return balance


def _append_movement(
    product_id: int,
    movement_type: str,
    quantity: Decimal,
    previous_stock: Decimal,
    new_stock: Decimal,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _apply_once(product_id: int, movement_type: str, quantity: Decimal) -> StockUpdateResult:
    if db.session.get(ChemicalProduct, product_id) is None:
        raise NotFound("Product not found")

    balance = _locked_balance(product_id)
    previous_stock = to_decimal(balance.current_stock_quantity).quantize(TWO_PLACES)

    if movement_type == MovementType.IN:
        new_stock = previous_stock + quantity
        if new_stock > MAX_QUANTITY:
            raise InvalidInput(f"Resulting stock must not exceed {MAX_QUANTITY}")
    else:
        new_stock = previous_stock - quantity
        if new_stock < 0:
            raise InsufficientStock(previous_stock, quantity)

    balance.current_stock_quantity = new_stock
    balance.updated_at = datetime.utcnow()
    db.session.flush()

    _append_movement(product_id, movement_type, quantity, previous_stock, new_stock)
    db.session.commit()

    return StockUpdateResult(
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )


def _is_balance_insert_race(error: IntegrityError) -> bool:
    original = getattr(error, "orig", None)
    diag = getattr(original, "diag", None)
    constraint = getattr(diag, "constraint_name", None) if diag else None
    if constraint:
        return constraint == "uq_inventory_product"

    message = str(error).lower()
    return "unique" in message and "inventory.product_id" in message


def apply_movement(
    product_id: object,
    movement_type: object,
    quantity: object,
    *,
    max_attempts: int | None = None,
) -> StockUpdateResult:
    """Apply one IN/OUT movement and return the balance before and after.

    Inputs are validated before the database is touched. Failures roll the
    whole transaction back before the error propagates.
    """

    product_id = parse_product_id(product_id)
    movement_type = parse_movement_type(movement_type)
    quantity = parse_quantity(quantity)

    if max_attempts is None:
        max_attempts = current_app.config.get(
            "STOCK_UPDATE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS
        )
    max_attempts = max(1, int(max_attempts))

    for attempt in range(1, max_attempts + 1):
        try:
            result = _apply_once(product_id, movement_type, quantity)
        except InsufficientStock as error:
            db.session.rollback()
            current_app.logger.info(
                "Rejected OUT of %s for product %s: only %s in stock",
                error.requested,
                product_id,
                error.current_stock,
            )
            raise
        except StockError:
            db.session.rollback()
            raise
        except IntegrityError as error:
            db.session.rollback()
            if _is_balance_insert_race(error) and attempt < max_attempts:
                current_app.logger.warning(
                    "Balance row for product %s was created concurrently; retrying (%s/%s)",
                    product_id,
                    attempt,
                    max_attempts,
                )
                continue
            raise Internal("Failed to update stock") from error
        except SQLAlchemyError as error:
            db.session.rollback()
            raise Internal("Failed to update stock") from error
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Applied %s %s to product %s: %s -> %s",
            result.movement_type,
            result.quantity,
            result.product_id,
            result.previous_stock,
            result.new_stock,
        )
        return result

    raise Internal("Failed to update stock")
