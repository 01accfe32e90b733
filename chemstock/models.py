from datetime import datetime
from decimal import Decimal

from chemstock.extensions import db

# Upper bound of the INTEGER primary keys.
MAX_ID = 2**31 - 1


class UnitOfMeasurement:
    KG = "KG"
    MT = "MT"
    LITRE = "Litre"

    ALL = (KG, MT, LITRE)


class MovementType:
    IN = "IN"
    OUT = "OUT"

    ALL = (IN, OUT)


def _quoted(values) -> str:
    return ", ".join(f"'{value}'" for value in values)


class ChemicalProduct(db.Model):
    __tablename__ = "chemical_products"

    __table_args__ = (
        db.CheckConstraint(
            f"unit_of_measurement IN ({_quoted(UnitOfMeasurement.ALL)})",
            name="ck_chemical_products_unit",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_name = db.Column(db.String(255), nullable=False)
    cas_number = db.Column(db.String(50), unique=True, nullable=False)  # business key
    unit_of_measurement = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    balance = db.relationship(
        "InventoryBalance",
        back_populates="product",
        uselist=False,
        cascade="all, delete-orphan",
    )
    movements = db.relationship(
        "StockMovement",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="StockMovement.id",
    )

    def __repr__(self):
        return f"<ChemicalProduct {self.cas_number} {self.product_name!r}>"


class InventoryBalance(db.Model):
    __tablename__ = "inventory"

    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_product"),
        db.CheckConstraint(
            "current_stock_quantity >= 0", name="ck_inventory_quantity_non_negative"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("chemical_products.id", ondelete="CASCADE"),
        nullable=False,
    )
    current_stock_quantity = db.Column(
        db.Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    product = db.relationship("ChemicalProduct", back_populates="balance")

    def __repr__(self):
        return f"<InventoryBalance product={self.product_id} qty={self.current_stock_quantity}>"


class StockMovement(db.Model):
    """Append-only audit record of a single IN/OUT change to a balance."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        db.CheckConstraint(
            f"movement_type IN ({_quoted(MovementType.ALL)})",
            name="ck_stock_movements_type",
        ),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("chemical_products.id", ondelete="CASCADE"),
        nullable=False,
    )
    movement_type = db.Column(db.String(10), nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    previous_stock = db.Column(db.Numeric(10, 2), nullable=False)
    new_stock = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    product = db.relationship("ChemicalProduct", back_populates="movements")

    def __repr__(self):
        return (
            f"<StockMovement product={self.product_id} {self.movement_type} "
            f"{self.quantity} {self.previous_stock}->{self.new_stock}>"
        )
