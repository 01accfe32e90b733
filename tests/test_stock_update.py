import os
import sys
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from chemstock import create_app
from chemstock.errors import InsufficientStock, InvalidInput, NotFound
from chemstock.extensions import db
from chemstock.models import ChemicalProduct, InventoryBalance, StockMovement
from chemstock.services import inventory_queries, stock_update
from chemstock.services.products import create_product
from chemstock.services.stock_update import apply_movement, parse_quantity


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def formaldehyde(app):
    return create_product("Formaldehyde", "50-00-0", "KG")


def _balance(product_id: int) -> Decimal:
    return inventory_queries.get_inventory(product_id).current_stock_quantity


def test_formaldehyde_scenario(formaldehyde):
    assert _balance(formaldehyde.id) == Decimal("0")

    received = apply_movement(formaldehyde.id, "IN", 100)
    assert received.previous_stock == Decimal("0")
    assert received.new_stock == Decimal("100")

    issued = apply_movement(formaldehyde.id, "OUT", 30)
    assert issued.previous_stock == Decimal("100")
    assert issued.new_stock == Decimal("70")

    with pytest.raises(InsufficientStock) as excinfo:
        apply_movement(formaldehyde.id, "OUT", 1000)
    assert excinfo.value.current_stock == Decimal("70")
    assert excinfo.value.requested == Decimal("1000")
    assert _balance(formaldehyde.id) == Decimal("70")

    history = inventory_queries.product_history(formaldehyde.id)
    assert [
        (entry.movement_type, entry.quantity, entry.previous_stock, entry.new_stock)
        for entry in history
    ] == [
        ("OUT", Decimal("30"), Decimal("100"), Decimal("70")),
        ("IN", Decimal("100"), Decimal("0"), Decimal("100")),
    ]
    assert all(entry.cas_number == "50-00-0" for entry in history)


def test_balance_matches_replayed_movements(formaldehyde):
    sequence = [
        ("IN", "12.5"),
        ("OUT", "2.25"),
        ("OUT", "20"),
        ("IN", "7.75"),
        ("OUT", "18"),
        ("OUT", "0.01"),
        ("IN", "0.99"),
        ("OUT", "1.99"),
    ]
    expected = Decimal("0")
    for movement_type, quantity in sequence:
        amount = Decimal(quantity)
        try:
            apply_movement(formaldehyde.id, movement_type, quantity)
        except InsufficientStock:
            assert movement_type == "OUT" and amount > expected
            continue
        expected += amount if movement_type == "IN" else -amount
        assert expected >= 0
        assert _balance(formaldehyde.id) == expected

    movements = StockMovement.query.filter_by(product_id=formaldehyde.id).all()
    total_in = sum((m.quantity for m in movements if m.movement_type == "IN"), Decimal("0"))
    total_out = sum((m.quantity for m in movements if m.movement_type == "OUT"), Decimal("0"))
    assert _balance(formaldehyde.id) == total_in - total_out


def test_every_movement_links_previous_and_new_stock(formaldehyde):
    for movement_type, quantity in [("IN", 40), ("OUT", 15), ("IN", "3.5"), ("OUT", "28.5")]:
        apply_movement(formaldehyde.id, movement_type, quantity)

    movements = (
        StockMovement.query.filter_by(product_id=formaldehyde.id)
        .order_by(StockMovement.id)
        .all()
    )
    assert len(movements) == 4

    running = Decimal("0")
    for movement in movements:
        assert movement.quantity > 0
        assert movement.previous_stock == running
        sign = 1 if movement.movement_type == "IN" else -1
        assert movement.new_stock == movement.previous_stock + sign * movement.quantity
        running = movement.new_stock
    assert running == Decimal("0")


def test_rejected_out_leaves_state_untouched(formaldehyde):
    apply_movement(formaldehyde.id, "IN", "5")
    before = InventoryBalance.query.filter_by(product_id=formaldehyde.id).one()
    updated_at = before.updated_at

    with pytest.raises(InsufficientStock):
        apply_movement(formaldehyde.id, "OUT", "5.01")

    after = InventoryBalance.query.filter_by(product_id=formaldehyde.id).one()
    assert after.current_stock_quantity == Decimal("5")
    assert after.updated_at == updated_at
    assert StockMovement.query.count() == 1


def test_out_may_drain_balance_to_zero(formaldehyde):
    apply_movement(formaldehyde.id, "IN", "8.40")
    result = apply_movement(formaldehyde.id, "OUT", "8.4")
    assert result.new_stock == Decimal("0")


def test_unknown_product_is_not_found(app):
    with pytest.raises(NotFound):
        apply_movement(999, "IN", 10)
    assert StockMovement.query.count() == 0


@pytest.mark.parametrize("product_id", [10**30, str(10**30), 2**31, 0, -3])
def test_product_id_outside_key_range_is_not_found(app, product_id):
    with pytest.raises(NotFound):
        apply_movement(product_id, "IN", 10)
    assert StockMovement.query.count() == 0


@pytest.mark.parametrize(
    "product_id, movement_type, quantity, message",
    [
        (None, "IN", 10, "required"),
        (1, None, 10, "required"),
        (1, "IN", None, "required"),
        ("abc", "IN", 10, "integer"),
        (True, "IN", 10, "integer"),
        (1, "in", 10, "IN or OUT"),
        (1, "ADJUST", 10, "IN or OUT"),
        (1, "IN", 0, "positive"),
        (1, "IN", -4, "positive"),
        (1, "IN", "NaN", "positive"),
        (1, "IN", "Infinity", "positive"),
        (1, "IN", "ten", "positive"),
        (1, "IN", True, "positive"),
        (1, "IN", [5], "positive"),
        (1, "IN", "0.001", "positive"),
        (1, "IN", "100000000", "exceed"),
        (1, "IN", 1e30, "exceed"),
        (1, "IN", "1e30", "exceed"),
        (1, "IN", "1E+40", "exceed"),
    ],
)
def test_invalid_input_is_rejected_before_writing(
    formaldehyde, product_id, movement_type, quantity, message
):
    with pytest.raises(InvalidInput) as excinfo:
        apply_movement(product_id, movement_type, quantity)
    assert message in str(excinfo.value)
    assert StockMovement.query.count() == 0


def test_quantity_is_rounded_to_two_places():
    assert parse_quantity("1.005") == Decimal("1.01")
    assert parse_quantity(2.5) == Decimal("2.50")
    assert parse_quantity(" 7 ") == Decimal("7.00")


def test_numeric_string_product_id_is_accepted(formaldehyde):
    result = apply_movement(str(formaldehyde.id), "IN", "1")
    assert result.product_id == formaldehyde.id


def test_first_movement_creates_missing_balance_row(app):
    product = ChemicalProduct(
        product_name="Acetone", cas_number="67-64-1", unit_of_measurement="Litre"
    )
    db.session.add(product)
    db.session.commit()
    assert InventoryBalance.query.filter_by(product_id=product.id).count() == 0
    assert _balance(product.id) == Decimal("0")

    with pytest.raises(InsufficientStock):
        apply_movement(product.id, "OUT", 1)
    assert InventoryBalance.query.filter_by(product_id=product.id).count() == 0

    result = apply_movement(product.id, "IN", 3)
    assert result.previous_stock == Decimal("0")
    assert InventoryBalance.query.filter_by(product_id=product.id).count() == 1


def test_failure_after_balance_write_rolls_back_both(formaldehyde, monkeypatch):
    apply_movement(formaldehyde.id, "IN", 10)

    def broken_append(*args, **kwargs):
        raise RuntimeError("movement log unavailable")

    monkeypatch.setattr(stock_update, "_append_movement", broken_append)

    with pytest.raises(RuntimeError):
        apply_movement(formaldehyde.id, "IN", 5)

    assert _balance(formaldehyde.id) == Decimal("10")
    assert StockMovement.query.count() == 1


def test_balance_insert_race_is_retried(app, monkeypatch):
    product = ChemicalProduct(
        product_name="Ethanol", cas_number="64-17-5", unit_of_measurement="Litre"
    )
    db.session.add(product)
    db.session.commit()
    product_id = product.id

    original = stock_update._locked_balance
    calls = {"count": 0}

    def racing_locked_balance(pid):
        calls["count"] += 1
        if calls["count"] == 1:
            raise IntegrityError(
                "INSERT INTO inventory",
                {},
                Exception("UNIQUE constraint failed: inventory.product_id"),
            )
        return original(pid)

    monkeypatch.setattr(stock_update, "_locked_balance", racing_locked_balance)

    result = apply_movement(product_id, "IN", 2)
    assert calls["count"] == 2
    assert result.new_stock == Decimal("2")


def test_schema_rejects_negative_balance(formaldehyde):
    balance = InventoryBalance.query.filter_by(product_id=formaldehyde.id).one()
    balance.current_stock_quantity = Decimal("-1")
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_schema_rejects_non_positive_movement(formaldehyde):
    db.session.add(
        StockMovement(
            product_id=formaldehyde.id,
            movement_type="IN",
            quantity=Decimal("0"),
            previous_stock=Decimal("0"),
            new_stock=Decimal("0"),
        )
    )
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()
