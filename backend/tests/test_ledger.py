# Overview: Pytest coverage for the stock ledger.

"""
Stock Ledger Tests

Proves that Product.quantity only moves through apply_movement, that every
call writes exactly one immutable movement, and that quantity never goes
below zero.
"""

import pytest

from packtrack.errors import InsufficientStock, NotFound, ValidationError
from packtrack.extensions import db
from packtrack.models import Product, StockMovement
from packtrack.services import ledger_service, products_service
from packtrack.services.ledger_service import (
    MOVEMENT_ORDER_SHIPPED,
    MOVEMENT_RECONCILIATION,
    apply_movement,
)


def _movement_count(product_id):
    return db.session.query(StockMovement).filter_by(product_id=product_id).count()


class TestApplyMovement:
    """apply_movement writes one movement plus one quantity change."""

    def test_positive_delta(self, db_session, ctx, make_product):
        product = make_product(10)
        movement = apply_movement(
            ctx,
            product_id=product.id,
            quantity_delta=5,
            movement_type=MOVEMENT_RECONCILIATION,
            reason="Found in back room",
        )
        db_session.commit()

        assert movement.quantity_delta == 5
        assert movement.direction == "IN"
        assert movement.actor_id == 7
        assert db.session.get(Product, product.id).quantity == 15
        assert _movement_count(product.id) == 2  # opening stock + this one

    def test_negative_delta_to_exactly_zero(self, db_session, ctx, make_product):
        product = make_product(3)
        movement = apply_movement(
            ctx,
            product_id=product.id,
            quantity_delta=-3,
            movement_type=MOVEMENT_ORDER_SHIPPED,
            reason="Order ORD-1 shipped",
            reference_type="order",
            reference_id=1,
        )
        db_session.commit()

        assert movement.direction == "OUT"
        assert db.session.get(Product, product.id).quantity == 0

    def test_insufficient_stock_writes_nothing(self, db_session, ctx, make_product):
        product = make_product(2)

        with pytest.raises(InsufficientStock) as exc:
            apply_movement(
                ctx,
                product_id=product.id,
                quantity_delta=-5,
                movement_type=MOVEMENT_ORDER_SHIPPED,
                reason="Order ORD-1 shipped",
            )
        db_session.rollback()

        assert exc.value.available == 2
        assert exc.value.requested == 5
        assert exc.value.shortfall == 3
        assert db.session.get(Product, product.id).quantity == 2
        assert _movement_count(product.id) == 1

    @pytest.mark.parametrize("delta", [0, 1.5, "3", True])
    def test_rejects_bad_delta(self, db_session, ctx, make_product, delta):
        product = make_product(5)
        with pytest.raises(ValidationError):
            apply_movement(
                ctx,
                product_id=product.id,
                quantity_delta=delta,
                movement_type=MOVEMENT_RECONCILIATION,
                reason="x",
            )

    def test_requires_reason(self, db_session, ctx, make_product):
        product = make_product(5)
        with pytest.raises(ValidationError):
            apply_movement(
                ctx,
                product_id=product.id,
                quantity_delta=1,
                movement_type=MOVEMENT_RECONCILIATION,
                reason="   ",
            )

    def test_unknown_movement_type(self, db_session, ctx, make_product):
        product = make_product(5)
        with pytest.raises(ValidationError):
            apply_movement(
                ctx,
                product_id=product.id,
                quantity_delta=1,
                movement_type="SET_QUANTITY",
                reason="x",
            )

    def test_product_in_other_workspace_not_found(self, db_session, ctx_b, make_product):
        product = make_product(5)
        with pytest.raises(NotFound):
            apply_movement(
                ctx_b,
                product_id=product.id,
                quantity_delta=1,
                movement_type=MOVEMENT_RECONCILIATION,
                reason="x",
            )


class TestMovementImmutability:
    """Movement rows are append-only."""

    def test_update_refused(self, db_session, ctx, make_product):
        product = make_product(5)
        movement = db.session.query(StockMovement).filter_by(product_id=product.id).first()
        movement.reason = "rewritten"
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()

    def test_delete_refused(self, db_session, ctx, make_product):
        product = make_product(5)
        movement = db.session.query(StockMovement).filter_by(product_id=product.id).first()
        db_session.delete(movement)
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()


class TestLedgerReads:
    """Movement-sum invariant and read helpers."""

    def test_ledger_quantity_matches_stored(self, db_session, ctx, make_product):
        product = make_product(8)
        apply_movement(ctx, product_id=product.id, quantity_delta=-3,
                       movement_type=MOVEMENT_ORDER_SHIPPED, reason="ship")
        apply_movement(ctx, product_id=product.id, quantity_delta=4,
                       movement_type=MOVEMENT_RECONCILIATION, reason="count")
        db_session.commit()

        assert ledger_service.get_ledger_quantity(ctx, product.id) == 9
        assert db.session.get(Product, product.id).quantity == 9
        assert ledger_service.check_ledger_consistency(ctx) == []

    def test_consistency_reports_drift(self, db_session, ctx, make_product):
        product = make_product(8)
        # Bypass the ledger on purpose
        db.session.query(Product).filter_by(id=product.id).update(
            {Product.quantity: 11}, synchronize_session=False
        )
        db_session.commit()

        drift = ledger_service.check_ledger_consistency(ctx)
        assert drift == [{
            "product_id": product.id,
            "sku": product.sku,
            "stored_quantity": 11,
            "ledger_quantity": 8,
        }]

    def test_list_movements_filters(self, db_session, ctx, make_product):
        product = make_product(8)
        apply_movement(ctx, product_id=product.id, quantity_delta=-2,
                       movement_type=MOVEMENT_ORDER_SHIPPED, reason="ship",
                       reference_type="order", reference_id=99)
        db_session.commit()

        shipped = ledger_service.list_movements(ctx, reference_type="order", reference_id=99)
        assert [m.quantity_delta for m in shipped] == [-2]
        assert len(ledger_service.list_movements(ctx, product_id=product.id)) == 2

    def test_low_stock(self, db_session, ctx, make_product):
        low = make_product(2, low_stock_threshold=5)
        make_product(50, low_stock_threshold=5)

        result = ledger_service.get_low_stock_products(ctx)
        assert [p.id for p in result] == [low.id]


class TestProducts:
    """Catalog operations never write quantity directly."""

    def test_opening_stock_is_a_reconciliation(self, db_session, ctx, make_product):
        product = make_product(12)
        movements = ledger_service.list_movements(ctx, product_id=product.id)

        assert len(movements) == 1
        assert movements[0].movement_type == MOVEMENT_RECONCILIATION
        assert movements[0].reason == "Opening stock"
        assert movements[0].quantity_delta == 12

    def test_zero_opening_stock_has_no_movement(self, db_session, ctx, make_product):
        product = make_product(0)
        assert product.quantity == 0
        assert ledger_service.list_movements(ctx, product_id=product.id) == []

    def test_duplicate_sku(self, db_session, ctx, make_product):
        make_product(1, sku="MUG-01")
        with pytest.raises(ValidationError):
            make_product(1, sku="MUG-01")

    def test_same_sku_in_other_workspace(self, db_session, ctx_b, make_product):
        make_product(1, sku="MUG-01")
        other = products_service.create_product(ctx_b, sku="MUG-01", name="Mug")
        assert other.workspace_id == ctx_b.workspace_id

    def test_quantity_not_updatable(self, db_session, ctx, make_product):
        product = make_product(4)
        with pytest.raises(ValidationError):
            products_service.update_product(ctx, product.id, quantity=100)
        assert db.session.get(Product, product.id).quantity == 4

    def test_update_fields(self, db_session, ctx, make_product):
        product = make_product(4)
        updated = products_service.update_product(ctx, product.id, name="Renamed", low_stock_threshold=1)
        assert updated.name == "Renamed"
        assert updated.low_stock_threshold == 1

    def test_search(self, db_session, ctx, make_product):
        make_product(1, sku="MUG-01", name="Ceramic mug")
        make_product(1, sku="TEE-01", name="T-shirt")
        assert [p.sku for p in products_service.list_products(ctx, search="mug")] == ["MUG-01"]
