# Overview: Pytest coverage for the order state machine and shipment deduction.

"""
Order State Machine Tests

SHIPPED is the only transition that deducts stock. These tests prove that
repeated SHIPPED requests deduct once, that insufficient stock on any line
aborts the whole transition, and that illegal transitions are refused.
"""

import pytest

from packtrack.errors import InsufficientStock, InvalidTransition, NotFound, ValidationError
from packtrack.extensions import db
from packtrack.models import AuditLog, Order, OrderItem, Product, StockMovement
from packtrack.services import ledger_service, order_service
from packtrack.services.order_service import is_transition_allowed


def _quantity(product_id):
    return db.session.get(Product, product_id).quantity


def _shipped_movements(order_id):
    return (
        db.session.query(StockMovement)
        .filter_by(reference_type="order", reference_id=order_id, movement_type="ORDER_SHIPPED")
        .all()
    )


class TestTransitionTable:
    """is_transition_allowed encodes the lifecycle."""

    @pytest.mark.parametrize("current,target", [
        ("NEW", "PACKING"),
        ("PACKING", "PACKED"),
        ("PACKED", "SHIPPED"),
        ("SHIPPED", "DELIVERED"),
        ("NEW", "SHIPPED"),
        ("PACKED", "RETURN"),
        ("SHIPPED", "RTO"),
        ("DELIVERED", "RETURN"),
        ("SHIPPED", "SHIPPED"),
    ])
    def test_allowed(self, current, target):
        assert is_transition_allowed(current, target)

    @pytest.mark.parametrize("current,target", [
        ("SHIPPED", "PACKED"),
        ("DELIVERED", "NEW"),
        ("NEW", "RETURN"),
        ("PACKING", "RTO"),
        ("RETURN", "DELIVERED"),
        ("RTO", "RETURN"),
    ])
    def test_refused(self, current, target):
        assert not is_transition_allowed(current, target)


class TestCreateOrder:
    """Order creation never touches stock."""

    def test_create_does_not_deduct(self, db_session, ctx, make_product, make_order):
        product = make_product(5)
        order = make_order((product, 3))

        assert order.status == "NEW"
        assert order.total_amount_cents == 3000
        assert _quantity(product.id) == 5
        assert all(not item.stock_deducted for item in order.items)

    def test_order_may_exceed_stock_until_shipped(self, db_session, ctx, make_product, make_order):
        product = make_product(1)
        order = make_order((product, 10))
        assert order.items[0].quantity == 10

    def test_duplicate_order_number(self, db_session, ctx, make_product, make_order):
        product = make_product(5)
        make_order((product, 1), order_number="ORD-1")
        with pytest.raises(ValidationError):
            make_order((product, 1), order_number="ORD-1")

    def test_unknown_product(self, db_session, ctx):
        with pytest.raises(NotFound):
            order_service.create_order(ctx, order_number="ORD-X", items=[{"product_id": 999, "quantity": 1}])

    @pytest.mark.parametrize("items", [
        [],
        [{"product_id": 1, "quantity": 0}],
        [{"product_id": 1, "quantity": -2}],
        [{"product_id": "1", "quantity": 1}],
    ])
    def test_bad_items(self, db_session, ctx, items):
        with pytest.raises(ValidationError):
            order_service.create_order(ctx, order_number="ORD-X", items=items)


class TestShipOrder:
    """Exactly-once deduction on SHIPPED."""

    def test_ship_deducts_each_line(self, db_session, ctx, make_product, make_order):
        mug = make_product(10)
        tee = make_product(4)
        order = make_order((mug, 2), (tee, 4))

        result = order_service.ship_order(ctx, order.id)

        assert result["order"].status == "SHIPPED"
        assert result["order"].shipped_at is not None
        assert len(result["movements"]) == 2
        assert _quantity(mug.id) == 8
        assert _quantity(tee.id) == 0
        items = db.session.query(OrderItem).filter_by(order_id=order.id).all()
        assert all(item.stock_deducted for item in items)

    def test_ship_retry_is_noop(self, db_session, ctx, make_product, make_order):
        product = make_product(10)
        order = make_order((product, 3))

        order_service.ship_order(ctx, order.id)
        retry = order_service.ship_order(ctx, order.id)
        third = order_service.update_order_status(ctx, order.id, "SHIPPED")

        assert retry["movements"] == []
        assert third["movements"] == []
        assert _quantity(product.id) == 7
        assert len(_shipped_movements(order.id)) == 1

    def test_insufficient_stock_is_all_or_nothing(self, db_session, ctx, make_product, make_order):
        plenty = make_product(10)
        scarce = make_product(1)
        order = make_order((plenty, 2), (scarce, 3))

        with pytest.raises(InsufficientStock) as exc:
            order_service.ship_order(ctx, order.id)

        assert exc.value.product_id == scarce.id
        assert exc.value.shortfall == 2
        assert _quantity(plenty.id) == 10
        assert _quantity(scarce.id) == 1
        assert _shipped_movements(order.id) == []
        assert db.session.get(Order, order.id).status == "NEW"
        items = db.session.query(OrderItem).filter_by(order_id=order.id).all()
        assert not any(item.stock_deducted for item in items)

    def test_lines_for_same_product_are_summed(self, db_session, ctx, make_product, make_order):
        product = make_product(5)
        order = make_order((product, 3), (product, 3))

        with pytest.raises(InsufficientStock) as exc:
            order_service.ship_order(ctx, order.id)

        assert exc.value.requested == 6
        assert _quantity(product.id) == 5

    def test_leaving_shipped_keeps_deduction(self, db_session, ctx, make_product, make_order):
        product = make_product(10)
        order = make_order((product, 4))

        order_service.ship_order(ctx, order.id)
        order_service.update_order_status(ctx, order.id, "DELIVERED")

        assert _quantity(product.id) == 6
        assert ledger_service.check_ledger_consistency(ctx) == []

    def test_backward_transition_refused(self, db_session, ctx, make_product, make_order):
        product = make_product(10)
        order = make_order((product, 1))
        order_service.ship_order(ctx, order.id)

        with pytest.raises(InvalidTransition):
            order_service.update_order_status(ctx, order.id, "PACKED")
        assert db.session.get(Order, order.id).status == "SHIPPED"

    def test_unknown_status(self, db_session, ctx, make_product, make_order):
        order = make_order((make_product(1), 1))
        with pytest.raises(ValidationError):
            order_service.update_order_status(ctx, order.id, "LOST")

    def test_other_workspace_cannot_ship(self, db_session, ctx, ctx_b, make_product, make_order):
        product = make_product(10)
        order = make_order((product, 1))
        with pytest.raises(NotFound):
            order_service.ship_order(ctx_b, order.id)
        assert _quantity(product.id) == 10

    def test_packed_records_packer(self, db_session, ctx, make_product, make_order):
        order = make_order((make_product(1), 1))
        result = order_service.update_order_status(ctx, order.id, "PACKED")
        assert result["order"].packed_by == 7

    def test_deduction_is_audited(self, db_session, ctx, make_product, make_order):
        product = make_product(10)
        order = make_order((product, 2))
        order_service.ship_order(ctx, order.id)

        entry = db.session.query(AuditLog).filter_by(action="INVENTORY_DEDUCT").one()
        details = entry.to_dict()["details"]
        assert entry.entity_id == order.id
        assert details["previous_stock"] == 10
        assert details["new_stock"] == 8
        assert details["quantity"] == 2


class TestOrderQueries:

    def test_list_by_status(self, db_session, ctx, make_product, make_order):
        product = make_product(10)
        shipped = make_order((product, 1))
        make_order((product, 1))
        order_service.ship_order(ctx, shipped.id)

        assert [o.id for o in order_service.list_orders(ctx, status="SHIPPED")] == [shipped.id]
        assert len(order_service.list_orders(ctx)) == 2

    def test_list_is_workspace_scoped(self, db_session, ctx, ctx_b, make_product, make_order):
        make_order((make_product(1), 1))
        assert order_service.list_orders(ctx_b) == []
