# Overview: Pytest coverage for the return/RTO state machine and restocking.

"""
Return State Machine Tests

Restock happens only on approval with decision YES, at most once per order
line, and never for lines that were not deducted.
"""

import pytest

from packtrack.errors import InvalidTransition, NotFound, ValidationError
from packtrack.extensions import db
from packtrack.models import Order, OrderItem, Product, StockMovement
from packtrack.services import ledger_service, order_service, return_service


def _quantity(product_id):
    return db.session.get(Product, product_id).quantity


def _restock_movements(return_id):
    return (
        db.session.query(StockMovement)
        .filter_by(reference_type="return", reference_id=return_id, movement_type="RETURN_RESTOCK")
        .all()
    )


@pytest.fixture
def shipped_order(ctx, make_product, make_order):
    """Order of 3 units shipped from a stock of 10."""
    product = make_product(10)
    order = make_order((product, 3))
    order_service.ship_order(ctx, order.id)
    return order, product


class TestCreateReturn:

    def test_moves_order_into_branch(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN", reason="Wrong size")

        assert return_doc.status == "PENDING"
        assert return_doc.created_by == 7
        assert db.session.get(Order, order.id).status == "RETURN"

    def test_new_order_cannot_be_returned(self, db_session, ctx, make_product, make_order):
        order = make_order((make_product(5), 1))
        with pytest.raises(InvalidTransition):
            return_service.create_return(ctx, order.id, "RTO")

    def test_unknown_type(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        with pytest.raises(ValidationError):
            return_service.create_return(ctx, order.id, "REFUND")

    def test_unknown_order(self, db_session, ctx):
        with pytest.raises(NotFound):
            return_service.create_return(ctx, 4242, "RETURN")


class TestApproveReturn:
    """Restock decision drives the ledger."""

    def test_restock_yes_restores_once(self, db_session, ctx, shipped_order):
        order, product = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")

        result = return_service.approve_return(ctx, return_doc.id, restock_decision="YES")

        assert result["return"].status == "APPROVED"
        assert result["return"].restock_status == "YES"
        assert result["return"].stock_restored is True
        assert len(result["movements"]) == 1
        assert _quantity(product.id) == 10
        item = db.session.query(OrderItem).filter_by(order_id=order.id).one()
        assert item.stock_deducted and item.stock_returned

    def test_reapprove_same_decision_is_noop(self, db_session, ctx, shipped_order):
        order, product = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")

        return_service.approve_return(ctx, return_doc.id, restock_decision="YES")
        retry = return_service.approve_return(ctx, return_doc.id, restock_decision="YES")

        assert retry["movements"] == []
        assert _quantity(product.id) == 10
        assert len(_restock_movements(return_doc.id)) == 1

    def test_reapprove_different_decision_refused(self, db_session, ctx, shipped_order):
        order, product = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")
        return_service.approve_return(ctx, return_doc.id, restock_decision="NO")

        with pytest.raises(InvalidTransition):
            return_service.approve_return(ctx, return_doc.id, restock_decision="YES")
        assert _quantity(product.id) == 7

    def test_restock_no_leaves_stock(self, db_session, ctx, shipped_order):
        order, product = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")

        result = return_service.approve_return(ctx, return_doc.id, restock_decision="NO")

        assert result["movements"] == []
        assert result["return"].stock_restored is False
        assert _quantity(product.id) == 7
        item = db.session.query(OrderItem).filter_by(order_id=order.id).one()
        assert item.stock_returned is False

    def test_no_decision_is_stored_null(self, db_session, ctx, shipped_order):
        order, product = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")

        result = return_service.approve_return(ctx, return_doc.id)

        assert result["return"].restock_status is None
        assert _quantity(product.id) == 7

    def test_undeducted_lines_are_not_restocked(self, db_session, ctx, make_product, make_order):
        product = make_product(10)
        order = make_order((product, 2))
        order_service.update_order_status(ctx, order.id, "PACKED")
        return_doc = return_service.create_return(ctx, order.id, "RETURN")

        result = return_service.approve_return(ctx, return_doc.id, restock_decision="YES")

        assert result["movements"] == []
        assert _quantity(product.id) == 10
        assert ledger_service.check_ledger_consistency(ctx) == []

    def test_invalid_decision(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")
        with pytest.raises(ValidationError):
            return_service.approve_return(ctx, return_doc.id, restock_decision="MAYBE")

    def test_rto_must_be_inspected_first(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        rto = return_service.create_return(ctx, order.id, "RTO")
        with pytest.raises(InvalidTransition):
            return_service.approve_return(ctx, rto.id, restock_decision="YES")


class TestRtoFlow:
    """RTO: PENDING -> INSPECTED -> APPROVED|REJECTED."""

    def test_reject_after_inspection(self, db_session, ctx, shipped_order):
        order, product = shipped_order
        rto = return_service.create_return(ctx, order.id, "RTO")
        return_service.inspect_return(ctx, rto.id, inspection_notes="Seal broken")

        rejected = return_service.reject_return(ctx, rto.id, reason="Tampered parcel")

        assert rejected.status == "REJECTED"
        assert rejected.rejection_reason == "Tampered parcel"
        assert _quantity(product.id) == 7
        assert _restock_movements(rto.id) == []

    def test_rejected_is_terminal(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        rto = return_service.create_return(ctx, order.id, "RTO")
        return_service.inspect_return(ctx, rto.id)
        return_service.reject_return(ctx, rto.id)

        with pytest.raises(InvalidTransition):
            return_service.approve_return(ctx, rto.id, restock_decision="YES")
        with pytest.raises(InvalidTransition):
            return_service.complete_return(ctx, rto.id)

    def test_reject_before_inspection_refused(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        rto = return_service.create_return(ctx, order.id, "RTO")
        with pytest.raises(InvalidTransition):
            return_service.reject_return(ctx, rto.id)

    def test_plain_return_cannot_be_rejected(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")
        with pytest.raises(InvalidTransition):
            return_service.reject_return(ctx, return_doc.id)

    def test_full_rto_with_restock(self, db_session, ctx, shipped_order):
        order, product = shipped_order
        rto = return_service.create_return(ctx, order.id, "RTO")
        return_service.inspect_return(ctx, rto.id)
        return_service.approve_return(ctx, rto.id, restock_decision="YES")
        completed = return_service.complete_return(ctx, rto.id)

        assert completed.status == "COMPLETED"
        assert completed.completed_by == 7
        assert _quantity(product.id) == 10
        summary = return_service.get_return_summary(ctx, rto.id)
        assert summary["next_status"] is None
        assert summary["can_reject"] is False

    def test_complete_requires_approval(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")
        with pytest.raises(InvalidTransition):
            return_service.complete_return(ctx, return_doc.id)


class TestReturnQueries:

    def test_list_filters(self, db_session, ctx, shipped_order):
        order, _ = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")

        assert [r.id for r in return_service.list_returns(ctx, order_id=order.id)] == [return_doc.id]
        assert return_service.list_returns(ctx, status="APPROVED") == []

    def test_other_workspace_not_found(self, db_session, ctx, ctx_b, shipped_order):
        order, _ = shipped_order
        return_doc = return_service.create_return(ctx, order.id, "RETURN")
        with pytest.raises(NotFound):
            return_service.get_return(ctx_b, return_doc.id)
