"""
Return / RTO State Machine

WHY: A returned parcel goes back on the shelf at most once, and only when the
operator decides the goods are restockable.

LIFECYCLE:
RETURN: PENDING -> APPROVED -> COMPLETED
RTO:    PENDING -> INSPECTED -> APPROVED -> COMPLETED
                   INSPECTED -> REJECTED
REJECTED and COMPLETED are terminal.

DESIGN PRINCIPLES:
- Entering APPROVED with restock decision YES is the ONLY transition that
  touches stock.
- Per order line where stock_deducted AND NOT stock_returned: conditional
  flip of stock_returned, and only a successful flip adds the quantity back
  through the ledger. Re-approving is a no-op for already-returned lines.
- Decision NO (or no decision) approves without any ledger call; the goods
  are treated as damaged or lost and the line flags stay unchanged.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import OrderItem, Product, Return
from ..time_utils import utcnow
from .audit_service import record
from .concurrency import conditional_flip, lock_for_update, run_with_retry
from .context import OperationContext
from .ledger_service import MOVEMENT_RETURN_RESTOCK, apply_movement
from .order_service import RETURN_BRANCH_SOURCES, load_order


# =============================================================================
# RETURN STATUS CONSTANTS
# =============================================================================

RETURN_TYPE_RETURN = "RETURN"
RETURN_TYPE_RTO = "RTO"
RETURN_TYPES = {RETURN_TYPE_RETURN, RETURN_TYPE_RTO}

RETURN_STATUS_PENDING = "PENDING"
RETURN_STATUS_INSPECTED = "INSPECTED"
RETURN_STATUS_APPROVED = "APPROVED"
RETURN_STATUS_COMPLETED = "COMPLETED"
RETURN_STATUS_REJECTED = "REJECTED"

# Next status along each type's main path
NEXT_STATUS = {
    RETURN_TYPE_RETURN: {
        RETURN_STATUS_PENDING: RETURN_STATUS_APPROVED,
        RETURN_STATUS_APPROVED: RETURN_STATUS_COMPLETED,
    },
    RETURN_TYPE_RTO: {
        RETURN_STATUS_PENDING: RETURN_STATUS_INSPECTED,
        RETURN_STATUS_INSPECTED: RETURN_STATUS_APPROVED,
        RETURN_STATUS_APPROVED: RETURN_STATUS_COMPLETED,
    },
}

RESTOCK_YES = "YES"
RESTOCK_NO = "NO"
RESTOCK_DECISIONS = {RESTOCK_YES, RESTOCK_NO, None}


def next_status(return_doc: Return) -> str | None:
    return NEXT_STATUS[return_doc.return_type].get(return_doc.status)


def can_reject(return_doc: Return) -> bool:
    return return_doc.return_type == RETURN_TYPE_RTO and return_doc.status == RETURN_STATUS_INSPECTED


def _load_return(ctx: OperationContext, return_id: int, *, lock: bool = False) -> Return:
    query = db.session.query(Return).filter_by(id=return_id, workspace_id=ctx.workspace_id)
    if lock:
        query = lock_for_update(query)
    return_doc = query.first()
    if return_doc is None:
        raise NotFound(f"Return {return_id} not found")
    return return_doc


def _require_next(return_doc: Return, target: str) -> None:
    if next_status(return_doc) != target:
        raise InvalidTransition(
            f"Cannot move {return_doc.return_type} {return_doc.id} from {return_doc.status} to {target}",
            current_status=return_doc.status,
            requested_status=target,
        )


# =============================================================================
# RETURN CREATION
# =============================================================================

def create_return(
    ctx: OperationContext,
    order_id: int,
    return_type: str,
    reason: str | None = None,
) -> Return:
    """
    Open a RETURN or RTO (status PENDING) against an order.

    The order must be PACKED, SHIPPED or DELIVERED, or already sitting in the
    matching branch status; it is moved into that branch here.
    """
    if return_type not in RETURN_TYPES:
        raise ValidationError(f"Invalid return type: {return_type}")

    def _op():
        order = load_order(ctx, order_id, lock=True)
        if order.status != return_type:
            if order.status not in RETURN_BRANCH_SOURCES:
                raise InvalidTransition(
                    f"Cannot open {return_type} for order {order.order_number} in status {order.status}",
                    current_status=order.status,
                    requested_status=return_type,
                )
            previous = order.status
            order.status = return_type
            db.session.flush()
            record(ctx, "ORDER_STATUS_CHANGED", "ORDER", order.id, {
                "order_number": order.order_number,
                "old_status": previous,
                "new_status": return_type,
            })

        return_doc = Return(
            workspace_id=ctx.workspace_id,
            order_id=order.id,
            return_type=return_type,
            status=RETURN_STATUS_PENDING,
            reason=reason,
            created_by=ctx.actor_id,
        )
        db.session.add(return_doc)
        db.session.flush()

        record(ctx, "RETURN_CREATED", "RETURN", return_doc.id, {
            "order_number": order.order_number,
            "return_type": return_type,
            "reason": reason,
        })
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


# =============================================================================
# INSPECTION / APPROVAL / REJECTION / COMPLETION
# =============================================================================

def inspect_return(ctx: OperationContext, return_id: int, inspection_notes: str | None = None) -> Return:
    """RTO only: PENDING -> INSPECTED."""
    def _op():
        return_doc = _load_return(ctx, return_id, lock=True)
        _require_next(return_doc, RETURN_STATUS_INSPECTED)

        previous = return_doc.status
        return_doc.status = RETURN_STATUS_INSPECTED
        return_doc.inspection_notes = inspection_notes
        return_doc.inspected_at = utcnow()
        return_doc.inspected_by = ctx.actor_id
        db.session.flush()

        record(ctx, "RETURN_STATUS_CHANGED", "RETURN", return_doc.id, {
            "old_status": previous,
            "new_status": RETURN_STATUS_INSPECTED,
        })
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


def _restore_stock(ctx: OperationContext, return_doc: Return) -> list:
    items = (
        db.session.query(OrderItem)
        .filter(OrderItem.order_id == return_doc.order_id)
        .order_by(OrderItem.id)
        .all()
    )

    movements = []
    for item in items:
        if not item.stock_deducted or item.stock_returned:
            continue
        if not conditional_flip(OrderItem, item.id, OrderItem.stock_returned, stock_deducted=True):
            continue
        db.session.expire(item, ["stock_returned"])

        product = db.session.get(Product, item.product_id)
        previous_stock = product.quantity
        movement = apply_movement(
            ctx,
            product_id=item.product_id,
            quantity_delta=item.quantity,
            movement_type=MOVEMENT_RETURN_RESTOCK,
            reason=f"Return {return_doc.id} approved",
            reference_type="return",
            reference_id=return_doc.id,
        )
        movements.append(movement)

        record(ctx, "INVENTORY_RESTORE", "RETURN", return_doc.id, {
            "order_id": return_doc.order_id,
            "order_item_id": item.id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "previous_stock": previous_stock,
            "new_stock": product.quantity,
            "movement_id": movement.id,
        })

    if not return_doc.stock_restored:
        conditional_flip(Return, return_doc.id, Return.stock_restored)
        db.session.expire(return_doc, ["stock_restored"])
    return movements


def approve_return(
    ctx: OperationContext,
    return_id: int,
    restock_decision: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Approve a return with the operator's restock decision.

    RETURN approves from PENDING, RTO from INSPECTED. Re-approving an APPROVED
    return with the same decision is a retry: guarded lines produce no new
    movements. A different decision on an APPROVED return is refused.

    Returns {"return": Return, "movements": [StockMovement, ...]}.
    """
    if restock_decision not in RESTOCK_DECISIONS:
        raise ValidationError(f"Invalid restock decision: {restock_decision}")

    def _op():
        return_doc = _load_return(ctx, return_id, lock=True)

        if return_doc.status == RETURN_STATUS_APPROVED:
            if return_doc.restock_status != restock_decision:
                raise InvalidTransition(
                    f"Return {return_doc.id} already approved with restock decision {return_doc.restock_status}",
                    current_status=return_doc.status,
                    requested_status=RETURN_STATUS_APPROVED,
                )
            retry = True
        else:
            _require_next(return_doc, RETURN_STATUS_APPROVED)
            retry = False

        movements = []
        if restock_decision == RESTOCK_YES:
            movements = _restore_stock(ctx, return_doc)

        if not retry:
            previous = return_doc.status
            return_doc.status = RETURN_STATUS_APPROVED
            return_doc.restock_status = restock_decision
            return_doc.approved_at = utcnow()
            return_doc.approved_by = ctx.actor_id
            if notes:
                return_doc.inspection_notes = notes
            db.session.flush()

            record(ctx, "RETURN_APPROVED", "RETURN", return_doc.id, {
                "order_id": return_doc.order_id,
                "old_status": previous,
                "restock_decision": restock_decision,
                "restocked_lines": len(movements),
                "notes": notes,
            })

        db.session.commit()
        return {"return": return_doc, "movements": movements}

    return run_with_retry(_op)


def reject_return(ctx: OperationContext, return_id: int, reason: str | None = None) -> Return:
    """RTO only, from INSPECTED. Never touches stock."""
    def _op():
        return_doc = _load_return(ctx, return_id, lock=True)
        if not can_reject(return_doc):
            raise InvalidTransition(
                f"Cannot reject {return_doc.return_type} {return_doc.id} in status {return_doc.status}",
                current_status=return_doc.status,
                requested_status=RETURN_STATUS_REJECTED,
            )

        return_doc.status = RETURN_STATUS_REJECTED
        return_doc.rejection_reason = reason
        return_doc.rejected_at = utcnow()
        return_doc.rejected_by = ctx.actor_id
        db.session.flush()

        record(ctx, "RETURN_REJECTED", "RETURN", return_doc.id, {
            "order_id": return_doc.order_id,
            "reason": reason,
        })
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


def complete_return(ctx: OperationContext, return_id: int) -> Return:
    """APPROVED -> COMPLETED. Stock was already settled at approval."""
    def _op():
        return_doc = _load_return(ctx, return_id, lock=True)
        _require_next(return_doc, RETURN_STATUS_COMPLETED)

        return_doc.status = RETURN_STATUS_COMPLETED
        return_doc.completed_at = utcnow()
        return_doc.completed_by = ctx.actor_id
        db.session.flush()

        record(ctx, "RETURN_STATUS_CHANGED", "RETURN", return_doc.id, {
            "old_status": RETURN_STATUS_APPROVED,
            "new_status": RETURN_STATUS_COMPLETED,
        })
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_return(ctx: OperationContext, return_id: int) -> Return:
    return _load_return(ctx, return_id)


def list_returns(
    ctx: OperationContext,
    *,
    status: str | None = None,
    order_id: int | None = None,
) -> list[Return]:
    q = db.session.query(Return).filter(Return.workspace_id == ctx.workspace_id)
    if status:
        q = q.filter(Return.status == status)
    if order_id is not None:
        q = q.filter(Return.order_id == order_id)
    return q.order_by(Return.created_at.desc(), Return.id.desc()).all()


def get_return_summary(ctx: OperationContext, return_id: int) -> dict:
    return_doc = _load_return(ctx, return_id)
    return {
        "return": return_doc.to_dict(),
        "order": return_doc.order.to_dict() if return_doc.order else None,
        "next_status": next_status(return_doc),
        "can_reject": can_reject(return_doc),
    }
