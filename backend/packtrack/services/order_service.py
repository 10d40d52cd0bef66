"""
Order State Machine

WHY: Stock must leave the shelf exactly once per order line, no matter how
many times the UI or an IPC retry asks for the SHIPPED transition.

LIFECYCLE:
NEW -> PACKING -> PACKED -> SHIPPED -> DELIVERED
RETURN / RTO reachable from PACKED, SHIPPED or DELIVERED (terminal).

DESIGN PRINCIPLES:
- Order creation never touches stock.
- Entering SHIPPED is the ONLY transition that deducts stock.
- Per line: conditional flip of stock_deducted (false -> true), and only a
  successful flip calls the ledger. A retry matches zero rows and is a no-op.
- All-or-nothing: any InsufficientStock rolls back every flip, movement and
  the status change.
- Leaving SHIPPED never reverses the deduction; restocking belongs to the
  return state machine.
"""

from __future__ import annotations

from collections import defaultdict

from ..extensions import db
from ..errors import InsufficientStock, InvalidTransition, NotFound, ValidationError
from ..models import Order, OrderItem, Product
from ..time_utils import utcnow
from .audit_service import record
from .concurrency import conditional_flip, lock_for_update, run_with_retry
from .context import OperationContext
from .ledger_service import MOVEMENT_ORDER_SHIPPED, apply_movement, get_product


# =============================================================================
# ORDER STATUS CONSTANTS
# =============================================================================

ORDER_STATUS_NEW = "NEW"
ORDER_STATUS_PACKING = "PACKING"
ORDER_STATUS_PACKED = "PACKED"
ORDER_STATUS_SHIPPED = "SHIPPED"
ORDER_STATUS_DELIVERED = "DELIVERED"
ORDER_STATUS_RETURN = "RETURN"
ORDER_STATUS_RTO = "RTO"

MAIN_SEQUENCE = [
    ORDER_STATUS_NEW,
    ORDER_STATUS_PACKING,
    ORDER_STATUS_PACKED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
]
RETURN_BRANCHES = {ORDER_STATUS_RETURN, ORDER_STATUS_RTO}
RETURN_BRANCH_SOURCES = {ORDER_STATUS_PACKED, ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED}
ORDER_STATUSES = set(MAIN_SEQUENCE) | RETURN_BRANCHES


def is_transition_allowed(current: str, target: str) -> bool:
    """
    Transition table.

    - same status: idempotent retry
    - main sequence: forward only (skipping steps is allowed)
    - RETURN / RTO: only from PACKED, SHIPPED or DELIVERED; terminal afterwards
    """
    if current == target:
        return True
    if current in RETURN_BRANCHES:
        return False
    if target in RETURN_BRANCHES:
        return current in RETURN_BRANCH_SOURCES
    return MAIN_SEQUENCE.index(target) > MAIN_SEQUENCE.index(current)


# =============================================================================
# ORDER CREATION
# =============================================================================

def _validate_items(items) -> list[dict]:
    if not items:
        raise ValidationError("An order needs at least one item")
    cleaned = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {index} must be an object")
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        price_cents = item.get("price_cents", 0)
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"Item {index}: product_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Item {index}: quantity must be a positive integer")
        if price_cents is None:
            price_cents = 0
        if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents < 0:
            raise ValidationError(f"Item {index}: price_cents must be a non-negative integer")
        cleaned.append({"product_id": product_id, "quantity": quantity, "price_cents": price_cents})
    return cleaned


def create_order(
    ctx: OperationContext,
    *,
    order_number: str,
    items: list[dict],
    customer_name: str | None = None,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    notes: str | None = None,
) -> Order:
    """
    Create an order (status NEW) together with its items.

    Stock is NOT checked or deducted here; that happens on SHIPPED.
    """
    order_number = (order_number or "").strip()
    if not order_number:
        raise ValidationError("order_number is required")
    cleaned = _validate_items(items)

    def _op():
        duplicate = db.session.query(Order).filter_by(
            workspace_id=ctx.workspace_id, order_number=order_number
        ).first()
        if duplicate:
            raise ValidationError(f"Order number {order_number} already exists")

        for item in cleaned:
            get_product(ctx, item["product_id"])

        order = Order(
            workspace_id=ctx.workspace_id,
            order_number=order_number,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            status=ORDER_STATUS_NEW,
            total_amount_cents=sum(i["quantity"] * i["price_cents"] for i in cleaned),
            notes=notes,
        )
        for item in cleaned:
            order.items.append(OrderItem(
                product_id=item["product_id"],
                quantity=item["quantity"],
                price_cents=item["price_cents"],
                stock_deducted=False,
                stock_returned=False,
            ))
        db.session.add(order)
        db.session.flush()

        record(ctx, "ORDER_CREATED", "ORDER", order.id, {
            "order_number": order.order_number,
            "items": len(cleaned),
            "total_amount_cents": order.total_amount_cents,
        })
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def load_order(ctx: OperationContext, order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id, workspace_id=ctx.workspace_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def _check_stock_for_shipment(ctx: OperationContext, pending: list[OrderItem]) -> None:
    """
    Fail before any write when a pending line cannot be covered.

    Lines for the same product are summed, so two lines that each fit but
    together do not are caught here rather than half-way through.
    """
    required = defaultdict(int)
    for item in pending:
        required[item.product_id] += item.quantity

    for product_id, quantity in required.items():
        product = get_product(ctx, product_id, lock=True)
        if product.quantity < quantity:
            raise InsufficientStock(
                product_id=product.id,
                available=product.quantity,
                requested=quantity,
                product_name=product.name,
            )


def _deduct_stock_for_shipment(ctx: OperationContext, order: Order) -> list:
    pending = [item for item in order.items if not item.stock_deducted]
    if not pending:
        return []

    _check_stock_for_shipment(ctx, pending)

    movements = []
    for item in pending:
        if not conditional_flip(OrderItem, item.id, OrderItem.stock_deducted):
            continue
        db.session.expire(item, ["stock_deducted"])

        product = db.session.get(Product, item.product_id)
        previous_stock = product.quantity
        movement = apply_movement(
            ctx,
            product_id=item.product_id,
            quantity_delta=-item.quantity,
            movement_type=MOVEMENT_ORDER_SHIPPED,
            reason=f"Order {order.order_number} shipped",
            reference_type="order",
            reference_id=order.id,
        )
        movements.append(movement)

        record(ctx, "INVENTORY_DEDUCT", "ORDER", order.id, {
            "order_number": order.order_number,
            "order_item_id": item.id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "previous_stock": previous_stock,
            "new_stock": product.quantity,
            "movement_id": movement.id,
        })
    return movements


def update_order_status(ctx: OperationContext, order_id: int, status: str) -> dict:
    """
    Move an order to a new status in one transaction.

    Returns {"order": Order, "movements": [StockMovement, ...]} where movements
    are the rows created by this call (empty on a retried SHIPPED).

    Raises:
        NotFound, InvalidTransition, InsufficientStock, ValidationError
    """
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {status}")

    def _op():
        order = load_order(ctx, order_id, lock=True)
        previous = order.status
        if not is_transition_allowed(previous, status):
            raise InvalidTransition(
                f"Cannot move order {order.order_number} from {previous} to {status}",
                current_status=previous,
                requested_status=status,
            )

        movements = []
        if status == ORDER_STATUS_SHIPPED:
            movements = _deduct_stock_for_shipment(ctx, order)
            if order.shipped_at is None:
                order.shipped_at = utcnow()
        if status == ORDER_STATUS_PACKED and order.packed_by is None:
            order.packed_by = ctx.actor_id

        if previous != status:
            order.status = status
            db.session.flush()
            record(ctx, "ORDER_STATUS_CHANGED", "ORDER", order.id, {
                "order_number": order.order_number,
                "old_status": previous,
                "new_status": status,
            })

        db.session.commit()
        return {"order": order, "movements": movements}

    return run_with_retry(_op)


def ship_order(ctx: OperationContext, order_id: int) -> dict:
    """Transition to SHIPPED; the single place stock is deducted for an order."""
    return update_order_status(ctx, order_id, ORDER_STATUS_SHIPPED)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(ctx: OperationContext, order_id: int) -> Order:
    return load_order(ctx, order_id)


def list_orders(ctx: OperationContext, status: str | None = None) -> list[Order]:
    q = db.session.query(Order).filter(Order.workspace_id == ctx.workspace_id)
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()
