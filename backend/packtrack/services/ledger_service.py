# Overview: Stock ledger; the only writer of Product.quantity.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStock, NotFound, ValidationError
from ..models import Product, StockMovement
from .concurrency import lock_for_update
from .context import OperationContext
"""
Stock Ledger Invariants (authoritative)

- For every product: Product.quantity == SUM(StockMovement.quantity_delta).
- Quantity changes ONLY through apply_movement: one immutable movement row
  plus one quantity adjustment per call, in the caller's transaction.
- There is no "set quantity" operation; corrections are signed deltas
  (see reconciliation_service).
- On-hand quantity never goes below zero.
- apply_movement flushes but never commits; the enclosing unit of work owns
  the transaction boundary.
"""

MOVEMENT_ORDER_SHIPPED = "ORDER_SHIPPED"
MOVEMENT_RETURN_RESTOCK = "RETURN_RESTOCK"
MOVEMENT_RECONCILIATION = "RECONCILIATION"

MOVEMENT_TYPES = {MOVEMENT_ORDER_SHIPPED, MOVEMENT_RETURN_RESTOCK, MOVEMENT_RECONCILIATION}

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"


def get_product(ctx: OperationContext, product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id, workspace_id=ctx.workspace_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def apply_movement(
    ctx: OperationContext,
    *,
    product_id: int,
    quantity_delta: int,
    movement_type: str,
    reason: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    direction: str | None = None,
) -> StockMovement:
    """
    Append one movement and adjust the product's on-hand quantity by its delta.

    Order of operations:
    1. product exists in the workspace (NotFound)
    2. a negative delta cannot take quantity below zero (InsufficientStock)
    3. movement row is written
    4. Product.quantity is adjusted

    Must run inside an enclosing transaction; nothing is committed here.
    """
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise ValidationError("quantity_delta must be a non-zero integer")
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")
    if not reason or not reason.strip():
        raise ValidationError("A movement reason is required")

    product = get_product(ctx, product_id, lock=True)

    if quantity_delta < 0 and product.quantity + quantity_delta < 0:
        raise InsufficientStock(
            product_id=product.id,
            available=product.quantity,
            requested=-quantity_delta,
            product_name=product.name,
        )

    if direction is None:
        direction = DIRECTION_IN if quantity_delta > 0 else DIRECTION_OUT

    movement = StockMovement(
        workspace_id=ctx.workspace_id,
        product_id=product.id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        direction=direction,
        reason=reason.strip(),
        notes=notes,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_id=ctx.actor_id,
    )
    db.session.add(movement)

    # version_id on Product turns a concurrent writer into StaleDataError
    product.quantity = product.quantity + quantity_delta
    db.session.flush()
    return movement


def list_movements(
    ctx: OperationContext,
    *,
    product_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    movement_type: str | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    """Movements for the workspace, newest first."""
    q = db.session.query(StockMovement).filter(StockMovement.workspace_id == ctx.workspace_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if reference_type is not None:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == reference_id)
    if movement_type is not None:
        q = q.filter(StockMovement.movement_type == movement_type)
    q = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_ledger_quantity(ctx: OperationContext, product_id: int) -> int:
    """On-hand quantity recomputed from the movement log."""
    total = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity_delta), 0)
    ).filter(
        StockMovement.workspace_id == ctx.workspace_id,
        StockMovement.product_id == product_id,
    ).scalar()
    return int(total or 0)


def check_ledger_consistency(ctx: OperationContext) -> list[dict]:
    """
    Products whose cached quantity disagrees with their movement sum.

    An empty list means the ledger invariant holds for the whole workspace.
    """
    sums = (
        db.session.query(
            StockMovement.product_id.label("product_id"),
            func.sum(StockMovement.quantity_delta).label("total"),
        )
        .filter(StockMovement.workspace_id == ctx.workspace_id)
        .group_by(StockMovement.product_id)
        .subquery()
    )
    rows = (
        db.session.query(Product, func.coalesce(sums.c.total, 0))
        .outerjoin(sums, sums.c.product_id == Product.id)
        .filter(Product.workspace_id == ctx.workspace_id)
        .order_by(Product.id)
        .all()
    )
    drift = []
    for product, ledger_total in rows:
        ledger_total = int(ledger_total or 0)
        if product.quantity != ledger_total:
            drift.append({
                "product_id": product.id,
                "sku": product.sku,
                "stored_quantity": product.quantity,
                "ledger_quantity": ledger_total,
            })
    return drift


def get_low_stock_products(ctx: OperationContext) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(
            Product.workspace_id == ctx.workspace_id,
            Product.quantity <= Product.low_stock_threshold,
        )
        .order_by(Product.quantity.asc(), Product.id.asc())
        .all()
    )
