# backend/packtrack/services/reconciliation_service.py
"""
Manual stock reconciliation.

WHY: Physical counts drift from the books (breakage, miscounts, found
stock). Reconciliation books the correction as signed RECONCILIATION
movements so the movement-sum invariant keeps holding.

RULES:
- Every entry is validated before anything is written.
- One movement per entry, all entries in one transaction.
- No idempotency flag: each call is an unconditional new set of movements,
  so callers must not replay a reconciliation blindly.
- Order/return line flags are never read or written here.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import ValidationError
from ..models import StockMovement
from .audit_service import record
from .concurrency import run_with_retry
from .context import OperationContext
from .ledger_service import (
    DIRECTION_IN,
    DIRECTION_OUT,
    MOVEMENT_RECONCILIATION,
    apply_movement,
    get_product,
)

DIRECTIONS = {DIRECTION_IN, DIRECTION_OUT}


@dataclass(frozen=True)
class ReconciliationEntry:
    product_id: int
    quantity: int
    direction: str
    reason: str
    notes: str | None = None

    @property
    def quantity_delta(self) -> int:
        return self.quantity if self.direction == DIRECTION_IN else -self.quantity


def parse_entry(raw, index: int = 0) -> ReconciliationEntry:
    """Validate one raw entry (a dict or a ReconciliationEntry)."""
    if isinstance(raw, ReconciliationEntry):
        raw = {
            "product_id": raw.product_id,
            "quantity": raw.quantity,
            "direction": raw.direction,
            "reason": raw.reason,
            "notes": raw.notes,
        }
    if not isinstance(raw, dict):
        raise ValidationError(f"Entry {index} must be an object")

    product_id = raw.get("product_id")
    quantity = raw.get("quantity")
    direction = raw.get("direction")
    reason = raw.get("reason")

    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError(f"Entry {index}: product_id must be an integer", entry=index)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"Entry {index}: quantity must be a positive integer", entry=index)
    if isinstance(direction, str):
        direction = direction.strip().upper()
    if direction not in DIRECTIONS:
        raise ValidationError(f"Entry {index}: direction must be IN or OUT", entry=index)
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError(f"Entry {index}: a reason is required", entry=index)

    return ReconciliationEntry(
        product_id=product_id,
        quantity=quantity,
        direction=direction,
        reason=reason.strip(),
        notes=raw.get("notes"),
    )


def _apply_entries(ctx: OperationContext, entries: list[ReconciliationEntry]) -> list[StockMovement]:
    movements = []
    for entry in entries:
        product = get_product(ctx, entry.product_id, lock=True)
        previous_stock = product.quantity
        movement = apply_movement(
            ctx,
            product_id=entry.product_id,
            quantity_delta=entry.quantity_delta,
            movement_type=MOVEMENT_RECONCILIATION,
            reason=entry.reason,
            notes=entry.notes,
            direction=entry.direction,
        )
        movements.append(movement)

        record(ctx, "INVENTORY_RECONCILE", "PRODUCT", entry.product_id, {
            "direction": entry.direction,
            "quantity": entry.quantity,
            "reason": entry.reason,
            "previous_stock": previous_stock,
            "new_stock": product.quantity,
            "movement_id": movement.id,
        })
    return movements


def reconcile(ctx: OperationContext, entries) -> list[StockMovement]:
    """
    Book physical-count corrections.

    entries: iterable of {product_id, quantity, direction IN|OUT, reason, notes?}

    Raises:
        ValidationError: malformed entry or missing reason (nothing written)
        NotFound: unknown product (whole batch rolled back)
        InsufficientStock: an OUT entry exceeds on-hand (whole batch rolled back)
    """
    if entries is None:
        raise ValidationError("entries are required")
    parsed = [parse_entry(raw, index) for index, raw in enumerate(entries)]
    if not parsed:
        raise ValidationError("At least one reconciliation entry is required")

    def _op():
        movements = _apply_entries(ctx, parsed)
        db.session.commit()
        return movements

    return run_with_retry(_op)


def reconcile_to_count(
    ctx: OperationContext,
    product_id: int,
    actual_quantity: int,
    reason: str,
    notes: str | None = None,
) -> StockMovement | None:
    """
    Bring a product's quantity to a physical count.

    Emits one IN or OUT entry for the difference; returns None when the count
    already matches.
    """
    if isinstance(actual_quantity, bool) or not isinstance(actual_quantity, int) or actual_quantity < 0:
        raise ValidationError("actual_quantity must be a non-negative integer")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("A reason is required")

    def _op():
        product = get_product(ctx, product_id, lock=True)
        variance = actual_quantity - product.quantity
        if variance == 0:
            db.session.commit()
            return None

        entry = ReconciliationEntry(
            product_id=product.id,
            quantity=abs(variance),
            direction=DIRECTION_IN if variance > 0 else DIRECTION_OUT,
            reason=reason.strip(),
            notes=notes,
        )
        movement = _apply_entries(ctx, [entry])[0]
        db.session.commit()
        return movement

    return run_with_retry(_op)
