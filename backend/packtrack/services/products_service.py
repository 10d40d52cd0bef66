# Overview: Service-layer operations for products; quantity is never written here.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import ValidationError
from ..models import Product
from .audit_service import record
from .concurrency import run_with_retry
from .context import OperationContext
from .ledger_service import MOVEMENT_RECONCILIATION, apply_movement, get_product

# Fields a caller may change after creation. quantity is deliberately absent:
# stock only moves through the ledger.
UPDATABLE_FIELDS = {"name", "description", "price_cents", "low_stock_threshold"}


def _require_non_negative_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def create_product(
    ctx: OperationContext,
    *,
    sku: str,
    name: str,
    description: str | None = None,
    price_cents: int | None = None,
    low_stock_threshold: int = 5,
    opening_quantity: int = 0,
) -> Product:
    """
    Create a product at quantity 0.

    A positive opening_quantity is booked as a RECONCILIATION movement in the
    same transaction, so the movement-sum invariant holds from the first row.
    """
    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku:
        raise ValidationError("sku is required")
    if not name:
        raise ValidationError("name is required")
    _require_non_negative_int("low_stock_threshold", low_stock_threshold)
    _require_non_negative_int("opening_quantity", opening_quantity)
    if price_cents is not None:
        _require_non_negative_int("price_cents", price_cents)

    def _op():
        existing = db.session.query(Product).filter_by(workspace_id=ctx.workspace_id, sku=sku).first()
        if existing:
            raise ValidationError(f"SKU {sku} already exists in this workspace")

        product = Product(
            workspace_id=ctx.workspace_id,
            sku=sku,
            name=name,
            description=description,
            price_cents=price_cents,
            low_stock_threshold=low_stock_threshold,
            quantity=0,
        )
        db.session.add(product)
        db.session.flush()

        if opening_quantity > 0:
            apply_movement(
                ctx,
                product_id=product.id,
                quantity_delta=opening_quantity,
                movement_type=MOVEMENT_RECONCILIATION,
                reason="Opening stock",
            )

        record(ctx, "PRODUCT_CREATED", "PRODUCT", product.id, {
            "sku": product.sku,
            "opening_quantity": opening_quantity,
        })
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(ctx: OperationContext, product_id: int, **changes) -> Product:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(sorted(unknown))}")

    def _op():
        product = get_product(ctx, product_id, lock=True)
        if "name" in changes:
            if not changes["name"] or not str(changes["name"]).strip():
                raise ValidationError("name is required")
            product.name = str(changes["name"]).strip()
        if "description" in changes:
            product.description = changes["description"]
        if "price_cents" in changes:
            if changes["price_cents"] is not None:
                _require_non_negative_int("price_cents", changes["price_cents"])
            product.price_cents = changes["price_cents"]
        if "low_stock_threshold" in changes:
            product.low_stock_threshold = _require_non_negative_int(
                "low_stock_threshold", changes["low_stock_threshold"]
            )
        db.session.flush()
        record(ctx, "PRODUCT_UPDATED", "PRODUCT", product.id, {"fields": sorted(changes)})
        db.session.commit()
        return product

    return run_with_retry(_op)


def list_products(ctx: OperationContext, search: str | None = None) -> list[Product]:
    q = db.session.query(Product).filter(Product.workspace_id == ctx.workspace_id)
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return q.order_by(Product.name.asc()).all()
