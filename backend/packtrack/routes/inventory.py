# Overview: Flask API routes for products, stock movements and reconciliation.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context
from ..errors import FulfillmentError
from ..services import ledger_service, products_service, reconciliation_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


# =============================================================================
# PRODUCTS
# =============================================================================

@inventory_bp.get("/products")
@require_context
def list_products_route():
    products = products_service.list_products(g.ctx, search=request.args.get("search"))
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@inventory_bp.post("/products")
@require_context
def create_product_route():
    """
    Request body:
    {
        "sku": "MUG-01",
        "name": "Ceramic mug",
        "description": "...",          (optional)
        "price_cents": 1200,           (optional)
        "low_stock_threshold": 5,      (optional)
        "opening_quantity": 20         (optional, booked as a reconciliation)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product = products_service.create_product(
            g.ctx,
            sku=data.get("sku"),
            name=data.get("name"),
            description=data.get("description"),
            price_cents=data.get("price_cents"),
            low_stock_threshold=data.get("low_stock_threshold", 5),
            opening_quantity=data.get("opening_quantity", 0),
        )
        return jsonify({"product": product.to_dict()}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.patch("/products/<int:product_id>")
@require_context
def update_product_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        product = products_service.update_product(g.ctx, product_id, **data)
        return jsonify({"product": product.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/movements")
@require_context
def list_movements_route(product_id: int):
    try:
        product = ledger_service.get_product(g.ctx, product_id)
        movements = ledger_service.list_movements(
            g.ctx,
            product_id=product_id,
            movement_type=request.args.get("movement_type"),
            limit=request.args.get("limit", type=int),
        )
        return jsonify({
            "product": product.to_dict(),
            "ledger_quantity": ledger_service.get_ledger_quantity(g.ctx, product_id),
            "movements": [m.to_dict() for m in movements],
        }), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/low-stock")
@require_context
def low_stock_route():
    products = ledger_service.get_low_stock_products(g.ctx)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@inventory_bp.get("/consistency")
@require_context
def consistency_route():
    drift = ledger_service.check_ledger_consistency(g.ctx)
    return jsonify({"consistent": not drift, "drift": drift}), 200


# =============================================================================
# RECONCILIATION
# =============================================================================

@inventory_bp.post("/reconcile")
@require_context
def reconcile_route():
    """
    Book physical-count corrections.

    Request body:
    {
        "entries": [
            {"product_id": 1, "quantity": 3, "direction": "OUT", "reason": "Damaged in storage"}
        ]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        movements = reconciliation_service.reconcile(g.ctx, data.get("entries"))
        return jsonify({"movements": [m.to_dict() for m in movements]}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/count")
@require_context
def count_route():
    """Request body: {"product_id": 1, "actual_quantity": 17, "reason": "Cycle count", "notes": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        if not isinstance(product_id, int):
            return jsonify({"error": "product_id required"}), 400

        movement = reconciliation_service.reconcile_to_count(
            g.ctx,
            product_id,
            data.get("actual_quantity"),
            data.get("reason"),
            notes=data.get("notes"),
        )
        return jsonify({"movement": movement.to_dict() if movement else None}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile count")
        return jsonify({"error": "Internal server error"}), 500
