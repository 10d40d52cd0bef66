# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order API Routes

DESIGN:
- Create orders with line items (stock untouched until SHIPPED)
- Move orders through the status machine
- Shipping is the single place stock is deducted; retries are no-ops
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context
from ..errors import FulfillmentError
from ..services import order_service

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _transition_response(result: dict):
    return jsonify({
        "order": result["order"].to_dict(),
        "movements": [m.to_dict() for m in result["movements"]],
    }), 200


@orders_bp.post("")
@require_context
def create_order_route():
    """
    Create an order (status NEW).

    Request body:
    {
        "order_number": "ORD-1001",
        "customer_name": "...",          (optional)
        "customer_email": "...",         (optional)
        "customer_phone": "...",         (optional)
        "notes": "...",                  (optional)
        "items": [{"product_id": 1, "quantity": 2, "price_cents": 1500}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(
            g.ctx,
            order_number=data.get("order_number"),
            items=data.get("items"),
            customer_name=data.get("customer_name"),
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_context
def list_orders_route():
    status = request.args.get("status")
    orders = order_service.list_orders(g.ctx, status=status)
    return jsonify({"orders": [o.to_dict(include_items=False) for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_context
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.ctx, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/status")
@require_context
def update_status_route(order_id: int):
    """
    Request body: {"status": "PACKED"}

    Returns:
        200: order plus the stock movements this call created
        400: unknown status
        409: transition not allowed, or insufficient stock on SHIPPED
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        result = order_service.update_order_status(g.ctx, order_id, status)
        return _transition_response(result)
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/ship")
@require_context
def ship_order_route(order_id: int):
    try:
        result = order_service.ship_order(g.ctx, order_id)
        return _transition_response(result)
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to ship order")
        return jsonify({"error": "Internal server error"}), 500
