# Overview: Flask API routes for returns and RTOs; parses input and returns JSON responses.

"""
Return Processing API Routes

DESIGN:
- Open a RETURN or RTO against a packed/shipped/delivered order
- RTO parcels are inspected before approval or rejection
- Approval carries the restock decision; only YES puts goods back on the shelf
- Completion closes the return; stock was settled at approval
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context
from ..errors import FulfillmentError
from ..services import return_service

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


# =============================================================================
# RETURN CREATION / QUERIES
# =============================================================================

@returns_bp.post("")
@require_context
def create_return_route():
    """
    Open a return (status PENDING).

    Request body:
    {
        "order_id": 12,
        "return_type": "RETURN" | "RTO",
        "reason": "Customer changed mind"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order_id = data.get("order_id")
        return_type = data.get("return_type")
        if not order_id or not return_type:
            return jsonify({"error": "order_id and return_type required"}), 400

        return_doc = return_service.create_return(
            g.ctx, order_id, return_type, reason=data.get("reason")
        )
        return jsonify({"return": return_doc.to_dict()}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_context
def list_returns_route():
    order_id = request.args.get("order_id", type=int)
    returns = return_service.list_returns(
        g.ctx, status=request.args.get("status"), order_id=order_id
    )
    return jsonify({"returns": [r.to_dict() for r in returns]}), 200


@returns_bp.get("/<int:return_id>")
@require_context
def get_return_route(return_id: int):
    try:
        return jsonify(return_service.get_return_summary(g.ctx, return_id)), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code


# =============================================================================
# WORKFLOW
# =============================================================================

@returns_bp.post("/<int:return_id>/inspect")
@require_context
def inspect_return_route(return_id: int):
    """RTO only. Request body: {"inspection_notes": "..."} (optional)"""
    try:
        data = request.get_json(silent=True) or {}
        return_doc = return_service.inspect_return(
            g.ctx, return_id, inspection_notes=data.get("inspection_notes")
        )
        return jsonify({"return": return_doc.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to inspect return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/approve")
@require_context
def approve_return_route(return_id: int):
    """
    Approve a return with the restock decision.

    Request body:
    {
        "restock_decision": "YES" | "NO" | null,
        "notes": "..."  (optional)
    }

    Returns:
        200: return plus the RETURN_RESTOCK movements this call created
        409: return not awaiting approval, or already approved with another decision
    """
    try:
        data = request.get_json(silent=True) or {}
        result = return_service.approve_return(
            g.ctx,
            return_id,
            restock_decision=data.get("restock_decision"),
            notes=data.get("notes"),
        )
        return jsonify({
            "return": result["return"].to_dict(),
            "movements": [m.to_dict() for m in result["movements"]],
        }), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
@require_context
def reject_return_route(return_id: int):
    """RTO only, after inspection. Request body: {"rejection_reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        return_doc = return_service.reject_return(
            g.ctx, return_id, reason=data.get("rejection_reason")
        )
        return jsonify({"return": return_doc.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/complete")
@require_context
def complete_return_route(return_id: int):
    try:
        return_doc = return_service.complete_return(g.ctx, return_id)
        return jsonify({"return": return_doc.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete return")
        return jsonify({"error": "Internal server error"}), 500
