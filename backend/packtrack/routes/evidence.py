# Overview: Flask API routes for packing videos, integrity checks and export.

"""
Evidence API Routes

DESIGN:
- Upload a packing video or seal photo as multipart ("file" field) or raw body
- Verification re-hashes the stored file; failures downgrade is_valid
- Export is refused with 422 unless the latest video verifies
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context
from ..errors import FulfillmentError
from ..services import evidence_service

evidence_bp = Blueprint("evidence", __name__, url_prefix="/api/evidence")


# =============================================================================
# VIDEOS
# =============================================================================

@evidence_bp.post("/orders/<int:order_id>/videos")
@require_context
def upload_video_route(order_id: int):
    """
    Store a packing video for an order.

    Query/form params:
        duration_seconds (optional int)

    Returns:
        201: video row with its SHA-256 digest
        400: empty upload
        404: order not found
    """
    try:
        duration = request.values.get("duration_seconds", type=int)
        upload = request.files.get("file")
        artifact = upload.stream if upload is not None else request.get_data()

        video = evidence_service.save_evidence(
            g.ctx, order_id, artifact, duration_seconds=duration
        )
        return jsonify({"video": video.to_dict()}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save evidence video")
        return jsonify({"error": "Internal server error"}), 500


@evidence_bp.get("/orders/<int:order_id>/videos")
@require_context
def list_videos_route(order_id: int):
    try:
        videos = evidence_service.list_videos_for_order(g.ctx, order_id)
        return jsonify({"videos": [v.to_dict() for v in videos]}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code


@evidence_bp.get("/videos/<int:video_id>")
@require_context
def get_video_route(video_id: int):
    try:
        video = evidence_service.get_video(g.ctx, video_id)
        return jsonify({"video": video.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code


@evidence_bp.post("/videos/<int:video_id>/verify")
@require_context
def verify_video_route(video_id: int):
    """Always 200 for a known video; "valid" carries the outcome."""
    try:
        result = evidence_service.verify_evidence(g.ctx, video_id)
        return jsonify({"verification": result.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify evidence video")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PACKING CHECKLIST / EXPORT
# =============================================================================

@evidence_bp.get("/orders/<int:order_id>/packing")
@require_context
def get_packing_route(order_id: int):
    try:
        evidence = evidence_service.get_packing_evidence(g.ctx, order_id)
        return jsonify({"packing_evidence": evidence.to_dict() if evidence else None}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code


@evidence_bp.post("/orders/<int:order_id>/packing")
@require_context
def record_packing_route(order_id: int):
    """
    Request body:
    {
        "video_id": 3,                          (optional)
        "checklist_product_correct": true,
        "checklist_quantity_correct": true,
        "checklist_sealing_done": true,
        "photo_before_seal": "...",             (optional)
        "photo_after_seal": "..."               (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        evidence = evidence_service.record_packing_evidence(
            g.ctx,
            order_id,
            video_id=data.get("video_id"),
            checklist_product_correct=data.get("checklist_product_correct", False),
            checklist_quantity_correct=data.get("checklist_quantity_correct", False),
            checklist_sealing_done=data.get("checklist_sealing_done", False),
            photo_before_seal=data.get("photo_before_seal"),
            photo_after_seal=data.get("photo_after_seal"),
        )
        return jsonify({"packing_evidence": evidence.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record packing evidence")
        return jsonify({"error": "Internal server error"}), 500


@evidence_bp.post("/orders/<int:order_id>/photos")
@require_context
def upload_photo_route(order_id: int):
    """
    Store a seal photo; pass the returned file_path to /packing.

    Query/form params:
        kind: before_seal | after_seal

    Returns:
        201: {"photo": {file_path, filename, kind, file_size, order_id}}
        400: bad kind or empty upload
        404: order not found
    """
    try:
        upload = request.files.get("file")
        photo = upload.stream if upload is not None else request.get_data()
        saved = evidence_service.save_packing_photo(
            g.ctx, order_id, photo, request.values.get("kind", "")
        )
        return jsonify({"photo": saved}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save packing photo")
        return jsonify({"error": "Internal server error"}), 500


@evidence_bp.get("/orders/<int:order_id>/export")
@require_context
def export_route(order_id: int):
    """
    Evidence manifest for a dispute.

    Query params:
        return_id (optional): include the return document

    Returns:
        200: manifest
        404: order, return or video not found
        422: latest video failed verification
    """
    try:
        manifest = evidence_service.build_evidence_export(
            g.ctx, order_id, return_id=request.args.get("return_id", type=int)
        )
        return jsonify(manifest), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build evidence export")
        return jsonify({"error": "Internal server error"}), 500
