# Overview: Evidence store; saves packing videos, locks them read-only and verifies their digest.

"""
Evidence Store Invariants (authoritative)

- A video is written once, hashed (SHA-256 over the full file as stored on
  disk), then made read-only at the filesystem level (chmod 0o444).
- The Video row records digest, size and duration at save time and is
  immutable afterwards, except is_valid which may only go True -> False.
- verify_evidence re-reads the file and compares digests:
    missing file   -> invalid, "File not found", is_valid downgraded
    digest differs -> invalid, "Hash mismatch - file has been modified",
                      is_valid downgraded
    digest matches -> valid, nothing written
- Hashing streams the file in chunks and never runs inside a ledger
  transaction. Save/verify and stock mutation are independent failure
  domains: nothing here rolls back stock, and no stock error rolls back a
  saved video.
- Export refuses to proceed unless the order's latest video verifies and
  its row was never downgraded.
- Stored paths are absolute; a failed save leaves no file behind.
"""

from __future__ import annotations

import hashlib
import os
import stat
from dataclasses import asdict, dataclass

from flask import current_app
from werkzeug.utils import secure_filename

from ..extensions import db
from ..errors import IntegrityViolation, NotFound, ValidationError
from ..models import Order, PackingEvidence, Return, Video
from ..time_utils import day_folder, epoch_millis, to_utc_z, utcnow
from .audit_service import record
from .concurrency import run_with_retry
from .context import OperationContext
from .order_service import load_order

READ_ONLY_MODE = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH  # 0o444

REASON_VALID = "Valid"
REASON_FILE_NOT_FOUND = "File not found"
REASON_HASH_MISMATCH = "Hash mismatch - file has been modified"
REASON_PREVIOUSLY_FAILED = "Evidence previously failed verification"

PHOTO_KINDS = ("before_seal", "after_seal")


@dataclass
class VerificationResult:
    video_id: int
    valid: bool
    reason: str
    original_hash: str
    current_hash: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# FILE HELPERS
# =============================================================================

def compute_file_hash(file_path: str, chunk_size: int | None = None) -> str:
    """SHA-256 hex digest of a file, read in chunks."""
    if chunk_size is None:
        chunk_size = current_app.config.get("EVIDENCE_HASH_CHUNK_SIZE", 1024 * 1024)
    digest = hashlib.sha256()
    with open(file_path, "rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def lock_file(file_path: str) -> None:
    """Drop every write bit on the stored artifact."""
    os.chmod(file_path, READ_ONLY_MODE)


def _storage_dir(config_key: str) -> str:
    root = os.path.abspath(current_app.config[config_key])
    day_dir = os.path.join(root, day_folder())
    os.makedirs(day_dir, exist_ok=True)
    return day_dir


def _unique_path(directory: str, stem: str, extension: str) -> str:
    path = os.path.join(directory, f"{stem}{extension}")
    suffix = 1
    while os.path.exists(path):
        path = os.path.join(directory, f"{stem}_{suffix}{extension}")
        suffix += 1
    return path


def _video_path_for(order_number: str) -> str:
    stem = f"{secure_filename(order_number) or 'order'}_{epoch_millis()}"
    return _unique_path(_storage_dir("VIDEO_STORAGE_ROOT"), stem, ".mp4")


def _photo_path_for(order_number: str, kind: str) -> str:
    stem = f"{secure_filename(order_number) or 'order'}_{epoch_millis()}_{kind}"
    return _unique_path(_storage_dir("PHOTO_STORAGE_ROOT"), stem, ".jpg")


def _discard(file_path: str) -> None:
    """Remove a stored file, locked or not. Missing files are ignored."""
    if not os.path.exists(file_path):
        return
    os.chmod(file_path, stat.S_IRUSR | stat.S_IWUSR)
    os.remove(file_path)


def _write_artifact(file_path: str, artifact) -> None:
    """artifact is bytes-like or a binary stream with read()."""
    chunk_size = current_app.config.get("EVIDENCE_HASH_CHUNK_SIZE", 1024 * 1024)
    with open(file_path, "xb") as out:
        if isinstance(artifact, (bytes, bytearray, memoryview)):
            out.write(artifact)
            return
        for chunk in iter(lambda: artifact.read(chunk_size), b""):
            out.write(chunk)


# =============================================================================
# SAVE
# =============================================================================

def save_evidence(
    ctx: OperationContext,
    order_id: int,
    artifact,
    *,
    duration_seconds: int | None = None,
    recorded_by: int | None = None,
) -> Video:
    """
    Persist a packing video for an order and record its digest.

    Returns the Video row (id, file_path, file_hash, file_size, ...).

    Raises:
        NotFound: order is not in the workspace (nothing written to disk)
        ValidationError: empty artifact or bad duration
    """
    if artifact is None:
        raise ValidationError("A video artifact is required")
    if isinstance(artifact, (bytes, bytearray, memoryview)) and len(artifact) == 0:
        raise ValidationError("Video artifact is empty")
    if duration_seconds is not None and (
        isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int) or duration_seconds < 0
    ):
        raise ValidationError("duration_seconds must be a non-negative integer")

    order = load_order(ctx, order_id)
    order_pk = order.id
    file_path = _video_path_for(order.order_number)
    # release the read snapshot before file I/O
    db.session.commit()

    try:
        _write_artifact(file_path, artifact)
        file_hash = compute_file_hash(file_path)
        lock_file(file_path)
        file_size = os.stat(file_path).st_size
    except FileExistsError:
        raise
    except Exception:
        current_app.logger.exception("Failed to store evidence file %s", file_path)
        _discard(file_path)
        raise

    if file_size == 0:
        _discard(file_path)
        raise ValidationError("Video artifact is empty")

    def _op():
        video = Video(
            order_id=order_pk,
            file_path=file_path,
            file_hash=file_hash,
            file_size=file_size,
            duration_seconds=duration_seconds,
            is_valid=True,
            recorded_by=recorded_by if recorded_by is not None else ctx.actor_id,
        )
        db.session.add(video)
        db.session.flush()
        record(ctx, "VIDEO_RECORDED", "VIDEO", video.id, {
            "order_id": order_pk,
            "file_hash": file_hash,
            "file_size": file_size,
            "duration_seconds": duration_seconds,
        })
        db.session.commit()
        return video

    try:
        video = run_with_retry(_op)
    except Exception:
        # a locked file without a row can never be verified
        current_app.logger.exception("Failed to record evidence video %s", file_path)
        _discard(file_path)
        raise
    current_app.logger.info(
        "Saved evidence video %s for order %s (%d bytes, sha256=%s)",
        video.id, order_pk, file_size, file_hash,
    )
    return video


# =============================================================================
# VERIFY
# =============================================================================

def get_video(ctx: OperationContext, video_id: int) -> Video:
    video = (
        db.session.query(Video)
        .join(Order, Order.id == Video.order_id)
        .filter(Video.id == video_id, Order.workspace_id == ctx.workspace_id)
        .first()
    )
    if video is None:
        raise NotFound(f"Video {video_id} not found")
    return video


def _downgrade_validity(ctx: OperationContext, video_id: int, reason: str, details: dict) -> None:
    """is_valid True -> False; a no-op when already invalid."""
    def _op():
        changed = (
            db.session.query(Video)
            .filter(Video.id == video_id, Video.is_valid.is_(True))
            .update({Video.is_valid: False}, synchronize_session=False)
        )
        if changed:
            record(ctx, "VIDEO_INTEGRITY_FAILED", "VIDEO", video_id, dict(details, reason=reason))
        db.session.commit()

    run_with_retry(_op)


def verify_evidence(ctx: OperationContext, video_id: int) -> VerificationResult:
    """
    Re-hash a stored video and compare with the recorded digest.

    Safe to call any number of times; the success path writes nothing.
    """
    video = get_video(ctx, video_id)
    file_path = video.file_path
    original_hash = video.file_hash
    # release the read snapshot before hashing
    db.session.commit()

    if not os.path.exists(file_path):
        _downgrade_validity(ctx, video_id, REASON_FILE_NOT_FOUND, {"file_path": file_path})
        current_app.logger.warning("Evidence video %s missing at %s", video_id, file_path)
        return VerificationResult(
            video_id=video_id,
            valid=False,
            reason=REASON_FILE_NOT_FOUND,
            original_hash=original_hash,
        )

    current_hash = compute_file_hash(file_path)
    if current_hash != original_hash:
        _downgrade_validity(ctx, video_id, REASON_HASH_MISMATCH, {
            "original_hash": original_hash,
            "current_hash": current_hash,
        })
        current_app.logger.warning("Evidence video %s failed hash verification", video_id)
        return VerificationResult(
            video_id=video_id,
            valid=False,
            reason=REASON_HASH_MISMATCH,
            original_hash=original_hash,
            current_hash=current_hash,
        )

    return VerificationResult(
        video_id=video_id,
        valid=True,
        reason=REASON_VALID,
        original_hash=original_hash,
        current_hash=current_hash,
    )


def list_videos_for_order(ctx: OperationContext, order_id: int) -> list[Video]:
    load_order(ctx, order_id)
    return (
        db.session.query(Video)
        .filter(Video.order_id == order_id)
        .order_by(Video.recorded_at.desc(), Video.id.desc())
        .all()
    )


# =============================================================================
# PACKING EVIDENCE
# =============================================================================

def record_packing_evidence(
    ctx: OperationContext,
    order_id: int,
    *,
    video_id: int | None = None,
    checklist_product_correct: bool = False,
    checklist_quantity_correct: bool = False,
    checklist_sealing_done: bool = False,
    photo_before_seal: str | None = None,
    photo_after_seal: str | None = None,
) -> PackingEvidence:
    """Create or update the one-per-order packing checklist."""
    def _op():
        order = load_order(ctx, order_id, lock=True)
        if video_id is not None:
            video = db.session.get(Video, video_id)
            if video is None or video.order_id != order.id:
                raise ValidationError(f"Video {video_id} does not belong to order {order.order_number}")

        evidence = db.session.query(PackingEvidence).filter_by(order_id=order.id).first()
        created = evidence is None
        if created:
            evidence = PackingEvidence(workspace_id=ctx.workspace_id, order_id=order.id)
            db.session.add(evidence)

        if video_id is not None:
            evidence.video_id = video_id
        evidence.checklist_product_correct = bool(checklist_product_correct)
        evidence.checklist_quantity_correct = bool(checklist_quantity_correct)
        evidence.checklist_sealing_done = bool(checklist_sealing_done)
        evidence.photo_before_seal = photo_before_seal
        evidence.photo_after_seal = photo_after_seal
        evidence.recorded_by = ctx.actor_id
        db.session.flush()

        record(ctx, "PACKING_EVIDENCE_RECORDED" if created else "PACKING_EVIDENCE_UPDATED",
               "ORDER", order.id, {
                   "packing_evidence_id": evidence.id,
                   "video_id": evidence.video_id,
                   "complete": evidence.is_complete,
               })
        db.session.commit()
        return evidence

    return run_with_retry(_op)


def get_packing_evidence(ctx: OperationContext, order_id: int) -> PackingEvidence | None:
    load_order(ctx, order_id)
    return db.session.query(PackingEvidence).filter_by(order_id=order_id).first()


def save_packing_photo(ctx: OperationContext, order_id: int, photo, kind: str) -> dict:
    """
    Store a before/after-seal photo under <PHOTO_STORAGE_ROOT>/<YYYY-MM-DD>/.

    The returned file_path is the value record_packing_evidence expects in
    photo_before_seal / photo_after_seal.
    """
    if kind not in PHOTO_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(PHOTO_KINDS)}")
    if photo is None:
        raise ValidationError("A photo is required")
    if isinstance(photo, (bytes, bytearray, memoryview)) and len(photo) == 0:
        raise ValidationError("Photo is empty")

    order = load_order(ctx, order_id)
    order_number = order.order_number
    file_path = _photo_path_for(order_number, kind)
    db.session.commit()

    try:
        _write_artifact(file_path, photo)
        file_size = os.stat(file_path).st_size
    except FileExistsError:
        raise
    except Exception:
        current_app.logger.exception("Failed to store packing photo %s", file_path)
        _discard(file_path)
        raise

    if file_size == 0:
        _discard(file_path)
        raise ValidationError("Photo is empty")

    current_app.logger.info("Saved %s photo for order %s at %s", kind, order_number, file_path)
    return {
        "order_id": order_id,
        "kind": kind,
        "file_path": file_path,
        "filename": os.path.basename(file_path),
        "file_size": file_size,
    }


# =============================================================================
# EXPORT GATE
# =============================================================================

def build_evidence_export(ctx: OperationContext, order_id: int, return_id: int | None = None) -> dict:
    """
    Compile the dispute/export manifest for an order.

    The order's most recent video is verified first; a failed verification
    raises IntegrityViolation and nothing is exported.
    """
    order = load_order(ctx, order_id)

    return_doc = None
    if return_id is not None:
        return_doc = (
            db.session.query(Return)
            .filter_by(id=return_id, workspace_id=ctx.workspace_id, order_id=order.id)
            .first()
        )
        if return_doc is None:
            raise NotFound(f"Return {return_id} not found for order {order.order_number}")

    video = (
        db.session.query(Video)
        .filter(Video.order_id == order.id)
        .order_by(Video.recorded_at.desc(), Video.id.desc())
        .first()
    )
    if video is None:
        raise NotFound(f"Video evidence not found for order {order.order_number}")

    result = verify_evidence(ctx, video.id)
    video = get_video(ctx, video.id)
    if result.valid and not video.is_valid:
        # restored bytes do not clear an earlier failure
        result = VerificationResult(
            video_id=video.id,
            valid=False,
            reason=REASON_PREVIOUSLY_FAILED,
            original_hash=result.original_hash,
            current_hash=result.current_hash,
        )
    if not result.valid:
        raise IntegrityViolation(
            f"Evidence for order {order.order_number} failed verification: {result.reason}",
            **result.to_dict(),
        )

    packing = db.session.query(PackingEvidence).filter_by(order_id=order.id).first()
    return {
        "order": order.to_dict(),
        "return": return_doc.to_dict() if return_doc else None,
        "video": video.to_dict(),
        "packing_evidence": packing.to_dict() if packing else None,
        "verification": result.to_dict(),
        "exported_at": to_utc_z(utcnow()),
    }
