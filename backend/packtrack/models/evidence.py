from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from ..time_utils import to_utc_z

class Video(db.Model):
    """
    Packing video evidence.

    IMMUTABLE: file_path, file_hash, file_size and duration are fixed at
    recording time. The only permitted change is is_valid going from True
    to False after a failed verification; it never goes back.
    """
    __tablename__ = "videos"
    __table_args__ = (
        db.Index("ix_videos_order_recorded", "order_id", "recorded_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    file_path = db.Column(db.String(1024), nullable=False)
    file_hash = db.Column(db.String(64), nullable=False)  # SHA-256 hex
    file_size = db.Column(db.BigInteger, nullable=False)
    duration_seconds = db.Column(db.Integer, nullable=True)

    is_valid = db.Column(db.Boolean, nullable=False, default=True)

    recorded_by = db.Column(db.Integer, nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("videos", lazy=True))

    def __repr__(self) -> str:
        return f"<Video id={self.id} order_id={self.order_id} valid={self.is_valid}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "file_path": self.file_path,
            "file_hash": self.file_hash,
            "file_size": self.file_size,
            "duration_seconds": self.duration_seconds,
            "is_valid": self.is_valid,
            "recorded_by": self.recorded_by,
            "recorded_at": to_utc_z(self.recorded_at),
        }


@event.listens_for(Video, "before_update")
def _guard_video_update(mapper, connection, target):
    state = inspect(target)
    for attr in mapper.column_attrs:
        history = state.attrs[attr.key].history
        if not history.has_changes():
            continue
        if attr.key != "is_valid":
            raise ValueError(f"video {target.id}: {attr.key} is immutable")
        if target.is_valid:
            raise ValueError(f"video {target.id}: validity can only be downgraded")


@event.listens_for(Video, "before_delete")
def _refuse_video_delete(mapper, connection, target):
    raise ValueError(f"video {target.id} is evidence and cannot be deleted")


class PackingEvidence(db.Model):
    """
    One-per-order packing checklist, optionally tied to the video it was
    produced from and to before/after seal photos.
    """
    __tablename__ = "packing_evidence"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_packing_evidence_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=True)

    checklist_product_correct = db.Column(db.Boolean, nullable=False, default=False)
    checklist_quantity_correct = db.Column(db.Boolean, nullable=False, default=False)
    checklist_sealing_done = db.Column(db.Boolean, nullable=False, default=False)

    photo_before_seal = db.Column(db.String(1024), nullable=True)
    photo_after_seal = db.Column(db.String(1024), nullable=True)

    recorded_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("packing_evidence", uselist=False, lazy=True))
    video = db.relationship("Video")

    @property
    def is_complete(self) -> bool:
        return bool(
            self.checklist_product_correct
            and self.checklist_quantity_correct
            and self.checklist_sealing_done
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "video_id": self.video_id,
            "checklist_product_correct": self.checklist_product_correct,
            "checklist_quantity_correct": self.checklist_quantity_correct,
            "checklist_sealing_done": self.checklist_sealing_done,
            "is_complete": self.is_complete,
            "photo_before_seal": self.photo_before_seal,
            "photo_after_seal": self.photo_after_seal,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
