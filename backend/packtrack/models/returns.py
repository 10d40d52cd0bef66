from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Return(db.Model):
    """
    Customer return or carrier RTO (return-to-origin) against one order.

    LIFECYCLE:
    RETURN: PENDING -> APPROVED -> COMPLETED
    RTO:    PENDING -> INSPECTED -> APPROVED -> COMPLETED
                       INSPECTED -> REJECTED

    restock_status records the operator decision taken at approval
    (YES / NO / None). Only YES restores stock; stock_restored is set once.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.Index("ix_returns_workspace_status_created", "workspace_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    return_type = db.Column(db.String(8), nullable=False)  # RETURN, RTO
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    reason = db.Column(db.Text, nullable=True)
    inspection_notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    restock_status = db.Column(db.String(8), nullable=True)  # YES, NO, None
    stock_restored = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    inspected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    inspected_by = db.Column(db.Integer, nullable=True)
    approved_by = db.Column(db.Integer, nullable=True)
    completed_by = db.Column(db.Integer, nullable=True)
    rejected_by = db.Column(db.Integer, nullable=True)

    order = db.relationship("Order", backref=db.backref("returns", lazy=True))

    def __repr__(self) -> str:
        return f"<Return id={self.id} type={self.return_type} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "return_type": self.return_type,
            "status": self.status,
            "reason": self.reason,
            "inspection_notes": self.inspection_notes,
            "rejection_reason": self.rejection_reason,
            "restock_status": self.restock_status,
            "stock_restored": self.stock_restored,
            "created_at": to_utc_z(self.created_at),
            "inspected_at": to_utc_z(self.inspected_at) if self.inspected_at else None,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "created_by": self.created_by,
            "inspected_by": self.inspected_by,
            "approved_by": self.approved_by,
            "completed_by": self.completed_by,
            "rejected_by": self.rejected_by,
        }
