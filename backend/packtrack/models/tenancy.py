from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Workspace(db.Model):
    """
    Tenant root: one seller operating one warehouse.

    Products, orders, returns, movements and audit entries are all scoped by
    workspace_id. The active workspace is never held in process state; every
    service call receives it through an OperationContext.
    """
    __tablename__ = "workspaces"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Workspace id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
