from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Order(db.Model):
    """
    Customer order.

    LIFECYCLE:
    NEW -> PACKING -> PACKED -> SHIPPED -> DELIVERED
    RETURN / RTO branch off PACKED, SHIPPED or DELIVERED.

    Stock is deducted exactly once, on entry into SHIPPED
    (services.order_service). Creating an order never touches stock.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("workspace_id", "order_number", name="uq_orders_workspace_number"),
        db.Index("ix_orders_workspace_status_created", "workspace_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(db.Integer, db.ForeignKey("workspaces.id"), nullable=False, index=True)

    order_number = db.Column(db.String(64), nullable=False)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="NEW", index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    packed_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)

    workspace = db.relationship("Workspace", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "notes": self.notes,
            "packed_by": self.packed_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "shipped_at": to_utc_z(self.shipped_at) if self.shipped_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

class OrderItem(db.Model):
    """
    One line of an order.

    IDEMPOTENCY FLAGS:
    - stock_deducted: flipped false -> true once, by the SHIPPED transition
    - stock_returned: flipped false -> true once, by a YES restock approval,
      and only when stock_deducted is already true
    Flags never revert. Both are flipped with a conditional UPDATE whose
    row count decides whether the ledger is touched.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.CheckConstraint(
            "NOT stock_returned OR stock_deducted",
            name="ck_order_items_returned_requires_deducted",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)
    stock_returned = db.Column(db.Boolean, nullable=False, default=False)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "sku": self.product.sku if self.product else None,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "stock_deducted": self.stock_deducted,
            "stock_returned": self.stock_returned,
        }
