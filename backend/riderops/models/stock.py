from __future__ import annotations

from ..extensions import db
from riderops.time_utils import to_utc_z


# Movement kinds
KIND_SENT = "sent"
KIND_RECEIVED = "received"
KIND_RETURNED = "returned"
KIND_ADJUSTMENT_IN = "adjustment_in"
KIND_ADJUSTMENT_OUT = "adjustment_out"
KIND_SOLD = "sold"
MOVEMENT_KINDS = {KIND_SENT, KIND_RECEIVED, KIND_RETURNED, KIND_ADJUSTMENT_IN, KIND_ADJUSTMENT_OUT, KIND_SOLD}

# Movement statuses
STATUS_PENDING = "pending"
STATUS_SENT = "sent"
STATUS_RECEIVED = "received"
STATUS_RETURNED = "returned"
STATUS_REJECTED = "rejected"
STATUS_SOLD = "sold"
MOVEMENT_STATUSES = {STATUS_PENDING, STATUS_SENT, STATUS_RECEIVED, STATUS_RETURNED, STATUS_REJECTED, STATUS_SOLD}


class StockMovement(db.Model):
    """
    Append-only stock movement event (branch -> rider -> sold/returned).

    LIFECYCLE:
    - sent: created by the branch, waits for the rider's confirmation
    - sent -> received: rider confirms (exactly once)
    - sent -> rejected: rider refuses the delivery (exactly once)
    - returned / sold / adjustment_*: written already settled

    Rows are never deleted. Corrections are new adjustment rows.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_rider_status", "rider_id", "status"),
        db.Index("ix_stock_movements_rider_product", "rider_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Groups the lines of one delivery or one end-of-shift return
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    rider_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, index=True)

    expected_time = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_time = db.Column(db.DateTime(timezone=True), nullable=True)

    verification_photo_ref = db.Column(db.String(512), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Branch-side count of a returned line (set once)
    verified_quantity = db.Column(db.Integer, nullable=True)
    verified_by_user_id = db.Column(db.Integer, nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} kind={self.kind} status={self.status} "
            f"rider_id={self.rider_id} product_id={self.product_id} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference_id": self.reference_id,
            "product_id": self.product_id,
            "rider_id": self.rider_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "kind": self.kind,
            "status": self.status,
            "expected_time": to_utc_z(self.expected_time),
            "actual_time": to_utc_z(self.actual_time),
            "verification_photo_ref": self.verification_photo_ref,
            "notes": self.notes,
            "verified_quantity": self.verified_quantity,
            "verified_by_user_id": self.verified_by_user_id,
            "verified_at": to_utc_z(self.verified_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryBalance(db.Model):
    """
    Stock a rider currently holds for one product.

    Derived from StockMovement rows and updated in the same DB transaction as
    the movement that changes it. Never negative (CHECK constraint), and
    version_id gives optimistic locking where SELECT ... FOR UPDATE is ignored.
    """
    __tablename__ = "inventory_balances"
    __table_args__ = (
        db.UniqueConstraint("rider_id", "product_id", name="uq_inventory_balances_rider_product"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_inventory_balances_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rider_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryBalance id={self.id} rider_id={self.rider_id} product_id={self.product_id} qty={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rider_id": self.rider_id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "stock_quantity": self.stock_quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
