from __future__ import annotations

from ..extensions import db
from riderops.time_utils import to_utc_z


TX_PENDING = "pending"
TX_COMPLETED = "completed"
TX_CANCELLED = "cancelled"
TX_STATUSES = {TX_PENDING, TX_COMPLETED, TX_CANCELLED}


class SalesTransaction(db.Model):
    """
    A rider's sale as recorded by the point-of-sale client.

    Only completed, non-voided rows count towards any sales figure. Voiding
    flips is_voided and keeps the row for audit.
    """
    __tablename__ = "sales_transactions"
    __table_args__ = (
        db.Index("ix_sales_transactions_rider_date", "rider_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(64), nullable=False, unique=True)

    rider_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)

    # Whole rupiah
    final_amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TX_COMPLETED, index=True)

    is_voided = db.Column(db.Boolean, nullable=False, default=False, index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "rider_id": self.rider_id,
            "branch_id": self.branch_id,
            "final_amount": self.final_amount,
            "payment_method": self.payment_method,
            "status": self.status,
            "is_voided": self.is_voided,
            "voided_at": to_utc_z(self.voided_at),
            "voided_by_user_id": self.voided_by_user_id,
            "void_reason": self.void_reason,
            "transaction_date": to_utc_z(self.transaction_date),
        }
