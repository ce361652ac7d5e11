from __future__ import annotations

from ..extensions import db
from riderops.time_utils import to_utc_z


VERIFICATION_FIELDS = (
    "verified_total_sales",
    "verified_cash_sales",
    "verified_qris_sales",
    "verified_transfer_sales",
    "verified_operational_expenses",
    "verified_cash_deposit",
)


class CashDepositVerification(db.Model):
    """
    Branch checklist over one rider's reported figures for one day.

    Pure overlay: nothing in the closing computation reads it.
    """
    __tablename__ = "cash_deposit_verifications"
    __table_args__ = (
        db.UniqueConstraint("rider_id", "deposit_date", name="uq_cash_deposit_verifications_rider_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rider_id = db.Column(db.Integer, nullable=False, index=True)
    deposit_date = db.Column(db.Date, nullable=False, index=True)

    verified_total_sales = db.Column(db.Boolean, nullable=False, default=False)
    verified_cash_sales = db.Column(db.Boolean, nullable=False, default=False)
    verified_qris_sales = db.Column(db.Boolean, nullable=False, default=False)
    verified_transfer_sales = db.Column(db.Boolean, nullable=False, default=False)
    verified_operational_expenses = db.Column(db.Boolean, nullable=False, default=False)
    verified_cash_deposit = db.Column(db.Boolean, nullable=False, default=False)

    notes = db.Column(db.Text, nullable=True)
    verified_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "rider_id": self.rider_id,
            "deposit_date": self.deposit_date.isoformat() if self.deposit_date else None,
            "notes": self.notes or "",
            "verified_by_user_id": self.verified_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
        for field in VERIFICATION_FIELDS:
            data[field] = bool(getattr(self, field))
        return data
