from __future__ import annotations

from ..extensions import db
from riderops.time_utils import to_utc_z


SHIFT_ACTIVE = "active"
SHIFT_COMPLETED = "completed"


class Shift(db.Model):
    """
    One rider's accountable working period for a local calendar day.

    LIFECYCLE:
    - active: opened by the first stock receipt of the day (or lazily by report submission)
    - completed: closed exactly once by the shift report submission

    At most one active shift per (rider, date) is enforced by a partial unique
    index, so a race between two receipts fails at the data layer.
    Once completed only the verification fields change.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.UniqueConstraint("rider_id", "shift_date", "shift_number", name="uq_shifts_rider_date_number"),
        db.Index(
            "uq_shifts_one_active_per_rider_day",
            "rider_id",
            "shift_date",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rider_id = db.Column(db.Integer, nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)

    shift_date = db.Column(db.Date, nullable=False, index=True)
    shift_number = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_ACTIVE, index=True)
    shift_start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    shift_end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    report_submitted = db.Column(db.Boolean, nullable=False, default=False)
    report_verified = db.Column(db.Boolean, nullable=False, default=False)

    # Denormalized closing totals, whole rupiah
    total_sales = db.Column(db.Integer, nullable=False, default=0)
    cash_collected = db.Column(db.Integer, nullable=False, default=0)
    total_transactions = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == SHIFT_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rider_id": self.rider_id,
            "branch_id": self.branch_id,
            "shift_date": self.shift_date.isoformat() if self.shift_date else None,
            "shift_number": self.shift_number,
            "status": self.status,
            "shift_start_time": to_utc_z(self.shift_start_time),
            "shift_end_time": to_utc_z(self.shift_end_time),
            "report_submitted": self.report_submitted,
            "report_verified": self.report_verified,
            "total_sales": self.total_sales,
            "cash_collected": self.cash_collected,
            "total_transactions": self.total_transactions,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class OperationalExpense(db.Model):
    """
    Expense paid out of the rider's cash during a shift (ice, fuel, parking, ...).

    Written only by shift report submission. line_key is the natural
    idempotency key of a report line, so a retried submission cannot
    duplicate rows.
    """
    __tablename__ = "operational_expenses"
    __table_args__ = (
        db.UniqueConstraint("shift_id", "line_key", name="uq_operational_expenses_shift_line"),
        db.CheckConstraint("amount >= 0", name="ck_operational_expenses_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rider_id = db.Column(db.Integer, nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    line_key = db.Column(db.String(64), nullable=False)
    expense_type = db.Column(db.String(64), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    receipt_photo_ref = db.Column(db.String(512), nullable=True)
    expense_date = db.Column(db.Date, nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shift = db.relationship("Shift", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rider_id": self.rider_id,
            "shift_id": self.shift_id,
            "line_key": self.line_key,
            "expense_type": self.expense_type,
            "amount": self.amount,
            "description": self.description,
            "receipt_photo_ref": self.receipt_photo_ref,
            "expense_date": self.expense_date.isoformat() if self.expense_date else None,
        }


class DailyReport(db.Model):
    """
    Branch-facing record of a closed shift.

    Created once per (rider, shift) and never updated afterwards, apart from
    the verification fields. cash_collected is the deposit owed, not the raw
    cash sales.
    """
    __tablename__ = "daily_reports"
    __table_args__ = (
        db.UniqueConstraint("rider_id", "shift_id", name="uq_daily_reports_rider_shift"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rider_id = db.Column(db.Integer, nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    report_date = db.Column(db.Date, nullable=False, index=True)

    total_sales = db.Column(db.Integer, nullable=False, default=0)
    cash_sales = db.Column(db.Integer, nullable=False, default=0)
    qris_sales = db.Column(db.Integer, nullable=False, default=0)
    transfer_sales = db.Column(db.Integer, nullable=False, default=0)
    total_expenses = db.Column(db.Integer, nullable=False, default=0)
    cash_collected = db.Column(db.Integer, nullable=False, default=0)
    total_transactions = db.Column(db.Integer, nullable=False, default=0)

    deposit_proof_ref = db.Column(db.String(512), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    verified_by_user_id = db.Column(db.Integer, nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shift = db.relationship("Shift", backref=db.backref("daily_reports", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rider_id": self.rider_id,
            "shift_id": self.shift_id,
            "branch_id": self.branch_id,
            "report_date": self.report_date.isoformat() if self.report_date else None,
            "total_sales": self.total_sales,
            "cash_sales": self.cash_sales,
            "qris_sales": self.qris_sales,
            "transfer_sales": self.transfer_sales,
            "total_expenses": self.total_expenses,
            "cash_collected": self.cash_collected,
            "total_transactions": self.total_transactions,
            "deposit_proof_ref": self.deposit_proof_ref,
            "notes": self.notes,
            "verified_by_user_id": self.verified_by_user_id,
            "verified_at": to_utc_z(self.verified_at),
            "created_at": to_utc_z(self.created_at),
        }


class ReportSubmissionClaim(db.Model):
    """
    In-flight marker for a rider's shift report submission.

    Inserting the row is the claim: the unique rider_id makes a concurrent
    duplicate submit fail with an IntegrityError. The row is removed when the
    submission finishes, successfully or not.
    """
    __tablename__ = "report_submission_claims"
    __table_args__ = (
        db.UniqueConstraint("rider_id", name="uq_report_submission_claims_rider"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rider_id = db.Column(db.Integer, nullable=False)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=False)
