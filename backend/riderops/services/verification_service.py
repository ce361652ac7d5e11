# Overview: Service-layer operations for the branch verification checklist; plain upserts keyed by (rider, date).

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import CashDepositVerification
from ..models.verification import VERIFICATION_FIELDS
from ..validation import ValidationError
from .concurrency import run_with_retry


def _get_or_create(rider_id: int, deposit_date: date) -> CashDepositVerification:
    row = db.session.query(CashDepositVerification).filter_by(
        rider_id=rider_id, deposit_date=deposit_date
    ).first()
    if row is None:
        row = CashDepositVerification(rider_id=rider_id, deposit_date=deposit_date)
        for name in VERIFICATION_FIELDS:
            setattr(row, name, False)
        db.session.add(row)
        # Two staff creating the same row at once: IntegrityError -> retry finds it
        db.session.flush()
    return row


def set_verified_flag(
    rider_id: int,
    deposit_date: date,
    field: str,
    value: bool,
    *,
    user_id: int | None = None,
) -> CashDepositVerification:
    """Set one checklist flag. Last write wins per field; other flags are untouched."""
    if field not in VERIFICATION_FIELDS:
        raise ValidationError(
            f"field must be one of: {', '.join(VERIFICATION_FIELDS)}",
            field="field",
        )
    if not isinstance(value, bool):
        raise ValidationError("value must be a boolean", field="value")

    def _op():
        row = _get_or_create(rider_id, deposit_date)
        setattr(row, field, value)
        row.verified_by_user_id = user_id
        db.session.commit()
        return row

    return run_with_retry(_op)


def set_notes(rider_id: int, deposit_date: date, text: str, *, user_id: int | None = None) -> CashDepositVerification:
    if not isinstance(text, str):
        raise ValidationError("text must be a string", field="text")

    def _op():
        row = _get_or_create(rider_id, deposit_date)
        row.notes = text
        row.verified_by_user_id = user_id
        db.session.commit()
        return row

    return run_with_retry(_op)


def get_verification(rider_id: int, deposit_date: date) -> CashDepositVerification | None:
    return db.session.query(CashDepositVerification).filter_by(
        rider_id=rider_id, deposit_date=deposit_date
    ).first()
