# Overview: Service-layer operations for the end-of-shift report; closes a shift and writes its daily report.

"""
Shift Report Submission

A submission runs in three phases:

1. Claim: insert a ReportSubmissionClaim row for the rider and commit it on
   its own. The unique rider_id makes a concurrent duplicate submit fail
   fast with AlreadySubmitting. The claim is always released at the end.
2. Checks and uploads, with no writes: all stock returned or sold, the
   shift not yet submitted, optional photos stored. Photo failures here
   degrade to "no photo" and never block the report.
3. One DB transaction: expense lines, daily report, shift completion.

Retrying after a failure in phase 3 is safe. Expense lines carry a natural
key per shift, and the daily report is create-if-absent, never updated.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DailyReport, OperationalExpense, ReportSubmissionClaim, Shift
from ..validation import (
    AlreadySubmitted,
    AlreadySubmitting,
    DependencyError,
    NotFoundError,
    PreconditionFailed,
    StockNotReturned,
    ValidationError,
    coerce_int,
    optional_str,
)
from ..time_utils import local_today, utcnow
from .concurrency import run_with_retry
from .deposit_service import ClosingTotals, compute_closing_totals, compute_deposit
from .photo_storage import resolve_photo
from .sales_service import aggregate_day
from .shift_service import (
    complete_shift,
    ensure_active_shift,
    get_active_shift,
    get_shift,
    latest_shift,
    lock_shift,
)
from .stock_service import outstanding_lines

logger = logging.getLogger(__name__)

DEFAULT_EXPENSE_TYPE = "other"


@dataclass
class ExpenseLine:
    line_key: str
    expense_type: str
    amount: int
    description: str | None = None
    receipt_photo_ref: str | None = None


@dataclass
class SubmissionResult:
    shift: Shift
    report: DailyReport
    totals: ClosingTotals
    expenses: list[OperationalExpense]
    degraded_photos: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "shift": self.shift.to_dict(),
            "report": self.report.to_dict(),
            "totals": self.totals.to_dict(),
            "expenses": [e.to_dict() for e in self.expenses],
            "degraded_photos": self.degraded_photos,
        }


# =============================================================================
# IN-FLIGHT CLAIM
# =============================================================================

def _claim_submission(rider_id: int):
    """Insert the rider's claim row. Returns the claim timestamp used to release it."""
    now = utcnow()
    db.session.add(ReportSubmissionClaim(rider_id=rider_id, claimed_at=now))
    try:
        db.session.commit()
        return now
    except IntegrityError:
        db.session.rollback()

    # Take over a claim left behind by a crashed request
    ttl = int(current_app.config.get("SUBMISSION_CLAIM_TTL_SECONDS", 120))
    taken = db.session.query(ReportSubmissionClaim).filter(
        ReportSubmissionClaim.rider_id == rider_id,
        ReportSubmissionClaim.claimed_at < now - timedelta(seconds=ttl),
    ).update({ReportSubmissionClaim.claimed_at: now}, synchronize_session=False)
    db.session.commit()
    if taken:
        logger.warning("Took over stale submission claim for rider %s", rider_id)
        return now
    raise AlreadySubmitting(rider_id=rider_id)


def _release_submission(rider_id: int, claimed_at) -> None:
    db.session.rollback()
    db.session.query(ReportSubmissionClaim).filter(
        ReportSubmissionClaim.rider_id == rider_id,
        ReportSubmissionClaim.claimed_at == claimed_at,
    ).delete(synchronize_session=False)
    db.session.commit()


# =============================================================================
# INPUT
# =============================================================================

def _line_key(index: int, expense_type: str, amount: int, description: str | None) -> str:
    raw = f"{index}|{expense_type}|{amount}|{description or ''}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def _parse_expense_lines(raw_lines: list | None) -> list[tuple[ExpenseLine, str | None]]:
    """
    Validate expense lines; lines without an amount are dropped.

    Returns (line, inline_photo) pairs. The photo is uploaded later so that
    a bad line rejects the request before anything is stored.
    """
    parsed = []
    for index, raw in enumerate(raw_lines or []):
        if not isinstance(raw, dict):
            raise ValidationError("each expense must be an object", field="expenses")
        if raw.get("amount") in (None, ""):
            continue
        amount = coerce_int(raw["amount"], "amount")
        if amount < 0:
            raise ValidationError("expense amount must not be negative", field="amount")
        if amount == 0:
            continue

        expense_type = str(raw.get("expense_type") or DEFAULT_EXPENSE_TYPE).strip()[:64]
        description = optional_str(raw, "description")
        client_ref = optional_str(raw, "client_ref", max_length=64)

        parsed.append((
            ExpenseLine(
                line_key=client_ref or _line_key(index, expense_type, amount, description),
                expense_type=expense_type,
                amount=amount,
                description=description,
                receipt_photo_ref=optional_str(raw, "receipt_photo_ref", max_length=512),
            ),
            raw.get("receipt_photo"),
        ))
    return parsed


def _upload_best_effort(ref, payload, *, prefix: str, field: str, degraded: list) -> str | None:
    try:
        return resolve_photo(ref, payload, prefix=prefix, field=field)
    except DependencyError as e:
        logger.warning("Photo upload failed for %s, continuing without it: %s", field, e.details.get("reason"))
        degraded.append(field)
        return None


# =============================================================================
# SHIFT RESOLUTION
# =============================================================================

def _resolve_shift(rider_id: int, shift_id: int | None, *, branch_id: int | None, create: bool) -> Shift | None:
    """
    Pick the shift a submission closes.

    An explicit shift_id must belong to the rider. Otherwise today's active
    shift, then today's latest submitted shift (so a repeat submit reports
    AlreadySubmitted), then a lazily created one when create is set.
    """
    if shift_id is not None:
        shift = lock_shift(shift_id) if create else get_shift(shift_id)
        if shift.rider_id != rider_id:
            raise NotFoundError("Shift not found", shift_id=shift_id)
        return shift

    today = local_today()
    shift = get_active_shift(rider_id, today)
    if shift:
        return lock_shift(shift.id) if create else shift

    latest = latest_shift(rider_id, today)
    if latest and latest.report_submitted:
        return latest

    if not create:
        return None
    shift, _created = ensure_active_shift(rider_id, branch_id)
    return shift


# =============================================================================
# SUBMIT
# =============================================================================

def _ensure_stock_returned(rider_id: int) -> None:
    outstanding = outstanding_lines(rider_id)
    if outstanding:
        raise StockNotReturned(
            f"{len(outstanding)} product line(s) must be returned or sold first",
            outstanding_lines=len(outstanding),
            product_ids=[b.product_id for b in outstanding],
        )


def submit_shift_report(
    rider_id: int,
    *,
    shift_id: int | None = None,
    branch_id: int | None = None,
    expenses: list | None = None,
    deposit_proof_ref: str | None = None,
    deposit_proof_photo: str | None = None,
    notes: str | None = None,
    on_completed: Callable[[SubmissionResult], None] | None = None,
) -> SubmissionResult:
    """
    Close the rider's shift and write its daily report.

    Raises AlreadySubmitting, StockNotReturned or AlreadySubmitted without
    writing anything. on_completed runs after the commit.
    """
    lines = _parse_expense_lines(expenses)

    claimed_at = _claim_submission(rider_id)
    try:
        _ensure_stock_returned(rider_id)

        current = _resolve_shift(rider_id, shift_id, branch_id=branch_id, create=False)
        if current is not None and current.report_submitted:
            raise AlreadySubmitted(shift_id=current.id)

        degraded: list[str] = []
        for line, inline_photo in lines:
            line.receipt_photo_ref = _upload_best_effort(
                line.receipt_photo_ref,
                inline_photo,
                prefix=f"receipt-{rider_id}",
                field="receipt_photo",
                degraded=degraded,
            )
        proof_ref = _upload_best_effort(
            deposit_proof_ref,
            deposit_proof_photo,
            prefix=f"deposit-{rider_id}",
            field="deposit_proof",
            degraded=degraded,
        )

        def _op() -> SubmissionResult:
            now = utcnow()
            shift = _resolve_shift(rider_id, shift_id, branch_id=branch_id, create=True)
            if shift.report_submitted:
                raise AlreadySubmitted(shift_id=shift.id)
            # Stock may have been received while photos were uploading
            _ensure_stock_returned(rider_id)

            sales = aggregate_day(rider_id, shift.shift_date)

            existing_keys = {
                key for (key,) in db.session.query(OperationalExpense.line_key).filter_by(shift_id=shift.id)
            }
            for line, _photo in lines:
                if line.line_key in existing_keys:
                    continue
                db.session.add(OperationalExpense(
                    rider_id=rider_id,
                    shift_id=shift.id,
                    line_key=line.line_key,
                    expense_type=line.expense_type,
                    amount=line.amount,
                    description=line.description,
                    receipt_photo_ref=line.receipt_photo_ref,
                    expense_date=shift.shift_date,
                ))
                existing_keys.add(line.line_key)
            db.session.flush()

            shift_expenses = db.session.query(OperationalExpense).filter_by(
                shift_id=shift.id
            ).order_by(OperationalExpense.id).all()
            totals = compute_closing_totals(sales, shift_expenses)

            report = db.session.query(DailyReport).filter_by(rider_id=rider_id, shift_id=shift.id).first()
            if report is None:
                report = DailyReport(
                    rider_id=rider_id,
                    shift_id=shift.id,
                    branch_id=shift.branch_id if shift.branch_id is not None else branch_id,
                    report_date=shift.shift_date,
                    total_sales=totals.total_sales,
                    cash_sales=totals.cash_sales,
                    qris_sales=totals.qris_sales,
                    transfer_sales=totals.transfer_sales,
                    total_expenses=totals.total_expenses,
                    cash_collected=totals.deposit,
                    total_transactions=totals.total_transactions,
                    deposit_proof_ref=proof_ref,
                    notes=notes,
                )
                db.session.add(report)

            complete_shift(
                shift,
                total_sales=totals.total_sales,
                cash_collected=totals.deposit,
                total_transactions=totals.total_transactions,
                notes=notes,
                now=now,
            )
            db.session.commit()
            return SubmissionResult(
                shift=shift,
                report=report,
                totals=totals,
                expenses=shift_expenses,
                degraded_photos=degraded,
            )

        result = run_with_retry(_op)
    finally:
        _release_submission(rider_id, claimed_at)

    logger.info(
        "Shift %s completed for rider %s: sales=%s deposit=%s",
        result.shift.id, rider_id, result.totals.total_sales, result.totals.deposit,
    )
    if on_completed is not None:
        on_completed(result)
    return result


# =============================================================================
# BRANCH APPROVAL AND READS
# =============================================================================

def get_report_for_shift(shift_id: int) -> DailyReport | None:
    return db.session.query(DailyReport).filter_by(shift_id=shift_id).first()


def approve_report(shift_id: int, *, user_id: int | None) -> tuple[DailyReport, Shift]:
    """Branch confirms the deposit was received. Sets verification metadata once; totals untouched."""
    def _op():
        shift = lock_shift(shift_id)
        if not shift.report_submitted:
            raise PreconditionFailed("Shift report has not been submitted", shift_id=shift_id)
        report = get_report_for_shift(shift_id)
        if report is None:
            raise NotFoundError("Daily report not found", shift_id=shift_id)
        if report.verified_at is not None:
            raise PreconditionFailed("Daily report is already verified", shift_id=shift_id)

        report.verified_by_user_id = user_id
        report.verified_at = utcnow()
        shift.report_verified = True
        db.session.commit()
        return report, shift

    report, shift = run_with_retry(_op)
    logger.info("Daily report for shift %s verified by %s", shift_id, user_id)
    return report, shift


def running_summary(rider_id: int, day: date | None = None) -> dict:
    """Live figures for a rider's day; the deposit excludes expenses not yet submitted."""
    day = day or local_today()
    sales = aggregate_day(rider_id, day)
    outstanding = outstanding_lines(rider_id)
    shift = get_active_shift(rider_id, day) or latest_shift(rider_id, day)
    return {
        "rider_id": rider_id,
        "date": day.isoformat(),
        "sales": sales.to_dict(),
        "expected_deposit": compute_deposit(sales.cash, []),
        "outstanding_lines": len(outstanding),
        "outstanding": [b.to_dict() for b in outstanding],
        "shift": shift.to_dict() if shift else None,
    }
