# Overview: Service-layer operations for rider shifts; owns the none -> active -> completed lifecycle.

"""
Shift Lifecycle

STATES: (none) -> active -> completed (terminal)

- none -> active: first stock receipt of the local day, or lazily by report
  submission when the rider never received stock.
- active -> active: further receipts reuse the open shift.
- active -> completed: only through shift report submission.
- completed never reopens; selling again needs a new shift number.

The "one active shift per rider per day" rule lives in a partial unique
index. Callers run ensure_active_shift inside run_with_retry so a lost
creation race is rolled back and re-read instead of creating a second shift.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Shift
from ..models.shifts import SHIFT_ACTIVE, SHIFT_COMPLETED
from ..validation import NotFoundError, PreconditionFailed
from ..time_utils import local_today, utcnow
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def _find_active_shift(rider_id: int, shift_date: date) -> Shift | None:
    return db.session.query(Shift).filter_by(
        rider_id=rider_id,
        shift_date=shift_date,
        status=SHIFT_ACTIVE,
    ).first()


def _next_shift_number(rider_id: int, shift_date: date) -> int:
    current_max = db.session.query(func.max(Shift.shift_number)).filter(
        Shift.rider_id == rider_id,
        Shift.shift_date == shift_date,
    ).scalar()
    return int(current_max or 0) + 1


def ensure_active_shift(
    rider_id: int,
    branch_id: int | None,
    *,
    now: datetime | None = None,
) -> tuple[Shift, bool]:
    """
    Return the rider's active shift for today, creating it if there is none.

    Does not commit. Returns (shift, created). If another request creates the
    shift first, flush raises IntegrityError and the enclosing retry re-reads.
    """
    now = now or utcnow()
    shift_date = local_today(now)

    existing = _find_active_shift(rider_id, shift_date)
    if existing:
        return existing, False

    shift = Shift(
        rider_id=rider_id,
        branch_id=branch_id,
        shift_date=shift_date,
        shift_number=_next_shift_number(rider_id, shift_date),
        status=SHIFT_ACTIVE,
        shift_start_time=now,
        report_submitted=False,
    )
    db.session.add(shift)
    db.session.flush()

    logger.info(
        "Shift %s started for rider %s on %s (shift #%s)",
        shift.id, rider_id, shift_date, shift.shift_number,
    )
    return shift, True


def start_shift(rider_id: int, branch_id: int | None = None) -> Shift:
    """Idempotent explicit start: returns today's active shift, creating it if needed."""
    def _op():
        shift, _created = ensure_active_shift(rider_id, branch_id)
        db.session.commit()
        return shift
    return run_with_retry(_op)


def get_active_shift(rider_id: int, shift_date: date | None = None) -> Shift | None:
    return _find_active_shift(rider_id, shift_date or local_today())


def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise NotFoundError("Shift not found", shift_id=shift_id)
    return shift


def lock_shift(shift_id: int) -> Shift:
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if not shift:
        raise NotFoundError("Shift not found", shift_id=shift_id)
    return shift


def latest_shift(rider_id: int, shift_date: date) -> Shift | None:
    return db.session.query(Shift).filter_by(
        rider_id=rider_id,
        shift_date=shift_date,
    ).order_by(Shift.shift_number.desc()).first()


def complete_shift(
    shift: Shift,
    *,
    total_sales: int,
    cash_collected: int,
    total_transactions: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> Shift:
    """
    Move an active shift to completed and store its closing totals.

    Does not commit; the report submission commits it together with the
    expenses and the daily report.
    """
    if shift.status != SHIFT_ACTIVE or shift.report_submitted:
        raise PreconditionFailed("Shift is already completed", shift_id=shift.id)

    shift.status = SHIFT_COMPLETED
    shift.shift_end_time = now or utcnow()
    shift.report_submitted = True
    shift.total_sales = total_sales
    shift.cash_collected = cash_collected
    shift.total_transactions = total_transactions
    if notes:
        shift.notes = notes
    return shift


def list_shifts(
    *,
    rider_id: int | None = None,
    branch_id: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Shift], int]:
    q = db.session.query(Shift)
    if rider_id is not None:
        q = q.filter(Shift.rider_id == rider_id)
    if branch_id is not None:
        q = q.filter(Shift.branch_id == branch_id)
    if from_date is not None:
        q = q.filter(Shift.shift_date >= from_date)
    if to_date is not None:
        q = q.filter(Shift.shift_date <= to_date)
    if status:
        q = q.filter(Shift.status == status)

    total = q.count()
    shifts = q.order_by(Shift.shift_date.desc(), Shift.shift_number.desc()).offset(offset).limit(limit).all()
    return shifts, total
