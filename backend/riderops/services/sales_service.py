# Overview: Service-layer operations for rider sales; read-only aggregation plus the transactions store write side.

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime

from ..extensions import db
from ..models import SalesTransaction
from ..models.sales import TX_COMPLETED, TX_STATUSES
from ..validation import NotFoundError, PreconditionFailed, ValidationError
from ..time_utils import local_day_bounds, utcnow
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)

BUCKET_CASH = "cash"
BUCKET_QRIS = "qris"
BUCKET_TRANSFER = "transfer"

_TRANSFER_ALIASES = {"bank_transfer", "transfer", "bank"}


@dataclass(frozen=True)
class SalesBuckets:
    cash: int = 0
    qris: int = 0
    transfer: int = 0
    total: int = 0
    count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_payment_method(payment_method: str | None) -> str:
    """Lowercase the method and fold bank_transfer/transfer/bank into one bucket."""
    method = (payment_method or "").strip().lower()
    if method in _TRANSFER_ALIASES:
        return BUCKET_TRANSFER
    return method


def aggregate(rider_id: int, start: datetime, end: datetime) -> SalesBuckets:
    """
    Sum a rider's completed, non-voided sales over [start, end).

    Pure read. Voided rows are excluded on their current is_voided flag, so a
    void always removes the sale from every figure, past ones included.
    Methods outside the three buckets still count towards total and count.
    """
    rows = db.session.query(
        SalesTransaction.final_amount,
        SalesTransaction.payment_method,
    ).filter(
        SalesTransaction.rider_id == rider_id,
        SalesTransaction.status == TX_COMPLETED,
        SalesTransaction.is_voided.is_(False),
        SalesTransaction.transaction_date >= start,
        SalesTransaction.transaction_date < end,
    ).all()

    buckets = {BUCKET_CASH: 0, BUCKET_QRIS: 0, BUCKET_TRANSFER: 0}
    total = 0
    for amount, method in rows:
        amount = int(amount or 0)
        total += amount
        bucket = normalize_payment_method(method)
        if bucket in buckets:
            buckets[bucket] += amount

    return SalesBuckets(
        cash=buckets[BUCKET_CASH],
        qris=buckets[BUCKET_QRIS],
        transfer=buckets[BUCKET_TRANSFER],
        total=total,
        count=len(rows),
    )


def aggregate_day(rider_id: int, day: date) -> SalesBuckets:
    """Aggregate over the whole local calendar day, not just since shift start."""
    start, end = local_day_bounds(day)
    return aggregate(rider_id, start, end)


# =============================================================================
# TRANSACTIONS STORE (write side, used by the point-of-sale client)
# =============================================================================

def record_transaction(
    *,
    rider_id: int,
    final_amount: int,
    payment_method: str,
    branch_id: int | None = None,
    status: str = TX_COMPLETED,
    transaction_date: datetime | None = None,
    transaction_number: str | None = None,
) -> SalesTransaction:
    if final_amount < 0:
        raise ValidationError("final_amount must not be negative", field="final_amount")
    if status not in TX_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(TX_STATUSES))}", field="status")
    if not payment_method or not payment_method.strip():
        raise ValidationError("payment_method is required", field="payment_method")

    tx = SalesTransaction(
        transaction_number=transaction_number or f"TRX-{uuid.uuid4().hex[:12].upper()}",
        rider_id=rider_id,
        branch_id=branch_id,
        final_amount=final_amount,
        payment_method=payment_method.strip(),
        status=status,
        is_voided=False,
        transaction_date=transaction_date or utcnow(),
    )
    db.session.add(tx)
    db.session.commit()
    return tx


def void_transaction(transaction_id: int, *, reason: str, user_id: int | None) -> SalesTransaction:
    """Void a sale. The row stays for audit; it just stops counting."""
    if not reason or not reason.strip():
        raise ValidationError("reason is required", field="reason")

    tx = lock_for_update(db.session.query(SalesTransaction).filter_by(id=transaction_id)).first()
    if not tx:
        raise NotFoundError("Transaction not found", transaction_id=transaction_id)
    if tx.is_voided:
        raise PreconditionFailed("Transaction is already voided", transaction_id=transaction_id)

    tx.is_voided = True
    tx.voided_at = utcnow()
    tx.voided_by_user_id = user_id
    tx.void_reason = reason.strip()[:255]
    db.session.commit()

    logger.info("Transaction %s voided by %s", tx.transaction_number, user_id)
    return tx
