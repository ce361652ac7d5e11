# Overview: Service-layer operations for the rider stock ledger; encapsulates business logic and database work.

"""
Rider Stock Ledger Invariants (authoritative)

Movement log:
- StockMovement rows are append-only. A row's status/actual_time change at
  most once (sent -> received, or sent -> rejected); nothing else is edited.
- Every balance change writes a movement in the same DB transaction,
  sales included (kind 'sold'), so balances can be re-derived from the log.

Balances:
- InventoryBalance.stock_quantity ==
      received + adjustment_in - sold - returned - adjustment_out
  for that (rider, product), and is never negative.
- Balance read-modify-write runs under lock_for_update + version_id and is
  retried a bounded number of times on conflict.

Receipts:
- Confirming a 'sent' movement credits the rider and opens today's shift if
  none is active. Confirming an already received movement is a no-op.

Returns:
- A return always needs photographic proof (ProofRequired otherwise) and
  returns the full remaining balance of that product.
- Bulk returns are applied item by item. A failing item does not undo the
  items already applied; each gets its own result.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import InventoryBalance, Shift, StockMovement
from ..models.stock import (
    KIND_ADJUSTMENT_IN,
    KIND_ADJUSTMENT_OUT,
    KIND_RETURNED,
    KIND_SENT,
    KIND_SOLD,
    STATUS_RECEIVED,
    STATUS_REJECTED,
    STATUS_RETURNED,
    STATUS_SENT,
    STATUS_SOLD,
)
from ..validation import (
    EngineError,
    InsufficientStock,
    InvalidMovementState,
    NotFoundError,
    PreconditionFailed,
    ProofRequired,
    StaleTransfer,
    ValidationError,
)
from ..time_utils import local_date_of, local_today, utcnow
from .concurrency import lock_for_update, run_with_retry
from .photo_storage import resolve_photo
from .shift_service import ensure_active_shift, get_active_shift

logger = logging.getLogger(__name__)


@dataclass
class ReceiveResult:
    movement: StockMovement
    balance: InventoryBalance | None
    shift: Shift | None
    shift_created: bool = False
    already_received: bool = False

    def to_dict(self) -> dict:
        return {
            "movement": self.movement.to_dict(),
            "balance": self.balance.to_dict() if self.balance else None,
            "shift": self.shift.to_dict() if self.shift else None,
            "shift_created": self.shift_created,
            "already_received": self.already_received,
        }


@dataclass
class AdjustResult:
    variance: int
    balance: InventoryBalance | None
    movement: StockMovement | None = None

    def to_dict(self) -> dict:
        return {
            "variance": self.variance,
            "balance": self.balance.to_dict() if self.balance else None,
            "movement": self.movement.to_dict() if self.movement else None,
        }


@dataclass
class ItemResult:
    """Outcome of one item of a best-effort bulk operation."""
    key: dict
    ok: bool
    data: dict = field(default_factory=dict)
    error: dict | None = None

    def to_dict(self) -> dict:
        out = dict(self.key)
        out["ok"] = self.ok
        if self.ok:
            out.update(self.data)
        else:
            out["error"] = self.error
        return out


def _new_reference(prefix: str) -> str:
    return f"{prefix}-{utcnow():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def _append_movement(**kwargs) -> StockMovement:
    movement = StockMovement(**kwargs)
    db.session.add(movement)
    db.session.flush()
    return movement


def _lock_movement(movement_id: int) -> StockMovement:
    movement = lock_for_update(db.session.query(StockMovement).filter_by(id=movement_id)).first()
    if not movement:
        raise NotFoundError("Stock movement not found", movement_id=movement_id)
    return movement


def _lock_balance(rider_id: int, product_id: int) -> InventoryBalance | None:
    return lock_for_update(
        db.session.query(InventoryBalance).filter_by(rider_id=rider_id, product_id=product_id)
    ).first()


def _get_or_create_balance(rider_id: int, product_id: int, branch_id: int) -> InventoryBalance:
    balance = _lock_balance(rider_id, product_id)
    if balance is None:
        balance = InventoryBalance(
            rider_id=rider_id,
            product_id=product_id,
            branch_id=branch_id,
            stock_quantity=0,
        )
        db.session.add(balance)
        # A concurrent creator makes this flush raise IntegrityError -> retry
        db.session.flush()
    return balance


# =============================================================================
# BRANCH -> RIDER
# =============================================================================

def send_stock(
    *,
    branch_id: int,
    rider_id: int,
    items: list[dict],
    expected_time: datetime | None = None,
    notes: str | None = None,
    reference_id: str | None = None,
    created_by_user_id: int | None = None,
) -> list[StockMovement]:
    """Create one 'sent' movement per line; they wait for the rider's confirmation."""
    if not items:
        raise ValidationError("items must not be empty", field="items")

    reference_id = reference_id or _new_reference("TRF")
    movements = []
    for item in items:
        quantity = int(item["quantity"])
        if quantity <= 0:
            raise ValidationError("quantity must be greater than zero", field="quantity")
        movements.append(_append_movement(
            reference_id=reference_id,
            product_id=int(item["product_id"]),
            rider_id=rider_id,
            branch_id=branch_id,
            quantity=quantity,
            kind=KIND_SENT,
            status=STATUS_SENT,
            expected_time=expected_time,
            notes=notes,
            created_by_user_id=created_by_user_id,
        ))

    db.session.commit()
    return movements


def confirm_receive(
    movement_id: int,
    actual_time: datetime | None = None,
    *,
    verification_photo_ref: str | None = None,
) -> ReceiveResult:
    """
    Rider confirms a delivery: sent -> received, credit the balance, ensure a shift.

    All three effects commit together. Re-confirming a received movement
    returns the current state without crediting again.
    """
    def _op() -> ReceiveResult:
        movement = _lock_movement(movement_id)

        if movement.status == STATUS_RECEIVED:
            balance = db.session.query(InventoryBalance).filter_by(
                rider_id=movement.rider_id, product_id=movement.product_id
            ).first()
            return ReceiveResult(
                movement=movement,
                balance=balance,
                shift=get_active_shift(movement.rider_id),
                already_received=True,
            )

        if movement.kind != KIND_SENT or movement.status != STATUS_SENT:
            raise InvalidMovementState(
                f"Cannot confirm a movement with status '{movement.status}'",
                movement_id=movement_id,
                status=movement.status,
            )

        now = utcnow()
        if current_app.config.get("RECEIVE_SAME_DAY_ONLY") and movement.created_at is not None:
            if local_date_of(movement.created_at) != local_today(now):
                raise StaleTransfer(movement_id=movement_id)

        movement.status = STATUS_RECEIVED
        movement.actual_time = actual_time or now
        if verification_photo_ref:
            movement.verification_photo_ref = verification_photo_ref

        balance = _get_or_create_balance(movement.rider_id, movement.product_id, movement.branch_id)
        balance.stock_quantity += movement.quantity

        shift, created = ensure_active_shift(movement.rider_id, movement.branch_id, now=now)

        db.session.commit()
        return ReceiveResult(movement=movement, balance=balance, shift=shift, shift_created=created)

    return run_with_retry(_op)


def confirm_receive_many(movement_ids: list[int], actual_time: datetime | None = None) -> list[ItemResult]:
    """Confirm several deliveries independently; one failure does not block the others."""
    results = []
    for movement_id in movement_ids:
        try:
            result = confirm_receive(movement_id, actual_time)
            results.append(ItemResult(key={"movement_id": movement_id}, ok=True, data=result.to_dict()))
        except EngineError as e:
            results.append(ItemResult(key={"movement_id": movement_id}, ok=False, error=e.to_dict()))
    return results


def reject_movement(movement_id: int, *, reason: str, user_id: int | None = None) -> StockMovement:
    """Rider refuses a delivery. No balance change; repeated rejection is a no-op."""
    if not reason or not reason.strip():
        raise ValidationError("reason is required", field="reason")

    def _op() -> StockMovement:
        movement = _lock_movement(movement_id)
        if movement.status == STATUS_REJECTED:
            return movement
        if movement.kind != KIND_SENT or movement.status != STATUS_SENT:
            raise InvalidMovementState(
                f"Cannot reject a movement with status '{movement.status}'",
                movement_id=movement_id,
                status=movement.status,
            )
        movement.status = STATUS_REJECTED
        movement.actual_time = utcnow()
        movement.notes = f"REJECTED: {reason.strip()}"
        db.session.commit()
        logger.info("Movement %s rejected by %s", movement_id, user_id)
        return movement

    return run_with_retry(_op)


# =============================================================================
# SALES
# =============================================================================

def record_sales(rider_id: int, items: list[dict]) -> list[InventoryBalance]:
    """
    Deduct sold quantities from the rider's balances, all lines or none.

    Raises InsufficientStock naming the first product that cannot be covered.
    """
    wanted: dict[int, int] = {}
    for item in items:
        quantity = int(item["quantity"])
        if quantity <= 0:
            raise ValidationError("quantity must be greater than zero", field="quantity")
        product_id = int(item["product_id"])
        wanted[product_id] = wanted.get(product_id, 0) + quantity

    def _op() -> list[InventoryBalance]:
        now = utcnow()
        balances = []
        for product_id, quantity in wanted.items():
            balance = _lock_balance(rider_id, product_id)
            available = balance.stock_quantity if balance else 0
            if available < quantity:
                raise InsufficientStock(
                    product_id=product_id,
                    available=available,
                    requested=quantity,
                )
            balance.stock_quantity -= quantity
            _append_movement(
                product_id=product_id,
                rider_id=rider_id,
                branch_id=balance.branch_id,
                quantity=quantity,
                kind=KIND_SOLD,
                status=STATUS_SOLD,
                actual_time=now,
            )
            balances.append(balance)
        db.session.commit()
        return balances

    return run_with_retry(_op)


def record_sale(rider_id: int, product_id: int, quantity: int) -> InventoryBalance:
    return record_sales(rider_id, [{"product_id": product_id, "quantity": quantity}])[0]


# =============================================================================
# RETURNS
# =============================================================================

def confirm_return(
    balance_id: int,
    *,
    proof_ref: str | None = None,
    proof_photo: str | None = None,
    notes: str | None = None,
    reference_id: str | None = None,
) -> tuple[StockMovement, InventoryBalance]:
    """
    Return the full remaining balance of one product to the branch.

    Proof is mandatory and is stored before any state changes, so a missing
    proof or an unavailable photo store leaves the balance untouched.
    """
    proof_ref = (proof_ref.strip() or None) if isinstance(proof_ref, str) else None
    proof_photo = (proof_photo.strip() or None) if isinstance(proof_photo, str) else None
    if not proof_ref and not proof_photo:
        raise ProofRequired(balance_id=balance_id)

    photo_ref = resolve_photo(proof_ref, proof_photo, prefix=f"return-{balance_id}", field="proof_photo")

    def _op() -> tuple[StockMovement, InventoryBalance]:
        balance = lock_for_update(db.session.query(InventoryBalance).filter_by(id=balance_id)).first()
        if not balance:
            raise NotFoundError("Inventory balance not found", balance_id=balance_id)
        if balance.stock_quantity <= 0:
            raise PreconditionFailed("Nothing left to return", balance_id=balance_id)

        movement = _append_movement(
            reference_id=reference_id,
            product_id=balance.product_id,
            rider_id=balance.rider_id,
            branch_id=balance.branch_id,
            quantity=balance.stock_quantity,
            kind=KIND_RETURNED,
            status=STATUS_RETURNED,
            actual_time=utcnow(),
            verification_photo_ref=photo_ref,
            notes=notes or "End-of-shift stock return",
        )
        balance.stock_quantity = 0
        db.session.commit()
        return movement, balance

    return run_with_retry(_op)


def confirm_returns(items: list[dict], *, notes: str | None = None) -> list[ItemResult]:
    """
    Return several balances, each on its own.

    Items already returned stay returned when a later item fails; the caller
    gets one result per item and retries only the failed ones.
    """
    reference_id = _new_reference("RET")
    results = []
    for item in items:
        balance_id = item.get("balance_id")
        key = {"balance_id": balance_id}
        try:
            movement, balance = confirm_return(
                int(balance_id),
                proof_ref=item.get("proof_ref"),
                proof_photo=item.get("proof_photo"),
                notes=notes,
                reference_id=reference_id,
            )
            results.append(ItemResult(
                key=key,
                ok=True,
                data={"movement": movement.to_dict(), "balance": balance.to_dict()},
            ))
        except EngineError as e:
            results.append(ItemResult(key=key, ok=False, error=e.to_dict()))
    return results


def verify_return(movement_id: int, *, verified_quantity: int, user_id: int | None) -> StockMovement:
    """Branch records the counted quantity of a returned line, once."""
    def _op() -> StockMovement:
        movement = _lock_movement(movement_id)
        if movement.kind != KIND_RETURNED:
            raise InvalidMovementState("Only returned stock can be verified", movement_id=movement_id)
        if verified_quantity < 0 or verified_quantity > movement.quantity:
            raise ValidationError(
                f"verified_quantity must be between 0 and {movement.quantity}",
                field="verified_quantity",
            )
        if movement.verified_at is not None:
            if movement.verified_quantity == verified_quantity:
                return movement
            raise InvalidMovementState("Return has already been verified", movement_id=movement_id)

        movement.verified_quantity = verified_quantity
        movement.verified_by_user_id = user_id
        movement.verified_at = utcnow()
        db.session.commit()

        if verified_quantity != movement.quantity:
            logger.warning(
                "Return %s verified short: expected %s, counted %s",
                movement_id, movement.quantity, verified_quantity,
            )
        return movement

    return run_with_retry(_op)


# =============================================================================
# ADJUSTMENTS
# =============================================================================

def adjust_inventory(
    rider_id: int,
    product_id: int,
    real_count: int,
    *,
    branch_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> AdjustResult:
    """Set a balance to a physical count, logging the variance as an adjustment movement."""
    if real_count < 0:
        raise ValidationError("real_count must not be negative", field="real_count")

    def _op() -> AdjustResult:
        balance = _lock_balance(rider_id, product_id)
        if balance is None:
            if real_count == 0:
                return AdjustResult(variance=0, balance=None)
            if branch_id is None:
                raise ValidationError("branch_id is required for a product the rider never held", field="branch_id")
            balance = _get_or_create_balance(rider_id, product_id, branch_id)

        variance = real_count - balance.stock_quantity
        if variance == 0:
            return AdjustResult(variance=0, balance=balance)

        movement = _append_movement(
            product_id=product_id,
            rider_id=rider_id,
            branch_id=balance.branch_id,
            quantity=abs(variance),
            kind=KIND_ADJUSTMENT_IN if variance > 0 else KIND_ADJUSTMENT_OUT,
            status=STATUS_RECEIVED if variance > 0 else STATUS_RETURNED,
            actual_time=utcnow(),
            notes=notes or f"Stock count: {balance.stock_quantity} -> {real_count}",
            created_by_user_id=user_id,
        )
        balance.stock_quantity = real_count
        db.session.commit()
        return AdjustResult(variance=variance, balance=balance, movement=movement)

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_movement(movement_id: int) -> StockMovement:
    movement = db.session.get(StockMovement, movement_id)
    if not movement:
        raise NotFoundError("Stock movement not found", movement_id=movement_id)
    return movement


def get_balance(balance_id: int) -> InventoryBalance:
    balance = db.session.get(InventoryBalance, balance_id)
    if not balance:
        raise NotFoundError("Inventory balance not found", balance_id=balance_id)
    return balance


def list_movements(
    *,
    rider_id: int | None = None,
    branch_id: int | None = None,
    status: str | None = None,
    kind: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    q = db.session.query(StockMovement)
    if rider_id is not None:
        q = q.filter(StockMovement.rider_id == rider_id)
    if branch_id is not None:
        q = q.filter(StockMovement.branch_id == branch_id)
    if status:
        q = q.filter(StockMovement.status == status)
    if kind:
        q = q.filter(StockMovement.kind == kind)
    total = q.count()
    movements = q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).offset(offset).limit(limit).all()
    return movements, total


def get_balances(rider_id: int, *, include_empty: bool = False) -> list[InventoryBalance]:
    q = db.session.query(InventoryBalance).filter(InventoryBalance.rider_id == rider_id)
    if not include_empty:
        q = q.filter(InventoryBalance.stock_quantity > 0)
    return q.order_by(InventoryBalance.product_id).all()


def outstanding_lines(rider_id: int) -> list[InventoryBalance]:
    """Products the rider still holds (must be sold or returned before closing)."""
    return get_balances(rider_id, include_empty=False)


def remaining_stock_count(rider_id: int) -> int:
    return db.session.query(func.count(InventoryBalance.id)).filter(
        InventoryBalance.rider_id == rider_id,
        InventoryBalance.stock_quantity > 0,
    ).scalar() or 0


def ledger_quantities(rider_id: int) -> dict[int, int]:
    """Per-product quantity re-derived from the movement log alone."""
    signed = case(
        ((StockMovement.kind == KIND_SENT) & (StockMovement.status == STATUS_RECEIVED), StockMovement.quantity),
        (StockMovement.kind == KIND_ADJUSTMENT_IN, StockMovement.quantity),
        (StockMovement.kind.in_([KIND_SOLD, KIND_RETURNED, KIND_ADJUSTMENT_OUT]), -StockMovement.quantity),
        else_=0,
    )
    rows = db.session.query(
        StockMovement.product_id,
        func.coalesce(func.sum(signed), 0),
    ).filter(
        StockMovement.rider_id == rider_id,
    ).group_by(StockMovement.product_id).all()
    return {int(product_id): int(qty) for product_id, qty in rows}


def audit_balances(rider_id: int) -> list[dict]:
    """Compare stored balances with the movement log; drift != 0 means the invariant broke."""
    ledger = ledger_quantities(rider_id)
    balances = {b.product_id: b for b in get_balances(rider_id, include_empty=True)}
    report = []
    for product_id in sorted(set(ledger) | set(balances)):
        balance = balances.get(product_id)
        stored = balance.stock_quantity if balance else 0
        derived = ledger.get(product_id, 0)
        report.append({
            "product_id": product_id,
            "balance_id": balance.id if balance else None,
            "stock_quantity": stored,
            "ledger_quantity": derived,
            "drift": stored - derived,
        })
    return report
