# backend/riderops/routes/sales.py
"""
Sales aggregation and transactions store API routes.
"""
from datetime import datetime

from flask import Blueprint, request, jsonify, g

from ..decorators import ROLE_BRANCH, ROLE_RIDER, can_act_for_rider, forbidden_for_rider, require_actor
from ..services import sales_service
from ..models.sales import TX_COMPLETED
from ..validation import (
    EngineError,
    ValidationError,
    optional_int,
    optional_str,
    parse_date,
    parse_datetime,
    require_int,
    require_non_negative_int,
    require_str,
)
from ..time_utils import local_day_bounds, local_today
from . import error_response, json_body, unexpected_error

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _window_bound(key: str, *, end: bool) -> datetime | None:
    """A bare date means the whole local day; a datetime is taken as-is."""
    value = request.args.get(key)
    if not value:
        return None
    if len(value.strip()) == 10:
        start, stop = local_day_bounds(parse_date(value, key))
        return stop if end else start
    return parse_datetime(value, key)


@sales_bp.get("/aggregate")
@require_actor()
def aggregate():
    """
    Sales buckets for a rider over [from, to).

    Query: rider_id, from, to (dates or ISO datetimes; default today).
    """
    try:
        rider_id = require_int(request.args, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        today_start, today_end = local_day_bounds(local_today())
        start = _window_bound("from", end=False) or today_start
        stop = _window_bound("to", end=True) or today_end
        if stop < start:
            raise ValidationError("'to' must not be before 'from'", field="to")

        buckets = sales_service.aggregate(rider_id, start, stop)
        return jsonify({
            "rider_id": rider_id,
            "from": start.isoformat() + "Z",
            "to": stop.isoformat() + "Z",
            **buckets.to_dict(),
        }), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Sales aggregation")


@sales_bp.post("/transactions")
@require_actor(ROLE_RIDER)
def create_transaction():
    """
    Record a sale transaction.

    Request body:
    {
        "rider_id": int,
        "final_amount": int,
        "payment_method": str,        // cash | qris | transfer | bank_transfer | ...
        "status": str (optional, default "completed"),
        "transaction_date": str (optional, ISO-8601),
        "transaction_number": str (optional)
    }
    """
    try:
        data = json_body()
        rider_id = require_int(data, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        tx = sales_service.record_transaction(
            rider_id=rider_id,
            branch_id=optional_int(data, "branch_id") or g.branch_id,
            final_amount=require_non_negative_int(data, "final_amount"),
            payment_method=require_str(data, "payment_method", max_length=32),
            status=optional_str(data, "status") or TX_COMPLETED,
            transaction_date=parse_datetime(data.get("transaction_date"), "transaction_date"),
            transaction_number=optional_str(data, "transaction_number", max_length=64),
        )
        return jsonify(tx.to_dict()), 201

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Transaction recording")


@sales_bp.post("/transactions/<int:transaction_id>/void")
@require_actor(ROLE_BRANCH)
def void_transaction(transaction_id: int):
    """Void a transaction. Body: {"reason": str}."""
    try:
        data = json_body()
        tx = sales_service.void_transaction(
            transaction_id,
            reason=require_str(data, "reason", max_length=255),
            user_id=g.actor_id,
        )
        return jsonify(tx.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Transaction void")
