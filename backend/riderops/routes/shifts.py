# backend/riderops/routes/shifts.py
"""
Shift lifecycle and end-of-shift report API routes.
"""
from flask import Blueprint, current_app, request, jsonify, g

from ..decorators import (
    ROLE_BRANCH,
    ROLE_RIDER,
    can_act_for_rider,
    forbidden_for_rider,
    require_actor,
)
from ..services import report_service, shift_service
from ..validation import (
    EngineError,
    ValidationError,
    coerce_int,
    optional_int,
    optional_str,
    parse_date,
    require_int,
)
from . import error_response, json_body, unexpected_error

shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _notify_completed(result):
    # Hand-off point for the notification channel consumed by the UI layer
    current_app.logger.info(
        "shift.completed rider=%s shift=%s deposit=%s",
        result.shift.rider_id, result.shift.id, result.totals.deposit,
    )


def _optional_date_arg(key: str):
    value = request.args.get(key)
    return parse_date(value, key) if value else None


@shifts_bp.post("/start")
@require_actor(ROLE_RIDER)
def start():
    """Open today's shift explicitly (idempotent). Body: {"rider_id": int}."""
    try:
        data = json_body()
        rider_id = require_int(data, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        shift = shift_service.start_shift(rider_id, optional_int(data, "branch_id") or g.branch_id)
        return jsonify(shift.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Shift start")


@shifts_bp.post("/submit")
@require_actor(ROLE_RIDER)
def submit():
    """
    Submit the end-of-shift report and close the shift.

    Request body:
    {
        "rider_id": int,
        "shift_id": int (optional),
        "expenses": [
            {"expense_type": str, "amount": int, "description": str,
             "client_ref": str, "receipt_photo_ref": str, "receipt_photo": base64}
        ],
        "deposit_proof_ref": str (optional),
        "deposit_proof_photo": base64 (optional),
        "notes": str (optional)
    }

    Returns:
        201: report + closed shift + totals
        409: ALREADY_SUBMITTING / STOCK_NOT_RETURNED / ALREADY_SUBMITTED
    """
    try:
        data = json_body()
        rider_id = require_int(data, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        expenses = data.get("expenses") or []
        if not isinstance(expenses, list):
            raise ValidationError("expenses must be a list", field="expenses")

        result = report_service.submit_shift_report(
            rider_id,
            shift_id=optional_int(data, "shift_id"),
            branch_id=g.branch_id,
            expenses=expenses,
            deposit_proof_ref=optional_str(data, "deposit_proof_ref", max_length=512),
            deposit_proof_photo=data.get("deposit_proof_photo") or None,
            notes=optional_str(data, "notes"),
            on_completed=_notify_completed,
        )
        return jsonify(result.to_dict()), 201

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Shift report submission")


@shifts_bp.get("/summary")
@require_actor()
def summary():
    """Running totals for a rider's day (sales buckets, outstanding stock, expected deposit)."""
    try:
        rider_id = require_int(request.args, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        return jsonify(report_service.running_summary(rider_id, _optional_date_arg("date"))), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Shift summary")


@shifts_bp.get("")
@require_actor()
def list_shifts():
    try:
        rider_id = optional_int(request.args, "rider_id")
        if g.actor_role == ROLE_RIDER:
            rider_id = g.actor_id
        limit = min(max(coerce_int(request.args.get("limit", 100), "limit"), 1), 500)
        offset = max(coerce_int(request.args.get("offset", 0), "offset"), 0)

        shifts, total = shift_service.list_shifts(
            rider_id=rider_id,
            branch_id=optional_int(request.args, "branch_id"),
            from_date=_optional_date_arg("from"),
            to_date=_optional_date_arg("to"),
            status=request.args.get("status") or None,
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "shifts": [s.to_dict() for s in shifts],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Shift listing")


@shifts_bp.get("/<int:shift_id>")
@require_actor()
def get_shift(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        if not can_act_for_rider(shift.rider_id):
            return forbidden_for_rider(shift.rider_id)

        report = report_service.get_report_for_shift(shift_id)
        return jsonify({
            "shift": shift.to_dict(),
            "report": report.to_dict() if report else None,
            "expenses": [e.to_dict() for e in shift.expenses],
        }), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Shift lookup")


@shifts_bp.post("/<int:shift_id>/approve")
@require_actor(ROLE_BRANCH)
def approve(shift_id: int):
    """Branch confirms receipt of the cash deposit for a closed shift."""
    try:
        report, shift = report_service.approve_report(shift_id, user_id=g.actor_id)
        return jsonify({"report": report.to_dict(), "shift": shift.to_dict()}), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Report approval")
