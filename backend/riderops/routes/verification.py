# backend/riderops/routes/verification.py
"""
Branch verification checklist API routes.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import ROLE_BRANCH, can_act_for_rider, forbidden_for_rider, require_actor
from ..models.verification import VERIFICATION_FIELDS
from ..services import verification_service
from ..validation import EngineError, ValidationError, parse_date, require_int, require_str
from . import error_response, json_body, unexpected_error

verification_bp = Blueprint("verification", __name__, url_prefix="/api/verification")


def _require_date(data):
    value = data.get("date")
    if not value:
        raise ValidationError("date is required", field="date")
    return parse_date(value, "date")


@verification_bp.post("/verify")
@require_actor(ROLE_BRANCH)
def verify():
    """Body: {"rider_id": int, "date": "YYYY-MM-DD", "field": str, "value": bool}."""
    try:
        data = json_body()
        row = verification_service.set_verified_flag(
            require_int(data, "rider_id"),
            _require_date(data),
            require_str(data, "field"),
            data.get("value"),
            user_id=g.actor_id,
        )
        return jsonify(row.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Verification flag update")


@verification_bp.post("/notes")
@require_actor(ROLE_BRANCH)
def notes():
    """Body: {"rider_id": int, "date": "YYYY-MM-DD", "text": str}."""
    try:
        data = json_body()
        row = verification_service.set_notes(
            require_int(data, "rider_id"),
            _require_date(data),
            data.get("text"),
            user_id=g.actor_id,
        )
        return jsonify(row.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Verification notes update")


@verification_bp.get("")
@require_actor()
def get_verification():
    try:
        rider_id = require_int(request.args, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)
        deposit_date = _require_date(request.args)

        row = verification_service.get_verification(rider_id, deposit_date)
        if row is None:
            # Nothing verified yet
            empty = {name: False for name in VERIFICATION_FIELDS}
            empty.update({"rider_id": rider_id, "deposit_date": deposit_date.isoformat(), "notes": ""})
            return jsonify(empty), 200
        return jsonify(row.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Verification lookup")
