# backend/riderops/routes/stock.py
"""
Rider stock ledger API routes.

Riders confirm deliveries, record sales, return stock and count stock.
Branch staff send stock and verify returns.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import (
    ROLE_BRANCH,
    ROLE_RIDER,
    can_act_for_rider,
    forbidden_for_rider,
    require_actor,
)
from ..services import stock_service
from ..validation import (
    EngineError,
    ValidationError,
    coerce_int,
    optional_int,
    optional_str,
    parse_datetime,
    require_int,
    require_list,
    require_non_negative_int,
    require_positive_int,
    require_str,
)
from . import error_response, json_body, unexpected_error

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _parse_items(data: dict) -> list[dict]:
    items = []
    for raw in require_list(data, "items"):
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", field="items")
        items.append({
            "product_id": require_int(raw, "product_id"),
            "quantity": require_positive_int(raw, "quantity"),
        })
    return items


def _paging():
    limit = min(max(coerce_int(request.args.get("limit", 100), "limit"), 1), 500)
    offset = max(coerce_int(request.args.get("offset", 0), "offset"), 0)
    return limit, offset


@stock_bp.post("/receive")
@require_actor(ROLE_RIDER)
def receive():
    """
    Confirm delivery of sent stock.

    Request body:
    {
        "movement_id": int,          // or "movement_ids": [int, ...]
        "actual_time": str (optional, ISO-8601),
        "verification_photo_ref": str (optional)
    }

    Returns:
        200: movement + balance + shift (already_received=true on repeats)
        409: INVALID_MOVEMENT_STATE / STALE_TRANSFER / CONFLICT
    """
    try:
        data = json_body()
        actual_time = parse_datetime(data.get("actual_time"), "actual_time")

        if data.get("movement_ids") is not None:
            movement_ids = [coerce_int(m, "movement_ids") for m in require_list(data, "movement_ids")]
            for movement_id in movement_ids:
                movement = stock_service.get_movement(movement_id)
                if not can_act_for_rider(movement.rider_id):
                    return forbidden_for_rider(movement.rider_id)
            results = stock_service.confirm_receive_many(movement_ids, actual_time)
            return jsonify({"results": [r.to_dict() for r in results]}), 200

        movement_id = require_int(data, "movement_id")
        movement = stock_service.get_movement(movement_id)
        if not can_act_for_rider(movement.rider_id):
            return forbidden_for_rider(movement.rider_id)

        result = stock_service.confirm_receive(
            movement_id,
            actual_time,
            verification_photo_ref=optional_str(data, "verification_photo_ref", max_length=512),
        )
        return jsonify(result.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Stock receive")


@stock_bp.post("/sell")
@require_actor(ROLE_RIDER)
def sell():
    """
    Deduct sold items from the rider's stock (all lines or none).

    Request body:
    {
        "rider_id": int,
        "items": [{"product_id": int, "quantity": int}, ...]
    }

    Returns:
        200: updated balances
        409: INSUFFICIENT_STOCK (details: product_id, available, requested)
    """
    try:
        data = json_body()
        rider_id = require_int(data, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        balances = stock_service.record_sales(rider_id, _parse_items(data))
        return jsonify({"balances": [b.to_dict() for b in balances]}), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Stock sale")


@stock_bp.post("/return")
@require_actor(ROLE_RIDER)
def return_stock():
    """
    Return remaining stock to the branch, each balance independently.

    Request body:
    {
        "balance_ids": [int, ...],
        "proof_refs": [str, ...],        // aligned with balance_ids
        "proof_photos": [str, ...],      // optional base64, aligned with balance_ids
        "notes": str (optional)
    }

    Returns:
        200: one result per balance; failed items carry PROOF_REQUIRED etc.
    """
    try:
        data = json_body()
        balance_ids = [coerce_int(b, "balance_ids") for b in require_list(data, "balance_ids")]
        proof_refs = data.get("proof_refs") or []
        proof_photos = data.get("proof_photos") or []
        if not isinstance(proof_refs, list) or not isinstance(proof_photos, list):
            raise ValidationError("proof_refs and proof_photos must be lists")
        for key, values in (("proof_refs", proof_refs), ("proof_photos", proof_photos)):
            if any(v is not None and not isinstance(v, str) for v in values):
                raise ValidationError(f"{key} entries must be strings", field=key)

        items = []
        for index, balance_id in enumerate(balance_ids):
            balance = stock_service.get_balance(balance_id)
            if not can_act_for_rider(balance.rider_id):
                return forbidden_for_rider(balance.rider_id)
            items.append({
                "balance_id": balance_id,
                "proof_ref": proof_refs[index] if index < len(proof_refs) else None,
                "proof_photo": proof_photos[index] if index < len(proof_photos) else None,
            })

        results = stock_service.confirm_returns(items, notes=optional_str(data, "notes"))
        succeeded = sum(1 for r in results if r.ok)
        return jsonify({
            "results": [r.to_dict() for r in results],
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        }), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Stock return")


@stock_bp.post("/adjust")
@require_actor(ROLE_RIDER, ROLE_BRANCH)
def adjust():
    """
    Set a balance to a physical count.

    Request body:
    {
        "rider_id": int,
        "product_id": int,
        "real_count": int,
        "branch_id": int (optional, needed for a product the rider never held),
        "notes": str (optional)
    }

    Returns:
        200: {"variance": int, "balance": {...}, "movement": {...} | null}
    """
    try:
        data = json_body()
        rider_id = require_int(data, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        result = stock_service.adjust_inventory(
            rider_id,
            require_int(data, "product_id"),
            require_non_negative_int(data, "real_count"),
            branch_id=optional_int(data, "branch_id") or g.branch_id,
            notes=optional_str(data, "notes"),
            user_id=g.actor_id,
        )
        return jsonify(result.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Stock adjustment")


@stock_bp.post("/send")
@require_actor(ROLE_BRANCH)
def send():
    """
    Send stock from a branch to a rider.

    Request body:
    {
        "rider_id": int,
        "branch_id": int (optional, defaults to the actor's branch),
        "items": [{"product_id": int, "quantity": int}, ...],
        "expected_time": str (optional, ISO-8601),
        "notes": str (optional)
    }

    Returns:
        201: created 'sent' movements
    """
    try:
        data = json_body()
        branch_id = optional_int(data, "branch_id") or g.branch_id
        if branch_id is None:
            raise ValidationError("branch_id is required", field="branch_id")

        movements = stock_service.send_stock(
            branch_id=branch_id,
            rider_id=require_int(data, "rider_id"),
            items=_parse_items(data),
            expected_time=parse_datetime(data.get("expected_time"), "expected_time"),
            notes=optional_str(data, "notes"),
            created_by_user_id=g.actor_id,
        )
        return jsonify({
            "reference_id": movements[0].reference_id,
            "movements": [m.to_dict() for m in movements],
        }), 201

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Stock send")


@stock_bp.post("/movements/<int:movement_id>/reject")
@require_actor(ROLE_RIDER)
def reject(movement_id: int):
    """Refuse a delivery. Body: {"reason": str}."""
    try:
        data = json_body()
        movement = stock_service.get_movement(movement_id)
        if not can_act_for_rider(movement.rider_id):
            return forbidden_for_rider(movement.rider_id)

        movement = stock_service.reject_movement(
            movement_id,
            reason=require_str(data, "reason", max_length=500),
            user_id=g.actor_id,
        )
        return jsonify(movement.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Stock rejection")


@stock_bp.post("/movements/<int:movement_id>/verify-return")
@require_actor(ROLE_BRANCH)
def verify_return(movement_id: int):
    """Record the counted quantity of a returned line. Body: {"verified_quantity": int}."""
    try:
        data = json_body()
        movement = stock_service.verify_return(
            movement_id,
            verified_quantity=require_non_negative_int(data, "verified_quantity"),
            user_id=g.actor_id,
        )
        return jsonify(movement.to_dict()), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Return verification")


@stock_bp.get("/balances")
@require_actor()
def balances():
    try:
        rider_id = require_int(request.args, "rider_id")
        if not can_act_for_rider(rider_id):
            return forbidden_for_rider(rider_id)

        include_empty = request.args.get("include_empty", "false").lower() in ("1", "true", "yes")
        rows = stock_service.get_balances(rider_id, include_empty=include_empty)
        return jsonify({
            "balances": [b.to_dict() for b in rows],
            "remaining_stock_count": stock_service.remaining_stock_count(rider_id),
        }), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Balance listing")


@stock_bp.get("/movements")
@require_actor()
def movements():
    try:
        rider_id = optional_int(request.args, "rider_id")
        if g.actor_role == ROLE_RIDER:
            rider_id = g.actor_id
        limit, offset = _paging()

        rows, total = stock_service.list_movements(
            rider_id=rider_id,
            branch_id=optional_int(request.args, "branch_id"),
            status=request.args.get("status") or None,
            kind=request.args.get("kind") or None,
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "movements": [m.to_dict() for m in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Movement listing")


@stock_bp.get("/audit")
@require_actor(ROLE_BRANCH)
def audit():
    """Compare every balance of a rider against the movement log."""
    try:
        rider_id = require_int(request.args, "rider_id")
        report = stock_service.audit_balances(rider_id)
        return jsonify({
            "rider_id": rider_id,
            "lines": report,
            "drifted": [line for line in report if line["drift"] != 0],
        }), 200

    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Ledger audit")
