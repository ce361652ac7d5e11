from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from .time_utils import parse_iso_datetime


class EngineError(Exception):
    """
    Base class for every rejected transition.

    Each subclass carries a stable machine code so the rider-facing client can
    gate its workflow on the exact reason instead of a generic failure.
    """
    code = "ENGINE_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None, **details: Any):
        super().__init__(message or self.__class__.__doc__.strip().splitlines()[0])
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self), "details": self.details}


class ValidationError(EngineError):
    """Invalid input."""
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(EngineError):
    """Record not found."""
    code = "NOT_FOUND"
    http_status = 404


class PreconditionFailed(EngineError):
    """Operation is not allowed in the current state."""
    code = "PRECONDITION_FAILED"
    http_status = 409


class StockNotReturned(PreconditionFailed):
    """Rider still holds unreturned stock."""
    code = "STOCK_NOT_RETURNED"


class AlreadySubmitted(PreconditionFailed):
    """Shift report has already been submitted."""
    code = "ALREADY_SUBMITTED"


class InsufficientStock(PreconditionFailed):
    """Not enough stock on hand."""
    code = "INSUFFICIENT_STOCK"


class ProofRequired(PreconditionFailed):
    """Photographic proof is required to return stock."""
    code = "PROOF_REQUIRED"


class InvalidMovementState(PreconditionFailed):
    """Stock movement is not in a state that allows this action."""
    code = "INVALID_MOVEMENT_STATE"


class StaleTransfer(PreconditionFailed):
    """Stock was sent on an earlier day and cannot be confirmed into today's shift."""
    code = "STALE_TRANSFER"


class ConflictError(EngineError):
    """Concurrent update conflict, retry the request."""
    code = "CONFLICT"
    http_status = 409


class AlreadySubmitting(ConflictError):
    """A shift report submission for this rider is already in progress."""
    code = "ALREADY_SUBMITTING"


class DependencyError(EngineError):
    """External dependency is unavailable."""
    code = "DEPENDENCY_UNAVAILABLE"
    http_status = 503


# =============================================================================
# INPUT COERCION
# =============================================================================

def require_int(data: dict, key: str) -> int:
    """Strict integer field: rejects bools, floats and decimal strings."""
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(f"{key} is required", field=key)
    return coerce_int(value, key)


def coerce_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", field=key)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation and decimals ("1e3", "12.5")
        if re.fullmatch(r"-?\d+", stripped):
            return int(stripped)
    raise ValidationError(f"{key} must be an integer", field=key)


def require_positive_int(data: dict, key: str) -> int:
    value = require_int(data, key)
    if value <= 0:
        raise ValidationError(f"{key} must be greater than zero", field=key)
    return value


def require_non_negative_int(data: dict, key: str) -> int:
    value = require_int(data, key)
    if value < 0:
        raise ValidationError(f"{key} must not be negative", field=key)
    return value


def optional_int(data: dict, key: str) -> int | None:
    if data.get(key) in (None, ""):
        return None
    return require_int(data, key)


def optional_str(data: dict, key: str, *, max_length: int | None = None) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", field=key)
    value = value.strip()
    if not value:
        return None
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters", field=key)
    return value


def require_str(data: dict, key: str, *, max_length: int | None = None) -> str:
    value = optional_str(data, key, max_length=max_length)
    if value is None:
        raise ValidationError(f"{key} is required", field=key)
    return value


def require_list(data: dict, key: str) -> list:
    value = data.get(key)
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{key} must be a non-empty list", field=key)
    return value


def parse_date(value: Any, key: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{key} must be a YYYY-MM-DD date", field=key)


def parse_datetime(value: Any, key: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            pass
    raise ValidationError(f"{key} must be an ISO-8601 datetime", field=key)
