# Overview: Shared response helpers for the API blueprints.

from flask import current_app, jsonify, request

from ..extensions import db
from ..validation import EngineError, ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def error_response(e: EngineError):
    """Roll back and render a named engine failure."""
    db.session.rollback()
    return jsonify(e.to_dict()), e.http_status


def unexpected_error(action: str):
    """Roll back and log an unexpected failure; the client gets a generic 500."""
    db.session.rollback()
    current_app.logger.exception("%s failed", action)
    return jsonify({"error": "INTERNAL_ERROR", "message": "Unexpected error"}), 500
