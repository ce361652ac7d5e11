# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

ROLE_RIDER = "rider"
ROLE_BRANCH = "branch"
ROLE_ADMIN = "admin"
ACTOR_ROLES = (ROLE_RIDER, ROLE_BRANCH, ROLE_ADMIN)


def _header_int(name: str):
    value = (request.headers.get(name) or "").strip()
    if not value:
        return None
    if not value.isdigit():
        raise ValueError(name)
    return int(value)


def require_actor(*roles):
    """
    Require an identified actor and establish request context.

    Identity comes from the upstream gateway in headers:
    - X-Actor-Id: user id (required)
    - X-Actor-Role: rider | branch | admin (required)
    - X-Branch-Id: the actor's branch (optional)

    Sets g.actor_id, g.actor_role and g.branch_id.

    SECURITY: Returns 401 if identity is missing or malformed, 403 if the
    role is not one of `roles` (admin is always allowed).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            role = (request.headers.get("X-Actor-Role") or "").strip().lower()
            try:
                actor_id = _header_int("X-Actor-Id")
                branch_id = _header_int("X-Branch-Id")
            except ValueError as e:
                return jsonify({"error": "UNAUTHENTICATED", "message": f"{e} must be an integer"}), 401

            if actor_id is None or role not in ACTOR_ROLES:
                return jsonify({"error": "UNAUTHENTICATED", "message": "Actor identity required"}), 401

            if roles and role != ROLE_ADMIN and role not in roles:
                return jsonify({
                    "error": "FORBIDDEN",
                    "message": f"Role '{role}' may not perform this action",
                    "details": {"allowed_roles": list(roles)},
                }), 403

            g.actor_id = actor_id
            g.actor_role = role
            g.branch_id = branch_id
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def can_act_for_rider(rider_id: int) -> bool:
    """Riders may only act on their own records; branch staff and admins on any."""
    if g.actor_role == ROLE_RIDER:
        return g.actor_id == rider_id
    return True


def forbidden_for_rider(rider_id: int):
    return jsonify({
        "error": "FORBIDDEN",
        "message": "Riders may only act on their own records",
        "details": {"rider_id": rider_id},
    }), 403
