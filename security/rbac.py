from functools import wraps
from flask import g, jsonify

# Roles allowed to run privileged booking operations (status changes, any-booking cancel)
STAFF_ROLES = ("STAFF", "ADMIN")


def has_role(*role_names: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return bool(user.role_names.intersection(role_names))


def is_staff() -> bool:
    return has_role(*STAFF_ROLES)


def require_roles(*role_names: str):
    """
    Usage: @require_roles("STAFF", "ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if not user.role_names.intersection(role_names):
                return jsonify(error="Insufficient permissions"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
