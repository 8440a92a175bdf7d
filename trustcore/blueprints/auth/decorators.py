from functools import wraps

from flask import g, jsonify, session

from ...models import User
from ...security import sessions


def _current_user() -> User | None:
    """Usuario de la fila de sesión viva; la cookie sola no alcanza."""
    row = sessions.get_live_session(session.get("sid"))
    if row is None or row.user_id != session.get("user_id"):
        return None
    if row.user is None or not row.user.is_active:
        return None
    return row.user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = _current_user()
        if user is None:
            return jsonify(error="auth_required"), 401
        g.current_user = user
        return fn(*args, **kwargs)
    return wrapper


def role_required(*roles):
    """
    El rol se lee de la DB, no de la cookie: un admin degradado
    pierde acceso en la request siguiente.

      @role_required("admin")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = _current_user()
            if user is None:
                return jsonify(error="auth_required"), 401

            if user.role not in roles:
                return jsonify(error="forbidden", required_roles=list(roles)), 403
            g.current_user = user
            return fn(*args, **kwargs)
        return wrapper
    return decorator
