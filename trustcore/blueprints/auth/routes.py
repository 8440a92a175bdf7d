from datetime import timedelta

from flask import Blueprint, abort, current_app, jsonify, request, session
from sqlalchemy import or_

from ...extensions import db
from ...models import SecurityEventType, User
from ...security import password_policy, sessions, two_factor
from ...security.errors import AuthorizationFailed, PolicyValidationError
from ...security.security_events import recent_failed_logins, record_security_event
from ...utils import client_ip, utcnow
from .decorators import login_required

bp = Blueprint("auth", __name__, url_prefix="/auth")


def _json() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description="JSON body must be an object")
    return data


def _start_session(user: User) -> None:
    row = sessions.create_session(
        user.id, ip=client_ip(request), user_agent=request.headers.get("User-Agent")
    )
    session.clear()
    session["user_id"] = user.id
    session["role"] = user.role
    session["sid"] = row.id


def _register_failed_login(user: User | None, email: str, reason: str) -> None:
    if user is None:
        # se registra igual (monitoreo), sin user_id
        record_security_event(
            event_type=SecurityEventType.FAILED_LOGIN,
            details={"email": email, "reason": reason},
        )
        return

    record_security_event(
        event_type=SecurityEventType.FAILED_LOGIN,
        user_id=user.id,
        details={"reason": reason},
    )

    cfg = current_app.config
    failures = recent_failed_logins(email=user.email, minutes=cfg["LOGIN_LOCKOUT_WINDOW_MINUTES"])
    if failures >= cfg["LOGIN_LOCKOUT_THRESHOLD"]:
        user.account_locked_until = utcnow() + timedelta(minutes=cfg["LOGIN_LOCKOUT_MINUTES"])
        db.session.commit()
        current_app.logger.info("ACCOUNT LOCKED: user_id=%s failures=%s", user.id, failures)
        record_security_event(
            event_type=SecurityEventType.ACCOUNT_LOCKED,
            user_id=user.id,
            details={
                "failed_attempts": failures,
                "locked_until": user.account_locked_until.isoformat(),
            },
        )


# ---------- REGISTER ----------
@bp.post("/register")
def register():
    data = _json()

    email = (data.get("email") or "").strip().lower()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""

    if not email or not username or not password:
        return jsonify(
            error="missing_fields",
            required=["email", "username", "password"]
        ), 400

    result = password_policy.validate(password)
    if not result.valid:
        raise PolicyValidationError(result.errors)

    exists = User.query.filter(
        or_(User.email == email, User.username == username)
    ).first()

    if exists:
        return jsonify(error="user_exists"), 409

    user = User(email=email, username=username)
    user.set_password(password)

    db.session.add(user)
    db.session.commit()

    password_policy.add_to_history(user.id, user.password_hash)

    # ✅ deja al usuario logueado tras registrarse
    _start_session(user)

    return jsonify(
        message="created",
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role
    ), 201


# ---------- LOGIN ----------
@bp.post("/login")
def login():
    data = _json()

    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    otp = (data.get("otp") or "").strip()

    if not email or not password:
        return jsonify(
            error="missing_fields",
            required=["email", "password"]
        ), 400

    user = User.query.filter_by(email=email).first()

    if user and user.is_locked():
        record_security_event(
            event_type=SecurityEventType.FAILED_LOGIN,
            user_id=user.id,
            details={"reason": "account_locked"},
        )
        return jsonify(
            error="account_locked",
            locked_until=user.account_locked_until.isoformat() + "Z",
        ), 403

    if not user or not user.check_password(password):
        _register_failed_login(user, email, "bad_password")
        raise AuthorizationFailed()

    if not user.is_active:
        return jsonify(error="user_inactive"), 403

    if user.two_factor_enabled:
        if not otp:
            return jsonify(error="two_factor_required"), 401
        if not two_factor.verify(user.id, otp):
            _register_failed_login(user, email, "bad_second_factor")
            raise AuthorizationFailed()

    user.account_locked_until = None
    db.session.commit()

    _start_session(user)
    record_security_event(event_type=SecurityEventType.SUCCESS_LOGIN, user_id=user.id)

    return jsonify(
        message="ok",
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role,
        two_factor_enabled=user.two_factor_enabled,
        password_expired=password_policy.is_expired(user.id),
    ), 200


# ---------- LOGOUT ----------
@bp.post("/logout")
def logout():
    user_id = session.get("user_id")
    sid = session.get("sid")

    if sid and sessions.get_live_session(sid) is not None:
        sessions.force_logout(sid, actor_user_id=user_id)

    session.clear()
    return jsonify(message="logged_out"), 200


# ---------- WHO AM I ----------
@bp.get("/me")
def me():
    user_id = session.get("user_id")

    if not user_id or sessions.get_live_session(session.get("sid")) is None:
        session.clear()
        return jsonify(authenticated=False), 200

    user = db.session.get(User, user_id)

    if not user:
        session.clear()
        return jsonify(authenticated=False), 200

    return jsonify(
        authenticated=True,
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role,
        two_factor_enabled=user.two_factor_enabled,
    ), 200


# ---------- CHANGE PASSWORD ----------
@bp.post("/password")
@login_required
def change_password():
    data = _json()

    current = data.get("current_password") or ""
    new = data.get("new_password") or ""

    if not current or not new:
        return jsonify(
            error="missing_fields",
            required=["current_password", "new_password"]
        ), 400

    user = db.session.get(User, session["user_id"])
    if user is None or not user.check_password(current):
        raise AuthorizationFailed()

    result = password_policy.validate(new, user_id=user.id)
    if not result.valid:
        raise PolicyValidationError(result.errors)

    user.set_password(new)
    db.session.commit()
    password_policy.add_to_history(user.id, user.password_hash)

    record_security_event(event_type=SecurityEventType.PASSWORD_CHANGED, user_id=user.id)

    return jsonify(message="password_changed"), 200
