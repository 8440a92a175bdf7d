from __future__ import annotations

from flask import abort, g, jsonify, request, session

from trustcore.security import (
    file_integrity,
    ip_block,
    password_policy,
    rate_limit,
    risk,
    security_events,
    sessions,
    two_factor,
)
from trustcore.security.errors import NotFoundError
from trustcore.utils import client_ip, parse_bool, parse_iso_dt

from ..auth.decorators import login_required, role_required
from . import bp


def _uid() -> int:
    uid = session.get("user_id")
    if not uid:
        abort(401, description="auth_required")
    return int(uid)


def _json() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description="JSON body must be an object")
    return data


def _int_arg(name: str, default: int, lo: int = 0, hi: int | None = None) -> int:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        n = int(raw)
    except ValueError:
        abort(400, description=f"{name} must be int")
    n = max(lo, n)
    return min(n, hi) if hi is not None else n


def _dt_arg(name: str):
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return parse_iso_dt(raw)
    except ValueError:
        abort(400, description=f"Invalid {name}. Use ISO 8601, e.g. 2026-01-12T14:00:00Z")


# -------------------
# DASHBOARD / CHECKS
# -------------------


@bp.get("/dashboard")
@role_required("admin")
def security_dashboard():
    overview = risk.dashboard_overview(_uid())
    overview["security_status"] = risk.run_security_checks(_uid(), is_https=request.is_secure)
    return jsonify(overview)


@bp.post("/check")
@role_required("admin")
def security_check():
    return jsonify(risk.run_security_checks(_uid(), is_https=request.is_secure))


# -------------------
# EVENTS (audit log)
# -------------------


@bp.get("/events")
@role_required("admin")
def security_list_events():
    filters = {}

    user_id = (request.args.get("user_id") or "").strip()
    if user_id:
        try:
            filters["user_id"] = int(user_id)
        except ValueError:
            abort(400, description="user_id must be int")

    event_type = (request.args.get("type") or "").strip()
    if event_type:
        if event_type not in security_events.SecurityEventType.__members__:
            abort(400, description="Invalid type")
        filters["event_type"] = event_type

    ip = (request.args.get("ip") or "").strip()
    if ip:
        filters["ip"] = ip

    filters["start"] = _dt_arg("from")
    filters["end"] = _dt_arg("to")

    events, total = security_events.query_events(
        limit=_int_arg("limit", 50, lo=1, hi=200),
        offset=_int_arg("offset", 0),
        **filters,
    )
    return jsonify(events=[e.to_dict() for e in events], total=total)


# -------------------
# BLOCKED IPS
# -------------------


@bp.get("/blocked-ips")
@role_required("admin")
def security_list_blocked_ips():
    return jsonify([row.to_dict() for row in ip_block.list_active()])


@bp.post("/blocked-ips")
@role_required("admin")
def security_block_ip():
    data = _json()
    ip = (data.get("ip") or "").strip()
    reason = (data.get("reason") or "").strip()
    if not ip or not reason:
        abort(400, description="ip and reason are required")

    expires_at = None
    if data.get("expires_at"):
        try:
            expires_at = parse_iso_dt(str(data["expires_at"]))
        except ValueError:
            abort(400, description="Invalid expires_at. Use ISO 8601")

    row = ip_block.block_ip(ip, reason, expires_at=expires_at, actor_user_id=_uid())
    return jsonify(row.to_dict()), 201


@bp.delete("/blocked-ips/<path:ip>")
@role_required("admin")
def security_unblock_ip(ip: str):
    ip_block.unblock_ip(ip, actor_user_id=_uid())
    return jsonify(message="unblocked", ip=ip)


# -------------------
# 2FA (cualquier usuario logueado)
# -------------------


@bp.post("/2fa/generate")
@login_required
def two_factor_generate():
    return jsonify(two_factor.generate_secret(_uid()))


@bp.post("/2fa/enable")
@login_required
def two_factor_enable():
    data = _json()
    secret = (data.get("secret") or "").strip()
    token = str(data.get("token") or "").strip()
    if not secret or not token:
        abort(400, description="secret and token are required")

    codes = two_factor.enable(_uid(), secret, token, ip=client_ip(request))
    return jsonify(recovery_codes=codes)


@bp.post("/2fa/disable")
@login_required
def two_factor_disable():
    data = _json()
    two_factor.disable(_uid(), data.get("password") or "", ip=client_ip(request))
    return jsonify(success=True)


@bp.post("/2fa/verify")
@login_required
def two_factor_verify():
    data = _json()
    return jsonify(valid=two_factor.verify(_uid(), str(data.get("token") or "")))


# -------------------
# FILE INTEGRITY
# -------------------


@bp.post("/integrity/baseline")
@role_required("admin")
def integrity_baseline():
    files = file_integrity.generate_baseline(_uid())
    return jsonify(success=True, file_count=len(files), message="Baseline generated successfully")


@bp.post("/integrity/scan")
@role_required("admin")
def integrity_scan():
    return jsonify(file_integrity.scan_for_changes(_uid()).to_dict())


# -------------------
# RATE LIMITS
# -------------------


@bp.get("/rate-limits")
@role_required("admin")
def rate_limit_list():
    return jsonify([c.to_dict() for c in rate_limit.list_configs()])


@bp.post("/rate-limits")
@role_required("admin")
def rate_limit_upsert():
    data = _json()
    try:
        config = rate_limit.upsert_config(
            endpoint=str(data.get("endpoint") or ""),
            window_ms=int(data["window_ms"]),
            max_requests=int(data["max_requests"]),
            enabled=parse_bool(data.get("enabled", True)),
            block_duration_minutes=(
                int(data["block_duration_minutes"])
                if data.get("block_duration_minutes") is not None
                else None
            ),
        )
    except KeyError as e:
        abort(400, description=f"Missing {e.args[0]}")
    except (TypeError, ValueError) as e:
        abort(400, description=str(e))
    return jsonify(config.to_dict())


@bp.delete("/rate-limits")
@bp.delete("/rate-limits/<path:endpoint>")
@role_required("admin")
def rate_limit_delete(endpoint: str | None = None):
    # los paths con "/" inicial van por query string: ?endpoint=/auth/login
    endpoint = endpoint or (request.args.get("endpoint") or "").strip()
    if not endpoint:
        abort(400, description="endpoint is required")
    rate_limit.delete_config(endpoint)
    return jsonify(message="deleted", endpoint=endpoint)


@bp.get("/rate-limits/violations")
@role_required("admin")
def rate_limit_violations():
    limit = _int_arg("limit", 100, lo=1, hi=1000)
    return jsonify([v.to_dict() for v in rate_limit.list_violations(limit)])


# -------------------
# SESSIONS
# -------------------


@bp.get("/sessions")
@role_required("admin")
def sessions_list():
    user_id = (request.args.get("user_id") or "").strip()
    uid = None
    if user_id:
        try:
            uid = int(user_id)
        except ValueError:
            abort(400, description="user_id must be int")
    return jsonify([s.to_dict() for s in sessions.list_sessions(uid)])


@bp.get("/sessions/me")
@login_required
def sessions_mine():
    return jsonify([s.to_dict() for s in sessions.list_sessions(_uid())])


@bp.delete("/sessions/<session_id>")
@role_required("admin")
def sessions_force_logout(session_id: str):
    sessions.force_logout(session_id, actor_user_id=_uid())
    return jsonify(success=True, message="Session terminated")


@bp.delete("/sessions/user/<int:user_id>")
@role_required("admin")
def sessions_force_logout_all(user_id: int):
    count = sessions.force_logout_all(user_id, actor_user_id=_uid())
    return jsonify(success=True, message=f"{count} session(s) terminated", count=count)


@bp.post("/sessions/cleanup")
@role_required("admin")
def sessions_cleanup():
    return jsonify(deleted=sessions.sweep_expired())


# -------------------
# PASSWORD POLICY
# -------------------


@bp.get("/password-policy")
@role_required("admin")
def password_policy_get():
    policy = password_policy.get_policy()
    if policy is None:
        raise NotFoundError("No password policy configured")
    return jsonify(policy.to_dict())


@bp.post("/password-policy")
@role_required("admin")
def password_policy_update():
    data = _json()
    try:
        policy = password_policy.update_policy(**data)
    except (TypeError, ValueError) as e:
        abort(400, description=str(e))
    return jsonify(policy.to_dict())


@bp.post("/password-policy/validate")
@login_required
def password_policy_validate():
    data = _json()
    password = data.get("password")
    if not isinstance(password, str):
        abort(400, description="password is required")

    user_id = data.get("user_id")
    if user_id is not None:
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            abort(400, description="user_id must be int")
        # el historial ajeno solo lo consulta un admin
        if user_id != _uid() and g.current_user.role != "admin":
            abort(403, description="forbidden")

    return jsonify(password_policy.validate(password, user_id=user_id).to_dict())


@bp.get("/password-policy/expired/<int:user_id>")
@role_required("admin")
def password_policy_expired(user_id: int):
    return jsonify(expired=password_policy.is_expired(user_id))
