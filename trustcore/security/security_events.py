from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app, has_request_context, request
from sqlalchemy import func

from trustcore.extensions import db
from trustcore.models.security_event import SecurityEvent, SecurityEventType
from trustcore.models.user import User
from trustcore.utils import client_ip, utcnow


def record_security_event(
    *,
    event_type: SecurityEventType | str,
    user_id: int | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict | None = None,
) -> SecurityEvent | None:
    """
    Best-effort: nunca debe romper la request.
    Si no se pasa ip/user_agent y hay request activa, se toman de ahí.
    """
    if has_request_context():
        if ip is None:
            ip = client_ip(request)
        if user_agent is None:
            user_agent = request.headers.get("User-Agent")

    event_type = SecurityEventType(event_type)

    try:
        ev = SecurityEvent(
            event_type=event_type.value,
            user_id=user_id,
            ip=ip,
            user_agent=(user_agent or None) and user_agent[:255],
            details=details or {},
        )
        db.session.add(ev)
        db.session.commit()
        return ev
    except Exception:
        db.session.rollback()
        current_app.logger.exception("security event write failed: type=%s", event_type.value)
        return None


def _filtered(
    *,
    user_id: int | None = None,
    event_type: str | None = None,
    ip: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
):
    q = SecurityEvent.query
    if user_id is not None:
        q = q.filter(SecurityEvent.user_id == user_id)
    if event_type:
        q = q.filter(SecurityEvent.event_type == SecurityEventType(event_type).value)
    if ip:
        q = q.filter(SecurityEvent.ip == ip)
    if start is not None:
        q = q.filter(SecurityEvent.created_at >= start)
    if end is not None:
        q = q.filter(SecurityEvent.created_at <= end)
    return q


def query_events(*, limit: int = 50, offset: int = 0, **filters) -> tuple[list[SecurityEvent], int]:
    """Eventos (más nuevos primero) + total sin paginar."""
    q = _filtered(**filters)
    total = q.count()
    events = (
        q.order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
        .offset(max(0, offset))
        .limit(max(1, limit))
        .all()
    )
    return events, total


def count_events(event_type: SecurityEventType, since: datetime, **filters) -> int:
    return _filtered(event_type=event_type, start=since, **filters).count()


def recent_failed_logins(*, email: str | None = None, ip: str | None = None, minutes: int = 15) -> int:
    """Logins fallidos recientes por cuenta (email) o por IP: detección de fuerza bruta."""
    if (email is None) == (ip is None):
        raise ValueError("pass exactly one of email or ip")

    since = utcnow() - timedelta(minutes=minutes)

    if email is not None:
        user = User.query.filter_by(email=email.strip().lower()).first()
        if user is None:
            return 0
        return count_events(SecurityEventType.FAILED_LOGIN, since, user_id=user.id)

    return count_events(SecurityEventType.FAILED_LOGIN, since, ip=ip)


def statistics(hours: int = 24) -> dict:
    since = utcnow() - timedelta(hours=hours)

    locked_accounts = (
        db.session.query(func.count(User.id))
        .filter(User.account_locked_until.isnot(None), User.account_locked_until > utcnow())
        .scalar()
    )

    return {
        "failed_logins": count_events(SecurityEventType.FAILED_LOGIN, since),
        "locked_accounts": int(locked_accounts or 0),
        "blocked_requests": count_events(SecurityEventType.BLOCKED_REQUEST, since),
    }


def last_successful_login(user_id: int) -> dict | None:
    ev = (
        SecurityEvent.query.filter_by(
            user_id=user_id, event_type=SecurityEventType.SUCCESS_LOGIN.value
        )
        .order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
        .first()
    )
    if ev is None:
        return None
    return {"created_at": ev.created_at, "ip": ev.ip}
