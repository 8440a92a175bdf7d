from __future__ import annotations

import secrets
from datetime import timedelta

from flask import current_app

from trustcore.extensions import db
from trustcore.models.security_event import SecurityEventType
from trustcore.models.user_session import UserSession
from trustcore.security.errors import NotFoundError
from trustcore.security.security_events import record_security_event
from trustcore.utils import utcnow


def create_session(
    user_id: int,
    ip: str | None = None,
    user_agent: str | None = None,
    ttl: timedelta | None = None,
) -> UserSession:
    if ttl is None:
        ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))

    now = utcnow()
    sess = UserSession(
        id=secrets.token_urlsafe(32),
        user_id=user_id,
        ip=ip,
        user_agent=(user_agent or None) and user_agent[:255],
        last_activity=now,
        created_at=now,
        expires_at=now + ttl,
    )
    db.session.add(sess)
    db.session.commit()
    return sess


def get_live_session(session_id: str | None) -> UserSession | None:
    if not session_id:
        return None
    return UserSession.query.filter(
        UserSession.id == session_id, UserSession.expires_at > utcnow()
    ).first()


def list_sessions(user_id: int | None = None) -> list[UserSession]:
    q = UserSession.query.filter(UserSession.expires_at > utcnow())
    if user_id is not None:
        q = q.filter(UserSession.user_id == user_id)
    return q.order_by(UserSession.last_activity.desc()).all()


def force_logout(session_id: str, actor_user_id: int | None = None) -> None:
    sess = db.session.get(UserSession, session_id)
    if sess is None:
        raise NotFoundError("Session not found")

    user_id, ip = sess.user_id, sess.ip
    db.session.delete(sess)
    db.session.commit()

    self_initiated = actor_user_id is None or actor_user_id == user_id
    record_security_event(
        event_type=SecurityEventType.LOGOUT,
        user_id=user_id,
        ip=ip,
        details={
            "session_id": session_id,
            "forced_by": actor_user_id,
            "initiated_by": "self" if self_initiated else "admin",
        },
    )


def force_logout_all(user_id: int, actor_user_id: int | None = None) -> int:
    deleted = UserSession.query.filter_by(user_id=user_id).delete(synchronize_session=False)
    db.session.commit()

    self_initiated = actor_user_id is None or actor_user_id == user_id
    record_security_event(
        event_type=SecurityEventType.LOGOUT,
        user_id=user_id,
        details={
            "forced_by": actor_user_id,
            "initiated_by": "self" if self_initiated else "admin",
            "session_count": deleted,
        },
    )
    return deleted


def touch(session_id: str, ip: str | None = None, user_agent: str | None = None) -> UserSession | None:
    """Refresca last_activity (y ip/agent si cambiaron). La llama el middleware de auth."""
    sess = db.session.get(UserSession, session_id)
    if sess is None:
        return None

    sess.last_activity = utcnow()
    if ip and ip != sess.ip:
        sess.ip = ip
    if user_agent and user_agent[:255] != sess.user_agent:
        sess.user_agent = user_agent[:255]
    db.session.commit()
    return sess


def sweep_expired() -> int:
    deleted = UserSession.query.filter(UserSession.expires_at <= utcnow()).delete(
        synchronize_session=False
    )
    db.session.commit()
    return deleted
