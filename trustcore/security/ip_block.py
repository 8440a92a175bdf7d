from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from trustcore.extensions import db
from trustcore.models.blocked_ip import BlockedIP
from trustcore.models.security_event import SecurityEventType
from trustcore.security.errors import NotFoundError
from trustcore.security.security_events import record_security_event
from trustcore.utils import utcnow


def _find(ip: str) -> BlockedIP | None:
    return BlockedIP.query.filter_by(ip=ip).first()


def is_blocked(ip: str) -> bool:
    """Expiración lazy: si la fila venció se borra aquí mismo y la IP pasa."""
    row = _find(ip)
    if row is None:
        return False

    if not row.is_active(utcnow()):
        db.session.delete(row)
        db.session.commit()
        current_app.logger.info("IP BLOCK expired: ip=%s", ip)
        return False

    return True


def _overwrite(row: BlockedIP, reason: str, expires_at: datetime | None) -> BlockedIP:
    row.reason = reason
    row.expires_at = expires_at
    db.session.commit()
    return row


def block_ip(
    ip: str,
    reason: str,
    expires_at: datetime | None = None,
    actor_user_id: int | None = None,
) -> BlockedIP:
    """Upsert por ip: si ya estaba bloqueada se sobrescriben reason/expiración."""
    ip = ip.strip()
    if not ip:
        raise ValueError("ip is required")

    row = _find(ip)
    if row is None:
        row = BlockedIP(ip=ip, reason=reason, expires_at=expires_at)
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            # otra request insertó la misma ip entre el select y el insert
            db.session.rollback()
            row = _find(ip)
            if row is None:
                raise
            row = _overwrite(row, reason, expires_at)
    else:
        row = _overwrite(row, reason, expires_at)

    current_app.logger.info("IP BLOCKED: ip=%s reason=%s expires_at=%s", ip, reason, expires_at)
    record_security_event(
        event_type=SecurityEventType.IP_BLOCKED,
        user_id=actor_user_id,
        details={
            "blocked_ip": ip,
            "reason": reason,
            "expires_at": expires_at.isoformat() if expires_at else None,
        },
    )
    return row


def unblock_ip(ip: str, actor_user_id: int | None = None) -> None:
    """NotFoundError si la IP no estaba bloqueada (el caller puede ignorarlo)."""
    row = _find(ip)
    if row is None:
        raise NotFoundError(f"IP {ip} is not blocked")

    db.session.delete(row)
    db.session.commit()

    current_app.logger.info("IP UNBLOCKED: ip=%s", ip)
    record_security_event(
        event_type=SecurityEventType.IP_UNBLOCKED,
        user_id=actor_user_id,
        details={"blocked_ip": ip},
    )


def list_active() -> list[BlockedIP]:
    now = utcnow()
    rows = (
        BlockedIP.query.filter((BlockedIP.expires_at.is_(None)) | (BlockedIP.expires_at > now))
        .order_by(BlockedIP.created_at.desc())
        .all()
    )
    # re-filtro por si el sweep todavía no pasó
    return [r for r in rows if r.is_active(now)]


def count_active() -> int:
    now = utcnow()
    return BlockedIP.query.filter(
        (BlockedIP.expires_at.is_(None)) | (BlockedIP.expires_at > now)
    ).count()


def sweep_expired() -> int:
    deleted = (
        BlockedIP.query.filter(BlockedIP.expires_at.isnot(None), BlockedIP.expires_at <= utcnow())
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
