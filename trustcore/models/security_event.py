from __future__ import annotations

import enum

from trustcore.extensions import db
from trustcore.utils import isoformat, utcnow


class SecurityEventType(str, enum.Enum):
    FAILED_LOGIN = "FAILED_LOGIN"
    SUCCESS_LOGIN = "SUCCESS_LOGIN"
    LOGOUT = "LOGOUT"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    IP_BLOCKED = "IP_BLOCKED"
    IP_UNBLOCKED = "IP_UNBLOCKED"
    BLOCKED_REQUEST = "BLOCKED_REQUEST"
    RATE_LIMITED = "RATE_LIMITED"
    TWO_FA_ENABLED = "TWO_FA_ENABLED"
    TWO_FA_DISABLED = "TWO_FA_DISABLED"
    INTEGRITY_SCAN = "INTEGRITY_SCAN"
    SECURITY_CHECK = "SECURITY_CHECK"


class SecurityEvent(db.Model):
    """Append-only: nada actualiza ni borra filas de esta tabla."""

    __tablename__ = "security_events"

    id = db.Column(db.Integer, primary_key=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    event_type = db.Column(db.String(32), nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    user = db.relationship("User", lazy="joined")

    ip = db.Column(db.String(64), nullable=True, index=True)
    user_agent = db.Column(db.String(255), nullable=True)

    details = db.Column(db.JSON, nullable=False, default=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.event_type,
            "user_id": self.user_id,
            "user": self.user.to_owner_dict() if self.user else None,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "metadata": self.details or {},
            "created_at": isoformat(self.created_at),
        }
