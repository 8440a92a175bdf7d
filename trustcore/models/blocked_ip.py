from trustcore.extensions import db
from trustcore.utils import isoformat, utcnow


class BlockedIP(db.Model):
    __tablename__ = "blocked_ips"

    id = db.Column(db.Integer, primary_key=True)
    ip = db.Column(db.String(64), unique=True, nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=False)

    # None = permanente
    expires_at = db.Column(db.DateTime, nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def is_active(self, now=None) -> bool:
        now = now or utcnow()
        return self.expires_at is None or self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ip": self.ip,
            "reason": self.reason,
            "expires_at": isoformat(self.expires_at),
            "created_at": isoformat(self.created_at),
        }
