from trustcore.extensions import db
from trustcore.utils import isoformat, utcnow


class UserSession(db.Model):
    __tablename__ = "user_sessions"

    id = db.Column(db.String(64), primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user = db.relationship("User", lazy="joined")

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    last_activity = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    # viva sii expires_at > now
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_owner_dict() if self.user else None,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "last_activity": isoformat(self.last_activity),
            "created_at": isoformat(self.created_at),
            "expires_at": isoformat(self.expires_at),
        }
