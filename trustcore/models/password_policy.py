from trustcore.extensions import db
from trustcore.utils import isoformat, utcnow


class PasswordPolicy(db.Model):
    """Una sola fila activa; actualizar = reemplazar la fila completa."""

    __tablename__ = "password_policies"

    id = db.Column(db.Integer, primary_key=True)

    min_length = db.Column(db.Integer, nullable=False, default=8)
    require_upper = db.Column(db.Boolean, nullable=False, default=True)
    require_lower = db.Column(db.Boolean, nullable=False, default=True)
    require_digit = db.Column(db.Boolean, nullable=False, default=True)
    require_special = db.Column(db.Boolean, nullable=False, default=True)
    expiration_days = db.Column(db.Integer, nullable=True)
    prevent_reuse = db.Column(db.Integer, nullable=False, default=5)
    check_breached = db.Column(db.Boolean, nullable=False, default=False)
    enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "min_length": self.min_length,
            "require_upper": self.require_upper,
            "require_lower": self.require_lower,
            "require_digit": self.require_digit,
            "require_special": self.require_special,
            "expiration_days": self.expiration_days,
            "prevent_reuse": self.prevent_reuse,
            "check_breached": self.check_breached,
            "enabled": self.enabled,
            "created_at": isoformat(self.created_at),
        }


class PasswordHistoryEntry(db.Model):
    __tablename__ = "password_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # hash de credencial (nunca texto plano)
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
