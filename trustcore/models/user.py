from trustcore.extensions import db
from trustcore.security.hashing import hash_credential, verify_credential
from trustcore.utils import utcnow


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)

    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default="reader")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # bloqueo temporal tras demasiados logins fallidos
    account_locked_until = db.Column(db.DateTime, nullable=True, index=True)

    # 2FA: secret y recovery codes existen juntos (enable/disable los tocan a la vez)
    two_factor_enabled = db.Column(db.Boolean, nullable=False, default=False)
    two_factor_secret = db.Column(db.String(64), nullable=True)
    recovery_code_hashes = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # 🔐 helpers de password
    def set_password(self, password: str) -> None:
        self.password_hash = hash_credential(password)

    def check_password(self, password: str) -> bool:
        return verify_credential(self.password_hash, password)

    def is_locked(self) -> bool:
        return self.account_locked_until is not None and self.account_locked_until > utcnow()

    def to_owner_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "role": self.role,
        }
