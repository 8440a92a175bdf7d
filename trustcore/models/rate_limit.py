from trustcore.extensions import db
from trustcore.utils import isoformat, utcnow

GLOBAL_ENDPOINT = "global"


class RateLimitConfig(db.Model):
    __tablename__ = "rate_limit_configs"

    id = db.Column(db.Integer, primary_key=True)

    # "global" = fallback cuando no hay fila para el endpoint
    endpoint = db.Column(db.String(255), unique=True, nullable=False, index=True)

    window_ms = db.Column(db.Integer, nullable=False)
    max_requests = db.Column(db.Integer, nullable=False)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    block_duration_minutes = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "endpoint": self.endpoint,
            "window_ms": self.window_ms,
            "max_requests": self.max_requests,
            "enabled": self.enabled,
            "block_duration_minutes": self.block_duration_minutes,
        }


class RateLimitViolation(db.Model):
    __tablename__ = "rate_limit_violations"

    id = db.Column(db.Integer, primary_key=True)
    ip = db.Column(db.String(64), nullable=False, index=True)
    endpoint = db.Column(db.String(255), nullable=False, index=True)
    request_count = db.Column(db.Integer, nullable=False)
    limit = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ip": self.ip,
            "endpoint": self.endpoint,
            "request_count": self.request_count,
            "limit": self.limit,
            "created_at": isoformat(self.created_at),
        }


class RateLedgerHit(db.Model):
    """Una fila por request admitida/rechazada (ledger compartido entre instancias)."""

    __tablename__ = "rate_ledger_hits"

    id = db.Column(db.Integer, primary_key=True)
    ip = db.Column(db.String(64), nullable=False)
    endpoint = db.Column(db.String(255), nullable=False)
    # epoch seconds
    ts = db.Column(db.Float, nullable=False, index=True)

    __table_args__ = (
        db.Index("ix_rate_ledger_hits_key", "ip", "endpoint", "ts"),
    )
