from __future__ import annotations

from datetime import datetime, timezone

from flask import Request, current_app


def utcnow() -> datetime:
    """UTC naive: así se guarda en la DB (SQLite no conserva tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def client_ip(req: Request) -> str:
    # X-Forwarded-For solo si estamos detrás de un proxy de confianza
    if current_app.config.get("TRUST_PROXY_HEADERS"):
        xff = req.headers.get("X-Forwarded-For")
        if xff:
            return xff.split(",")[0].strip()
    return req.remote_addr or "unknown"


def parse_bool(v) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        vv = v.lower().strip()
        if vv in {"true", "1", "yes"}:
            return True
        if vv in {"false", "0", "no"}:
            return False
    raise ValueError("invalid boolean")


def parse_iso_dt(value: str) -> datetime:
    """
    Acepta ISO 8601 con o sin Z.
    Ej: 2026-01-12T14:00:00Z / 2026-01-12T14:00:00
    """
    v = value.strip()
    if v.endswith("Z"):
        v = v[:-1]
    dt = datetime.fromisoformat(v)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat(dt: datetime | None) -> str | None:
    return dt.isoformat() + "Z" if dt else None
