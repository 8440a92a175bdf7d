from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta

import requests
from flask import current_app

from trustcore.extensions import db
from trustcore.models.password_policy import PasswordHistoryEntry, PasswordPolicy
from trustcore.security.hashing import CredentialHash, breach_lookup_digest, verify_credential
from trustcore.utils import parse_bool, utcnow

SPECIAL_CHARS_RE = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?`~]""")

# defaults al crear/reemplazar la policy
POLICY_DEFAULTS = {
    "min_length": 8,
    "require_upper": True,
    "require_lower": True,
    "require_digit": True,
    "require_special": True,
    "expiration_days": None,
    "prevent_reuse": 5,
    "check_breached": False,
    "enabled": True,
}

_INT_FIELDS = {"min_length", "expiration_days", "prevent_reuse"}


def _as_int(name: str, v) -> int:
    # bool es subclase de int: true no es un largo válido
    if isinstance(v, bool):
        raise ValueError(f"{name} must be an integer")
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer") from None


def _coerce(name: str, v):
    if v is None:
        return None
    if name in _INT_FIELDS:
        return _as_int(name, v)
    try:
        return parse_bool(v)
    except ValueError:
        raise ValueError(f"{name} must be a boolean") from None


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": self.errors}


def get_policy() -> PasswordPolicy | None:
    return PasswordPolicy.query.order_by(PasswordPolicy.id.desc()).first()


def update_policy(**changes) -> PasswordPolicy:
    """Reemplaza la fila activa entera (no se guardan versiones previas)."""
    unknown = set(changes) - set(POLICY_DEFAULTS)
    if unknown:
        raise ValueError(f"unknown policy fields: {', '.join(sorted(unknown))}")

    values = dict(POLICY_DEFAULTS)
    values.update(
        {k: _coerce(k, v) for k, v in changes.items() if v is not None or k == "expiration_days"}
    )

    if values["min_length"] < 1:
        raise ValueError("min_length must be >= 1")
    if values["prevent_reuse"] < 0:
        raise ValueError("prevent_reuse must be >= 0")
    if values["expiration_days"] is not None and values["expiration_days"] < 1:
        raise ValueError("expiration_days must be >= 1")

    PasswordPolicy.query.delete(synchronize_session=False)
    policy = PasswordPolicy(**values)
    db.session.add(policy)
    db.session.commit()
    return policy


def validate(password: str, user_id: int | None = None) -> ValidationResult:
    """
    Evalúa todas las reglas y acumula los errores (no corta en el primero),
    así el usuario ve todo lo que tiene que corregir de una vez.
    """
    policy = get_policy()
    if policy is None or not policy.enabled:
        return ValidationResult(valid=True)

    errors: list[str] = []

    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")

    if policy.require_upper and not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")

    if policy.require_lower and not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")

    if policy.require_digit and not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")

    if policy.require_special and not SPECIAL_CHARS_RE.search(password):
        errors.append("Password must contain at least one special character")

    if user_id is not None and policy.prevent_reuse > 0:
        if is_reused(user_id, password, policy.prevent_reuse):
            errors.append(f"Password cannot be one of your last {policy.prevent_reuse} passwords")

    if policy.check_breached and is_breached(password):
        errors.append(
            "This password has been found in a data breach. Please choose a different password"
        )

    return ValidationResult(valid=not errors, errors=errors)


def _recent_history(user_id: int, count: int) -> list[PasswordHistoryEntry]:
    return (
        PasswordHistoryEntry.query.filter_by(user_id=user_id)
        .order_by(PasswordHistoryEntry.created_at.desc(), PasswordHistoryEntry.id.desc())
        .limit(count)
        .all()
    )


def is_reused(user_id: int, password: str, count: int) -> bool:
    for entry in _recent_history(user_id, count):
        if verify_credential(entry.password_hash, password):
            return True
    return False


def is_breached(password: str) -> bool:
    """
    Lookup k-anonymity: solo se envían los 5 primeros caracteres del digest.
    Timeout o error de red => fail open (se considera no filtrada).
    """
    digest = breach_lookup_digest(password)
    prefix, suffix = digest[:5], digest[5:]

    url = f"{current_app.config['BREACH_API_URL'].rstrip('/')}/{prefix}"
    timeout = current_app.config.get("BREACH_API_TIMEOUT", 5)

    try:
        resp = requests.get(url, timeout=timeout, headers={"Add-Padding": "true"})
        resp.raise_for_status()
    except requests.RequestException as e:
        current_app.logger.warning("breach lookup unavailable, failing open: %s", e)
        return False

    for line in resp.text.splitlines():
        hash_suffix, _, count = line.strip().partition(":")
        if hash_suffix.upper() != suffix:
            continue
        # con Add-Padding la API devuelve sufijos falsos con count 0
        return count.strip() != "0"

    return False


def add_to_history(user_id: int, password_hash: CredentialHash | str) -> None:
    """Añade y recorta al número de entradas que pide ``prevent_reuse``."""
    db.session.add(PasswordHistoryEntry(user_id=user_id, password_hash=password_hash))
    db.session.flush()

    policy = get_policy()
    if policy is None or policy.prevent_reuse <= 0:
        db.session.commit()
        return

    stale = (
        PasswordHistoryEntry.query.filter_by(user_id=user_id)
        .order_by(PasswordHistoryEntry.created_at.desc(), PasswordHistoryEntry.id.desc())
        .offset(policy.prevent_reuse)
        .all()
    )
    for entry in stale:
        db.session.delete(entry)
    db.session.commit()


def is_expired(user_id: int) -> bool:
    policy = get_policy()
    if policy is None or not policy.enabled or not policy.expiration_days:
        return False

    latest = (
        PasswordHistoryEntry.query.filter_by(user_id=user_id)
        .order_by(PasswordHistoryEntry.created_at.desc(), PasswordHistoryEntry.id.desc())
        .first()
    )
    if latest is None:
        return False

    return utcnow() > latest.created_at + timedelta(days=policy.expiration_days)
