from __future__ import annotations

import base64
import binascii
import io
import secrets

import pyotp
import qrcode
import qrcode.image.svg
from flask import current_app

from trustcore.extensions import db
from trustcore.models.security_event import SecurityEventType
from trustcore.models.user import User
from trustcore.security.errors import AuthorizationFailed, NotFoundError, TwoFactorValidationError
from trustcore.security.hashing import hash_credential, verify_credential
from trustcore.security.security_events import record_security_event

RECOVERY_CODE_COUNT = 8
# ±2 pasos de 30s para tolerar drift de reloj
TOTP_VALID_WINDOW = 2

_RECOVERY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _totp_ok(secret: str, token: str) -> bool:
    token = (token or "").strip().replace(" ", "")
    if not token.isdigit():
        return False
    try:
        return pyotp.TOTP(secret).verify(token, valid_window=TOTP_VALID_WINDOW)
    except (binascii.Error, ValueError):
        # secret que no es base32 válido
        return False


def _qr_data_url(uri: str) -> str:
    img = qrcode.make(uri, image_factory=qrcode.image.svg.SvgPathImage)
    buf = io.BytesIO()
    img.save(buf)
    return "data:image/svg+xml;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def generate_recovery_codes(count: int = RECOVERY_CODE_COUNT) -> list[str]:
    """Códigos tipo XXXX-XXXX, distintos entre sí."""
    codes: set[str] = set()
    while len(codes) < count:
        raw = "".join(secrets.choice(_RECOVERY_ALPHABET) for _ in range(8))
        codes.add(f"{raw[:4]}-{raw[4:]}")
    return sorted(codes)


def generate_secret(user_id: int) -> dict:
    user = _get_user(user_id)

    secret = pyotp.random_base32()
    uri = pyotp.TOTP(secret).provisioning_uri(
        name=user.email,
        issuer_name=current_app.config.get("TWO_FACTOR_ISSUER", "Trustcore"),
    )

    return {
        "secret": secret,
        "otpauth_url": uri,
        "qr_code": _qr_data_url(uri),
    }


def enable(user_id: int, secret: str, token: str, ip: str | None = None) -> list[str]:
    """
    Verifica el token contra el secret antes de guardar nada.
    Devuelve los recovery codes en claro: única vez que se ven.
    """
    user = _get_user(user_id)

    if not secret or not _totp_ok(secret, token):
        raise TwoFactorValidationError("Invalid verification code")

    codes = generate_recovery_codes()

    user.two_factor_enabled = True
    user.two_factor_secret = secret
    user.recovery_code_hashes = [hash_credential(c) for c in codes]
    db.session.commit()

    record_security_event(
        event_type=SecurityEventType.TWO_FA_ENABLED,
        user_id=user.id,
        ip=ip,
    )
    return codes


def disable(user_id: int, password: str, ip: str | None = None) -> None:
    user = _get_user(user_id)

    if not user.check_password(password or ""):
        raise AuthorizationFailed()

    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.recovery_code_hashes = None
    db.session.commit()

    record_security_event(
        event_type=SecurityEventType.TWO_FA_DISABLED,
        user_id=user.id,
        ip=ip,
    )


def verify(user_id: int, token: str) -> bool:
    """TOTP primero; si falla, recovery codes (de un solo uso)."""
    user = db.session.get(User, user_id)
    if user is None or not user.two_factor_secret:
        return False

    if _totp_ok(user.two_factor_secret, token):
        return True

    candidate = (token or "").strip().upper()
    hashes = list(user.recovery_code_hashes or [])
    for stored in hashes:
        if verify_credential(stored, candidate):
            hashes.remove(stored)
            # lista nueva: el JSON column no detecta mutaciones in-place
            user.recovery_code_hashes = hashes
            db.session.commit()
            return True

    return False
