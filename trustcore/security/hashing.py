"""
Dos hashes con propósitos distintos, a propósito en funciones separadas:

- ``hash_credential`` / ``verify_credential``: almacenamiento de passwords,
  historial y recovery codes (salted, lento, vía werkzeug).
- ``breach_lookup_digest``: SHA-1 en hex mayúsculas que exige la API de rangos
  de Pwned Passwords. Nunca se guarda; solo viajan sus 5 primeros caracteres.
"""
from __future__ import annotations

import hashlib
from typing import NewType

from flask import current_app, has_app_context
from werkzeug.security import check_password_hash, generate_password_hash

CredentialHash = NewType("CredentialHash", str)
BreachDigest = NewType("BreachDigest", str)

DEFAULT_METHOD = "scrypt"


def _method() -> str:
    if has_app_context():
        return current_app.config.get("CREDENTIAL_HASH_METHOD", DEFAULT_METHOD)
    return DEFAULT_METHOD


def hash_credential(secret: str) -> CredentialHash:
    return CredentialHash(generate_password_hash(secret, method=_method()))


def verify_credential(stored: CredentialHash | str | None, candidate: str) -> bool:
    if not stored:
        return False
    return check_password_hash(stored, candidate)


def breach_lookup_digest(password: str) -> BreachDigest:
    return BreachDigest(hashlib.sha1(password.encode("utf-8")).hexdigest().upper())
