import pyotp
import pytest

from trustcore.extensions import db
from trustcore.models import SecurityEvent, User
from trustcore.security import two_factor
from trustcore.security.errors import AuthorizationFailed, TwoFactorValidationError
from tests.conftest import ensure_user


def _enable(user_id=1):
    data = two_factor.generate_secret(user_id)
    codes = two_factor.enable(user_id, data["secret"], pyotp.TOTP(data["secret"]).now())
    return data["secret"], codes


def test_generate_secret_returns_provisioning_artifacts(app):
    ensure_user(1)
    data = two_factor.generate_secret(1)

    assert len(data["secret"]) >= 16
    assert data["otpauth_url"].startswith("otpauth://totp/")
    assert "user1%40test.local" in data["otpauth_url"] or "user1@test.local" in data["otpauth_url"]
    assert data["qr_code"].startswith("data:image/svg+xml;base64,")

    # generar no activa nada
    assert db.session.get(User, 1).two_factor_enabled is False


def test_enable_issues_eight_distinct_codes(app):
    ensure_user(1)
    secret, codes = _enable()

    assert len(codes) == 8
    assert len(set(codes)) == 8
    assert secret not in codes
    assert all(len(c) == 9 and c[4] == "-" for c in codes)

    user = db.session.get(User, 1)
    assert user.two_factor_enabled is True
    assert user.two_factor_secret == secret
    # solo se guardan hashes
    assert len(user.recovery_code_hashes) == 8
    assert not set(codes) & set(user.recovery_code_hashes)
    assert SecurityEvent.query.filter_by(event_type="TWO_FA_ENABLED").count() == 1


def test_enable_with_bad_token_persists_nothing(app):
    ensure_user(1)
    data = two_factor.generate_secret(1)

    with pytest.raises(TwoFactorValidationError):
        # código de 1970: fuera de la ventana de ±2 pasos
        two_factor.enable(1, data["secret"], pyotp.TOTP(data["secret"]).at(0))

    user = db.session.get(User, 1)
    assert user.two_factor_enabled is False
    assert user.two_factor_secret is None
    assert SecurityEvent.query.filter_by(event_type="TWO_FA_ENABLED").count() == 0


def test_enable_with_malformed_secret_is_a_validation_error(app):
    ensure_user(1)

    with pytest.raises(TwoFactorValidationError):
        two_factor.enable(1, "not base32!!", "123456")

    user = db.session.get(User, 1)
    assert user.two_factor_enabled is False
    assert user.two_factor_secret is None


def test_recovery_code_is_single_use(app):
    ensure_user(1)
    _, codes = _enable()

    assert two_factor.verify(1, codes[0]) is True
    assert two_factor.verify(1, codes[0]) is False
    # lower-case también vale
    assert two_factor.verify(1, codes[1].lower()) is True
    assert len(db.session.get(User, 1).recovery_code_hashes) == 6


def test_verify_totp_and_garbage(app):
    ensure_user(1)
    secret, _ = _enable()

    assert two_factor.verify(1, pyotp.TOTP(secret).now()) is True
    assert two_factor.verify(1, "not-a-code") is False
    assert two_factor.verify(999, "123456") is False


def test_disable_requires_password(app):
    ensure_user(1, password="Test1234!")
    _enable()

    with pytest.raises(AuthorizationFailed):
        two_factor.disable(1, "wrong")
    assert db.session.get(User, 1).two_factor_enabled is True

    two_factor.disable(1, "Test1234!")
    user = db.session.get(User, 1)
    assert user.two_factor_enabled is False
    assert user.two_factor_secret is None
    assert user.recovery_code_hashes is None
    assert SecurityEvent.query.filter_by(event_type="TWO_FA_DISABLED").count() == 1
