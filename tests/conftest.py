import os
import sys

# Ensure project root is on PYTHONPATH
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from sqlalchemy.pool import StaticPool

from trustcore.extensions import db
from trustcore.models.user import User
from trustcore.security import sessions


@pytest.fixture()
def app():
    from trustcore import create_app

    config_overrides = {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SQLALCHEMY_ENGINE_OPTIONS": {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        },
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "SECRET_KEY": "test-secret",
        "SCHEDULER_ENABLED": False,
        "SECURITY_GATE_ENABLED": True,
        # hash rápido en tests
        "CREDENTIAL_HASH_METHOD": "pbkdf2:sha256:1000",
    }

    # ✅ IMPORTANT: pass overrides INTO create_app
    app = create_app(config_overrides=config_overrides)

    with app.app_context():
        db.drop_all()
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def fake_clock(monkeypatch):
    """Reloj del rate limiter controlable: clock[0] = epoch seconds."""
    from trustcore.security.rate_limit import rate_limiter

    clock = [1_000_000.0]
    monkeypatch.setattr(rate_limiter, "clock", lambda: clock[0])
    return clock


def ensure_user(
    user_id: int,
    role: str = "reader",
    is_active: bool = True,
    password: str = "Test1234!",
    email: str | None = None,
):
    user = db.session.get(User, user_id)
    if user is None:
        user = User(
            id=user_id,
            email=email or f"user{user_id}@test.local",
            username=f"user{user_id}",
            role=role,
            is_active=is_active,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
    else:
        user.role = role
        user.is_active = is_active
        db.session.commit()
    return user


def login_session(client, user_id=1, role="reader"):
    ensure_user(user_id, role=role, is_active=True)
    row = sessions.create_session(user_id, ip="127.0.0.1", user_agent="pytest")
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["role"] = role
        sess["sid"] = row.id
    return row
