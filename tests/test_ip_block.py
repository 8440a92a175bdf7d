from datetime import timedelta

import pytest

from trustcore.extensions import db
from trustcore.models import BlockedIP, SecurityEvent
from trustcore.security import ip_block
from trustcore.security.errors import NotFoundError
from trustcore.utils import utcnow


def test_block_then_expire_without_unblock(app):
    ip_block.block_ip("1.2.3.4", "test")
    assert ip_block.is_blocked("1.2.3.4") is True

    row = BlockedIP.query.filter_by(ip="1.2.3.4").one()
    row.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    assert ip_block.is_blocked("1.2.3.4") is False
    # lazy expiry borra la fila
    assert BlockedIP.query.filter_by(ip="1.2.3.4").first() is None
    assert "1.2.3.4" not in [r.ip for r in ip_block.list_active()]


def test_block_is_upsert_and_logs_event(app):
    ip_block.block_ip("5.5.5.5", "first", actor_user_id=None)
    later = utcnow() + timedelta(hours=2)
    ip_block.block_ip("5.5.5.5", "second", expires_at=later)

    rows = BlockedIP.query.filter_by(ip="5.5.5.5").all()
    assert len(rows) == 1
    assert rows[0].reason == "second"
    assert rows[0].expires_at == later

    types = [e.event_type for e in SecurityEvent.query.all()]
    assert types.count("IP_BLOCKED") == 2


def test_unblock_logs_and_unknown_ip_raises(app):
    ip_block.block_ip("9.9.9.9", "manual")
    ip_block.unblock_ip("9.9.9.9")

    assert ip_block.is_blocked("9.9.9.9") is False
    assert SecurityEvent.query.filter_by(event_type="IP_UNBLOCKED").count() == 1

    with pytest.raises(NotFoundError):
        ip_block.unblock_ip("9.9.9.9")


def test_list_active_filters_expired_rows(app):
    ip_block.block_ip("10.0.0.1", "permanent")
    ip_block.block_ip("10.0.0.2", "future", expires_at=utcnow() + timedelta(minutes=5))
    db.session.add(BlockedIP(ip="10.0.0.3", reason="stale", expires_at=utcnow() - timedelta(minutes=5)))
    db.session.commit()

    assert sorted(r.ip for r in ip_block.list_active()) == ["10.0.0.1", "10.0.0.2"]
    assert ip_block.count_active() == 2


def test_sweep_expired_deletes_only_expired(app):
    ip_block.block_ip("10.0.0.1", "permanent")
    db.session.add(BlockedIP(ip="10.0.0.3", reason="stale", expires_at=utcnow() - timedelta(minutes=5)))
    db.session.add(BlockedIP(ip="10.0.0.4", reason="stale", expires_at=utcnow() - timedelta(days=1)))
    db.session.commit()

    assert ip_block.sweep_expired() == 2
    assert [r.ip for r in BlockedIP.query.all()] == ["10.0.0.1"]


def test_blocked_ip_gets_403_from_gate(client, app):
    ip_block.block_ip("127.0.0.1", "test")

    res = client.get("/health")
    assert res.status_code == 403
    assert res.get_json()["error"] == "forbidden"
    assert SecurityEvent.query.filter_by(event_type="BLOCKED_REQUEST").count() == 1


def test_gate_uses_forwarded_ip_only_when_trusted(client, app):
    ip_block.block_ip("203.0.113.7", "test")
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

    assert client.get("/health", headers=headers).status_code == 200

    app.config["TRUST_PROXY_HEADERS"] = True
    assert client.get("/health", headers=headers).status_code == 403


def test_block_when_another_request_inserted_the_same_ip(app, monkeypatch):
    ip_block.block_ip("9.9.9.9", "other worker")

    real_find = ip_block._find
    stale = [True]

    def find(ip):
        # la primera lectura no ve la fila que ya insertó otra request
        if stale:
            stale.pop()
            return None
        return real_find(ip)

    monkeypatch.setattr(ip_block, "_find", find)

    row = ip_block.block_ip("9.9.9.9", "rate limit exceeded on /login")

    assert row.reason == "rate limit exceeded on /login"
    assert BlockedIP.query.filter_by(ip="9.9.9.9").count() == 1
    assert SecurityEvent.query.filter_by(event_type="IP_BLOCKED").count() == 2
