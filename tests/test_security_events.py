from datetime import timedelta

import pytest

from trustcore.extensions import db
from trustcore.models import SecurityEvent, SecurityEventType
from trustcore.security import security_events
from trustcore.security.security_events import record_security_event
from trustcore.utils import utcnow
from tests.conftest import ensure_user


def _event(event_type, user_id=None, ip=None, age=timedelta(0)):
    ev = record_security_event(event_type=event_type, user_id=user_id, ip=ip)
    if age:
        ev.created_at = utcnow() - age
        db.session.commit()
    return ev


def test_query_filters_and_pagination(app):
    ensure_user(1)
    for i in range(5):
        _event(SecurityEventType.FAILED_LOGIN, user_id=1, ip="1.1.1.1", age=timedelta(minutes=i))
    _event(SecurityEventType.SUCCESS_LOGIN, user_id=1, ip="2.2.2.2")
    _event("IP_BLOCKED", ip="3.3.3.3", age=timedelta(days=3))

    events, total = security_events.query_events(limit=2, offset=0, event_type="FAILED_LOGIN")
    assert total == 5
    assert len(events) == 2
    # más nuevo primero
    assert events[0].created_at >= events[1].created_at

    _, total = security_events.query_events(ip="2.2.2.2")
    assert total == 1

    _, total = security_events.query_events(start=utcnow() - timedelta(days=1))
    assert total == 6

    _, total = security_events.query_events(end=utcnow() - timedelta(days=1))
    assert total == 1


def test_unknown_event_type_is_rejected(app):
    with pytest.raises(ValueError):
        record_security_event(event_type="NOPE")


def test_recent_failed_logins_by_email_and_ip(app):
    ensure_user(1)
    _event(SecurityEventType.FAILED_LOGIN, user_id=1, ip="5.5.5.5")
    _event(SecurityEventType.FAILED_LOGIN, user_id=1, ip="5.5.5.5")
    _event(SecurityEventType.FAILED_LOGIN, user_id=1, ip="5.5.5.5", age=timedelta(hours=1))
    _event(SecurityEventType.FAILED_LOGIN, ip="5.5.5.5")

    assert security_events.recent_failed_logins(email="USER1@test.local", minutes=15) == 2
    assert security_events.recent_failed_logins(ip="5.5.5.5", minutes=15) == 3
    assert security_events.recent_failed_logins(email="ghost@test.local") == 0

    with pytest.raises(ValueError):
        security_events.recent_failed_logins()


def test_statistics_window(app):
    user = ensure_user(1)
    user.account_locked_until = utcnow() + timedelta(minutes=5)
    db.session.commit()

    _event(SecurityEventType.FAILED_LOGIN)
    _event(SecurityEventType.FAILED_LOGIN, age=timedelta(days=2))
    _event(SecurityEventType.BLOCKED_REQUEST)

    assert security_events.statistics(24) == {
        "failed_logins": 1,
        "locked_accounts": 1,
        "blocked_requests": 1,
    }
    assert security_events.statistics(24 * 7)["failed_logins"] == 2


def test_events_are_append_only_rows(app):
    _event(SecurityEventType.INTEGRITY_SCAN)
    assert SecurityEvent.query.count() == 1
    assert SecurityEvent.query.one().details == {}
