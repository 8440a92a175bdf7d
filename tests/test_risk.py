from datetime import timedelta

from trustcore.extensions import db
from trustcore.models import SecurityEvent, SecurityEventType
from trustcore.security import ip_block, risk
from trustcore.security.risk import FAIL, PASS, WARNING, CheckResult
from trustcore.security.security_events import record_security_event
from trustcore.utils import utcnow
from tests.conftest import ensure_user


def _statuses(result):
    return {c["name"]: c["status"] for c in result["checks"]}


def test_risk_level_reduction():
    def c(status):
        return CheckResult("x", status, "")

    assert risk.risk_level([c(PASS)] * 6) == "low"
    assert risk.risk_level([c(WARNING), c(PASS)]) == "low"
    assert risk.risk_level([c(WARNING), c(WARNING)]) == "medium"
    assert risk.risk_level([c(FAIL), c(PASS)]) == "medium"
    assert risk.risk_level([c(FAIL), c(FAIL)]) == "high"


def test_no_https_no_admins_is_high(app):
    result = risk.run_security_checks(is_https=False)

    statuses = _statuses(result)
    assert statuses["HTTPS"] == FAIL
    assert statuses["2FA for Admins"] == FAIL
    assert result["risk_level"] == "high"


def test_admin_2fa_partial_is_warning(app):
    a = ensure_user(1, role="admin")
    ensure_user(2, role="admin")
    a.two_factor_enabled = True
    db.session.commit()

    result = risk.run_security_checks(is_https=True)
    assert _statuses(result)["2FA for Admins"] == WARNING
    assert result["risk_level"] == "low"


def test_all_green_is_low(app):
    admin = ensure_user(1, role="admin")
    admin.two_factor_enabled = True
    db.session.commit()

    result = risk.run_security_checks(actor_user_id=1, is_https=True)

    assert set(_statuses(result).values()) == {PASS}
    assert result["risk_level"] == "low"
    assert result["summary"]["two_factor_enabled"] is True
    assert SecurityEvent.query.filter_by(event_type="SECURITY_CHECK").count() == 1


def test_default_admin_and_lockouts(app):
    admin = ensure_user(1, role="admin", email="admin@example.com")
    admin.two_factor_enabled = True
    locked = ensure_user(2)
    locked.account_locked_until = utcnow() + timedelta(minutes=10)
    db.session.commit()

    app.config["FAILED_LOGIN_WARNING_THRESHOLD"] = 2
    for _ in range(3):
        record_security_event(event_type=SecurityEventType.FAILED_LOGIN)

    result = risk.run_security_checks(is_https=True)
    statuses = _statuses(result)
    assert statuses["Default Admin Account"] == FAIL
    assert statuses["Failed Login Attempts"] == WARNING
    assert statuses["Locked Accounts"] == WARNING
    assert result["risk_level"] == "medium"


def test_missing_security_headers_warns(app):
    app.config["SECURITY_HEADERS"] = ()
    result = risk.run_security_checks(is_https=True)
    assert _statuses(result)["Security Headers"] == WARNING
    assert result["summary"]["security_headers_ok"] is False


def test_dashboard_overview(app):
    ensure_user(1, role="admin")
    record_security_event(event_type=SecurityEventType.FAILED_LOGIN)
    old = record_security_event(event_type=SecurityEventType.FAILED_LOGIN)
    old.created_at = utcnow() - timedelta(days=3)
    record_security_event(event_type=SecurityEventType.SUCCESS_LOGIN, user_id=1, ip="4.4.4.4")
    ip_block.block_ip("6.6.6.6", "test")
    db.session.commit()

    overview = risk.dashboard_overview(1)

    assert overview["failed_logins_24h"] == 1
    assert overview["failed_logins_7d"] == 2
    assert overview["blocked_ips"] == 1
    assert overview["last_login"]["ip"] == "4.4.4.4"
    assert risk.dashboard_overview(None)["last_login"] is None
