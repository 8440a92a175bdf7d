from __future__ import annotations

from dataclasses import asdict, dataclass

from flask import current_app

from trustcore.models.security_event import SecurityEventType
from trustcore.models.user import User
from trustcore.security import ip_block
from trustcore.security.security_events import last_successful_login, record_security_event, statistics
from trustcore.utils import isoformat

PASS, WARNING, FAIL = "pass", "warning", "fail"

# headers que tiene que haber sí o sí para que el check pase
REQUIRED_HEADERS = ("X-Content-Type-Options", "X-Frame-Options")


@dataclass
class CheckResult:
    name: str
    status: str
    message: str
    details: str = ""


def _https_check(is_https: bool) -> CheckResult:
    if is_https:
        return CheckResult("HTTPS", PASS, "HTTPS is enabled",
                           "Your site is using secure HTTPS connections")
    return CheckResult("HTTPS", FAIL, "HTTPS is not enabled",
                       "Enable HTTPS to encrypt data in transit")


def _admin_2fa_check() -> tuple[CheckResult, bool]:
    admins = User.query.filter_by(role="admin").all()
    without = sum(1 for a in admins if not a.two_factor_enabled)
    all_enabled = bool(admins) and without == 0

    if all_enabled:
        status = PASS
        message = "All admin accounts have 2FA enabled"
    else:
        # sin admins cuenta como "ninguno lo tiene"
        status = FAIL if without == len(admins) else WARNING
        message = f"{without} of {len(admins)} admin accounts don't have 2FA"

    return (
        CheckResult("2FA for Admins", status, message,
                    "Two-factor authentication adds an extra layer of security"),
        all_enabled,
    )


def _default_admin_check() -> tuple[CheckResult, bool]:
    email = current_app.config.get("DEFAULT_ADMIN_EMAIL", "admin@example.com")
    exists = User.query.filter_by(email=email, role="admin").first() is not None
    if exists:
        return CheckResult("Default Admin Account", FAIL, "Default admin account still exists",
                           "Change the default admin email to something unique"), True
    return CheckResult("Default Admin Account", PASS, "No default admin account found",
                       "Default credentials have been changed"), False


def _failed_logins_check(stats: dict) -> CheckResult:
    threshold = current_app.config.get("FAILED_LOGIN_WARNING_THRESHOLD", 50)
    n = stats["failed_logins"]
    if n > threshold:
        return CheckResult("Failed Login Attempts", WARNING,
                           f"{n} failed login attempts in the last 24 hours",
                           "High number of failed logins detected. Monitor for brute force attacks.")
    return CheckResult("Failed Login Attempts", PASS,
                       f"{n} failed login attempts in the last 24 hours",
                       "Normal level of failed login attempts")


def _locked_accounts_check(stats: dict) -> CheckResult:
    n = stats["locked_accounts"]
    if n > 0:
        return CheckResult("Locked Accounts", WARNING, f"{n} accounts currently locked",
                           "Some accounts are locked due to failed login attempts")
    return CheckResult("Locked Accounts", PASS, "No accounts are currently locked")


def _security_headers_check() -> tuple[CheckResult, bool]:
    configured = dict(current_app.config.get("SECURITY_HEADERS") or ())
    missing = [h for h in REQUIRED_HEADERS if not configured.get(h)]
    if missing:
        return CheckResult("Security Headers", WARNING,
                           f"Missing security headers: {', '.join(missing)}",
                           "Configure SECURITY_HEADERS with the baseline headers"), False
    return CheckResult("Security Headers", PASS, "Baseline security headers are configured",
                       ", ".join(sorted(configured))), True


def risk_level(checks: list[CheckResult]) -> str:
    fails = sum(1 for c in checks if c.status == FAIL)
    warnings = sum(1 for c in checks if c.status == WARNING)
    if fails >= 2:
        return "high"
    if fails == 1 or warnings >= 2:
        return "medium"
    return "low"


def run_security_checks(actor_user_id: int | None = None, is_https: bool = False) -> dict:
    stats = statistics(24)

    admin_2fa, all_2fa = _admin_2fa_check()
    default_admin, default_admin_exists = _default_admin_check()
    headers, headers_ok = _security_headers_check()

    checks = [
        _https_check(is_https),
        admin_2fa,
        default_admin,
        _failed_logins_check(stats),
        _locked_accounts_check(stats),
        headers,
    ]
    level = risk_level(checks)

    if actor_user_id is not None:
        record_security_event(
            event_type=SecurityEventType.SECURITY_CHECK,
            user_id=actor_user_id,
            details={
                "risk_level": level,
                "fail_count": sum(1 for c in checks if c.status == FAIL),
                "warning_count": sum(1 for c in checks if c.status == WARNING),
            },
        )

    return {
        "risk_level": level,
        "checks": [asdict(c) for c in checks],
        "summary": {
            "two_factor_enabled": all_2fa,
            "https_enabled": is_https,
            "security_headers_ok": headers_ok,
            "default_admin_exists": default_admin_exists,
        },
    }


def dashboard_overview(user_id: int | None = None) -> dict:
    stats_24h = statistics(24)
    stats_7d = statistics(24 * 7)

    last_login = last_successful_login(user_id) if user_id is not None else None

    return {
        "failed_logins_24h": stats_24h["failed_logins"],
        "failed_logins_7d": stats_7d["failed_logins"],
        "locked_accounts": stats_24h["locked_accounts"],
        "blocked_requests_24h": stats_24h["blocked_requests"],
        "blocked_ips": ip_block.count_active(),
        "last_login": (
            {"created_at": isoformat(last_login["created_at"]), "ip": last_login["ip"]}
            if last_login
            else None
        ),
    }
