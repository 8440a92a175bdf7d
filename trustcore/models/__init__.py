from .user import User
from .security_event import SecurityEvent, SecurityEventType
from .blocked_ip import BlockedIP
from .rate_limit import RateLimitConfig, RateLimitViolation, RateLedgerHit
from .password_policy import PasswordPolicy, PasswordHistoryEntry
from .user_session import UserSession
from .integrity_baseline import IntegrityBaseline


__all__ = [
    "User",
    "SecurityEvent",
    "SecurityEventType",
    "BlockedIP",
    "RateLimitConfig",
    "RateLimitViolation",
    "RateLedgerHit",
    "PasswordPolicy",
    "PasswordHistoryEntry",
    "UserSession",
    "IntegrityBaseline",
]
