import os
from dataclasses import dataclass


def _bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None or not value.strip():
        return default
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _project_root() -> str:
    # trustcore/ -> proyecto/
    return os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def _default_sqlite_uri() -> str:
    instance_dir = os.path.join(_project_root(), "instance")
    os.makedirs(instance_dir, exist_ok=True)
    db_path = os.path.join(instance_dir, "trustcore.db")
    return "sqlite:///" + db_path


DEFAULT_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@dataclass(frozen=True)
class BaseConfig:
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-change-me")
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL", _default_sqlite_uri())
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False

    SESSION_COOKIE_HTTPONLY: bool = True
    SESSION_COOKIE_SAMESITE: str = "Lax"
    SESSION_COOKIE_SECURE: bool = _bool(os.getenv("SESSION_COOKIE_SECURE"), default=False)

    # gate (ip block + rate limit) delante de cada request
    SECURITY_GATE_ENABLED: bool = _bool(os.getenv("SECURITY_GATE_ENABLED"), default=True)
    TRUST_PROXY_HEADERS: bool = _bool(os.getenv("TRUST_PROXY_HEADERS"), default=False)

    # "memory" (una instancia) | "database" (varias instancias, misma DB)
    RATE_LIMIT_BACKEND: str = os.getenv("RATE_LIMIT_BACKEND", "memory")
    RATE_LEDGER_GC_SECONDS: int = _int(os.getenv("RATE_LEDGER_GC_SECONDS"), 60)
    RATE_LEDGER_MAX_IDLE_SECONDS: int = _int(os.getenv("RATE_LEDGER_MAX_IDLE_SECONDS"), 3600)

    SCHEDULER_ENABLED: bool = _bool(os.getenv("SCHEDULER_ENABLED"), default=True)
    BLOCK_SWEEP_SECONDS: int = _int(os.getenv("BLOCK_SWEEP_SECONDS"), 300)
    SESSION_SWEEP_SECONDS: int = _int(os.getenv("SESSION_SWEEP_SECONDS"), 900)

    SESSION_TTL_HOURS: int = _int(os.getenv("SESSION_TTL_HOURS"), 24)

    LOGIN_LOCKOUT_THRESHOLD: int = _int(os.getenv("LOGIN_LOCKOUT_THRESHOLD"), 5)
    LOGIN_LOCKOUT_WINDOW_MINUTES: int = _int(os.getenv("LOGIN_LOCKOUT_WINDOW_MINUTES"), 15)
    LOGIN_LOCKOUT_MINUTES: int = _int(os.getenv("LOGIN_LOCKOUT_MINUTES"), 15)

    # hash de credenciales (passwords, historial, recovery codes)
    CREDENTIAL_HASH_METHOD: str = os.getenv("CREDENTIAL_HASH_METHOD", "scrypt")

    TWO_FACTOR_ISSUER: str = os.getenv("TWO_FACTOR_ISSUER", "Trustcore")

    BREACH_API_URL: str = os.getenv("BREACH_API_URL", "https://api.pwnedpasswords.com/range")
    BREACH_API_TIMEOUT: int = _int(os.getenv("BREACH_API_TIMEOUT"), 5)

    INTEGRITY_BASE_DIR: str = os.getenv("INTEGRITY_BASE_DIR", _project_root())
    INTEGRITY_MONITORED_PATHS: tuple[str, ...] = _list(
        os.getenv("INTEGRITY_MONITORED_PATHS"), ("trustcore", "migrations")
    )
    INTEGRITY_EXCLUDED_DIRS: tuple[str, ...] = (
        "node_modules", "dist", "build", "uploads", "instance", "__pycache__", "venv",
    )

    DEFAULT_ADMIN_EMAIL: str = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@example.com")
    FAILED_LOGIN_WARNING_THRESHOLD: int = _int(os.getenv("FAILED_LOGIN_WARNING_THRESHOLD"), 50)

    # pares (header, valor); after_request los aplica a cada respuesta
    SECURITY_HEADERS: tuple[tuple[str, str], ...] = tuple(DEFAULT_SECURITY_HEADERS.items())


class DevelopmentConfig(BaseConfig):
    DEBUG: bool = True


class ProductionConfig(BaseConfig):
    DEBUG: bool = False
    SESSION_COOKIE_SECURE: bool = True
    TRUST_PROXY_HEADERS: bool = _bool(os.getenv("TRUST_PROXY_HEADERS"), default=True)


def get_config():
    env = os.getenv("FLASK_ENV", "development").lower()
    if env == "production":
        return ProductionConfig
    return DevelopmentConfig
