from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from flask import Flask, current_app

from trustcore.extensions import db
from trustcore.models.rate_limit import GLOBAL_ENDPOINT, RateLimitConfig, RateLimitViolation
from trustcore.security import ip_block
from trustcore.security.errors import NotFoundError
from trustcore.security.rate_ledger import RateLedger, build_ledger
from trustcore.utils import utcnow

EXTENSION_KEY = "trustcore.rate_ledger"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int | None = None


class RateLimiter:
    """
    Sliding-window log por (ip, endpoint).

    El ledger vive en ``app.extensions`` (uno por app); la config se lee de la
    DB en cada check, así que un cambio aplica en la siguiente request.
    """

    def __init__(self, app: Flask | None = None, clock: Callable[[], float] = time.time):
        self.clock = clock
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask, ledger: RateLedger | None = None) -> None:
        backend = app.config.get("RATE_LIMIT_BACKEND", "memory")
        app.extensions[EXTENSION_KEY] = ledger or build_ledger(backend)

    @property
    def ledger(self) -> RateLedger:
        return current_app.extensions[EXTENSION_KEY]

    # -----------------------
    # admission
    # -----------------------
    def check(self, ip: str, endpoint: str) -> RateLimitResult:
        config = get_config(endpoint)
        if config is None or not config.enabled:
            return RateLimitResult(allowed=True)

        window_sec = config.window_ms / 1000.0
        count = self.ledger.record(ip, endpoint, self.clock(), window_sec)

        # la request que lleva el conteo a max+1 es la primera rechazada
        if count <= config.max_requests:
            return RateLimitResult(allowed=True)

        _log_violation(ip, endpoint, count, config.max_requests)

        if config.block_duration_minutes:
            # dos escrituras independientes (violación + bloqueo), no atómicas
            ip_block.block_ip(
                ip,
                f"rate limit exceeded on {endpoint}",
                expires_at=utcnow() + timedelta(minutes=config.block_duration_minutes),
            )

        return RateLimitResult(allowed=False, retry_after_seconds=math.ceil(config.window_ms / 1000))

    def collect_garbage(self) -> int:
        max_idle = current_app.config.get("RATE_LEDGER_MAX_IDLE_SECONDS", 3600)
        return self.ledger.collect_garbage(self.clock(), max_idle)


def _log_violation(ip: str, endpoint: str, count: int, limit: int) -> None:
    current_app.logger.info(
        "RATE LIMIT exceeded: ip=%s endpoint=%s count=%s limit=%s", ip, endpoint, count, limit
    )
    db.session.add(RateLimitViolation(ip=ip, endpoint=endpoint, request_count=count, limit=limit))
    db.session.commit()


# -----------------------
# config (admin)
# -----------------------
def get_config(endpoint: str) -> RateLimitConfig | None:
    config = RateLimitConfig.query.filter_by(endpoint=endpoint).first()
    if config is None:
        config = RateLimitConfig.query.filter_by(endpoint=GLOBAL_ENDPOINT).first()
    return config


def list_configs() -> list[RateLimitConfig]:
    return RateLimitConfig.query.order_by(RateLimitConfig.endpoint.asc()).all()


def upsert_config(
    *,
    endpoint: str,
    window_ms: int,
    max_requests: int,
    enabled: bool = True,
    block_duration_minutes: int | None = None,
) -> RateLimitConfig:
    endpoint = endpoint.strip()
    if not endpoint:
        raise ValueError("endpoint is required")
    if window_ms <= 0:
        raise ValueError("window_ms must be > 0")
    if max_requests < 0:
        raise ValueError("max_requests must be >= 0")
    if block_duration_minutes is not None and block_duration_minutes < 0:
        raise ValueError("block_duration_minutes must be >= 0")

    config = RateLimitConfig.query.filter_by(endpoint=endpoint).first()
    if config is None:
        config = RateLimitConfig(endpoint=endpoint)
        db.session.add(config)

    config.window_ms = window_ms
    config.max_requests = max_requests
    config.enabled = enabled
    config.block_duration_minutes = block_duration_minutes or None
    db.session.commit()
    return config


def delete_config(endpoint: str) -> None:
    config = RateLimitConfig.query.filter_by(endpoint=endpoint).first()
    if config is None:
        raise NotFoundError(f"No rate limit config for {endpoint}")
    db.session.delete(config)
    db.session.commit()


def list_violations(limit: int = 100) -> list[RateLimitViolation]:
    return (
        RateLimitViolation.query.order_by(
            RateLimitViolation.created_at.desc(), RateLimitViolation.id.desc()
        )
        .limit(max(1, limit))
        .all()
    )


rate_limiter = RateLimiter()
