"""Timers en background (fuera del path de request): gc del ledger y sweeps."""
from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask

from trustcore.security import ip_block, sessions
from trustcore.security.rate_limit import rate_limiter

logger = logging.getLogger(__name__)


def _in_app_context(app: Flask, fn, name: str):
    def job():
        with app.app_context():
            try:
                result = fn()
            except Exception:
                logger.exception("scheduled job failed: %s", name)
                return
            if result:
                logger.info("scheduled job %s: %s", name, result)

    return job


def init_scheduler(app: Flask) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(daemon=True)

    scheduler.add_job(
        _in_app_context(app, rate_limiter.collect_garbage, "rate_ledger_gc"),
        "interval",
        seconds=app.config.get("RATE_LEDGER_GC_SECONDS", 60),
        id="rate_ledger_gc",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        _in_app_context(app, ip_block.sweep_expired, "blocked_ip_sweep"),
        "interval",
        seconds=app.config.get("BLOCK_SWEEP_SECONDS", 300),
        id="blocked_ip_sweep",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        _in_app_context(app, sessions.sweep_expired, "session_sweep"),
        "interval",
        seconds=app.config.get("SESSION_SWEEP_SECONDS", 900),
        id="session_sweep",
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    app.extensions["trustcore.scheduler"] = scheduler
    app.logger.info("security scheduler started")
    return scheduler
