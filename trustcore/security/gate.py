from __future__ import annotations

from flask import Request, current_app, jsonify

from trustcore.models.security_event import SecurityEventType
from trustcore.security import ip_block
from trustcore.security.rate_limit import rate_limiter
from trustcore.security.security_events import record_security_event
from trustcore.utils import client_ip


def gate_request(req: Request):
    """
    IP block primero, luego rate limit.
    Devuelve None (seguir) o una respuesta terminal 403 / 429.
    """
    ip = client_ip(req)
    endpoint = req.path

    if ip_block.is_blocked(ip):
        current_app.logger.info("GATE DENY 403: blocked ip=%s path=%s", ip, endpoint)
        record_security_event(
            event_type=SecurityEventType.BLOCKED_REQUEST,
            ip=ip,
            details={"path": endpoint, "method": req.method, "reason": "ip_blocked"},
        )
        resp = jsonify(error="forbidden")
        resp.status_code = 403
        return resp

    result = rate_limiter.check(ip, endpoint)
    if not result.allowed:
        current_app.logger.info(
            "GATE DENY 429: ip=%s path=%s retry_after=%s", ip, endpoint, result.retry_after_seconds
        )
        record_security_event(
            event_type=SecurityEventType.RATE_LIMITED,
            ip=ip,
            details={"path": endpoint, "method": req.method},
        )
        resp = jsonify(error="too_many_requests", retry_after=result.retry_after_seconds)
        resp.status_code = 429
        resp.headers["Retry-After"] = str(result.retry_after_seconds)
        return resp

    return None
