from trustcore.models import BlockedIP, RateLimitViolation, SecurityEvent
from trustcore.security import ip_block, rate_limit
from trustcore.security.rate_ledger import DatabaseRateLedger
from trustcore.security.rate_limit import rate_limiter


def test_five_allowed_sixth_rejected_then_window_resets(app, fake_clock):
    rate_limit.upsert_config(endpoint="/api/x", window_ms=60000, max_requests=5)

    for _ in range(5):
        assert rate_limiter.check("1.1.1.1", "/api/x").allowed
        fake_clock[0] += 1

    result = rate_limiter.check("1.1.1.1", "/api/x")
    assert result.allowed is False
    assert result.retry_after_seconds == 60

    fake_clock[0] += 61
    assert rate_limiter.check("1.1.1.1", "/api/x").allowed


def test_keys_are_per_ip_and_endpoint(app, fake_clock):
    rate_limit.upsert_config(endpoint="global", window_ms=60000, max_requests=1)

    assert rate_limiter.check("1.1.1.1", "/a").allowed
    assert rate_limiter.check("1.1.1.1", "/b").allowed
    assert rate_limiter.check("2.2.2.2", "/a").allowed
    assert not rate_limiter.check("1.1.1.1", "/a").allowed


def test_global_fallback_and_endpoint_override(app, fake_clock):
    rate_limit.upsert_config(endpoint="global", window_ms=1000, max_requests=1)
    rate_limit.upsert_config(endpoint="/big", window_ms=1000, max_requests=3)

    assert rate_limit.get_config("/other").endpoint == "global"
    assert rate_limit.get_config("/big").max_requests == 3

    results = [rate_limiter.check("3.3.3.3", "/big").allowed for _ in range(4)]
    assert results == [True, True, True, False]


def test_no_config_or_disabled_allows(app, fake_clock):
    for _ in range(20):
        assert rate_limiter.check("4.4.4.4", "/free").allowed

    rate_limit.upsert_config(endpoint="/off", window_ms=60000, max_requests=0, enabled=False)
    assert rate_limiter.check("4.4.4.4", "/off").allowed


def test_config_change_applies_on_next_check(app, fake_clock):
    rate_limit.upsert_config(endpoint="/c", window_ms=60000, max_requests=1)
    assert rate_limiter.check("5.5.5.5", "/c").allowed
    assert not rate_limiter.check("5.5.5.5", "/c").allowed

    rate_limit.upsert_config(endpoint="/c", window_ms=60000, max_requests=10)
    assert rate_limiter.check("5.5.5.5", "/c").allowed


def test_violation_is_recorded(app, fake_clock):
    rate_limit.upsert_config(endpoint="/v", window_ms=60000, max_requests=1)
    rate_limiter.check("6.6.6.6", "/v")
    rate_limiter.check("6.6.6.6", "/v")

    violations = rate_limit.list_violations()
    assert len(violations) == 1
    assert violations[0].ip == "6.6.6.6"
    assert violations[0].request_count == 2
    assert violations[0].limit == 1
    # sin block_duration no hay bloqueo
    assert not ip_block.is_blocked("6.6.6.6")


def test_violation_escalates_to_ip_block(app, fake_clock):
    rate_limit.upsert_config(
        endpoint="/login", window_ms=60000, max_requests=1, block_duration_minutes=30
    )
    rate_limiter.check("7.7.7.7", "/login")
    assert not rate_limiter.check("7.7.7.7", "/login").allowed

    assert ip_block.is_blocked("7.7.7.7")
    row = ip_block.list_active()[0]
    assert row.reason == "rate limit exceeded on /login"
    assert row.expires_at is not None
    assert SecurityEvent.query.filter_by(event_type="IP_BLOCKED").count() == 1


def test_delete_config_and_list(app):
    rate_limit.upsert_config(endpoint="/b", window_ms=1000, max_requests=1)
    rate_limit.upsert_config(endpoint="/a", window_ms=1000, max_requests=1)
    assert [c.endpoint for c in rate_limit.list_configs()] == ["/a", "/b"]

    rate_limit.delete_config("/a")
    assert [c.endpoint for c in rate_limit.list_configs()] == ["/b"]


def test_gate_returns_429_with_retry_after(client, app):
    rate_limit.upsert_config(endpoint="/health", window_ms=30000, max_requests=2)

    assert client.get("/health").status_code == 200
    assert client.get("/health").status_code == 200

    res = client.get("/health")
    assert res.status_code == 429
    assert res.headers["Retry-After"] == "30"
    assert res.get_json()["retry_after"] == 30
    assert RateLimitViolation.query.count() == 1
    assert SecurityEvent.query.filter_by(event_type="RATE_LIMITED").count() == 1


def test_gate_answers_429_when_the_ip_block_races(client, app, monkeypatch):
    rate_limit.upsert_config(
        endpoint="/health", window_ms=30000, max_requests=1, block_duration_minutes=5
    )
    assert client.get("/health").status_code == 200

    # otro worker bloquea la ip después de que esta request pasó el chequeo de bloqueo
    ip_block.block_ip("127.0.0.1", "other worker")
    monkeypatch.setattr(ip_block, "is_blocked", lambda ip: False)
    real_find = ip_block._find
    stale = [True]

    def find(ip):
        if stale:
            stale.pop()
            return None
        return real_find(ip)

    monkeypatch.setattr(ip_block, "_find", find)

    res = client.get("/health")
    assert res.status_code == 429
    row = BlockedIP.query.filter_by(ip="127.0.0.1").one()
    assert row.reason == "rate limit exceeded on /health"


def test_database_ledger_same_algorithm(app, fake_clock):
    rate_limiter.init_app(app, ledger=DatabaseRateLedger())
    rate_limit.upsert_config(endpoint="/db", window_ms=60000, max_requests=2)

    assert rate_limiter.check("8.8.8.8", "/db").allowed
    assert rate_limiter.check("8.8.8.8", "/db").allowed
    assert not rate_limiter.check("8.8.8.8", "/db").allowed

    fake_clock[0] += 61
    assert rate_limiter.check("8.8.8.8", "/db").allowed


def test_collect_garbage_uses_configured_idle(app, fake_clock):
    rate_limit.upsert_config(endpoint="global", window_ms=1000, max_requests=100)
    rate_limiter.check("9.9.9.9", "/x")

    fake_clock[0] += 3600
    assert rate_limiter.collect_garbage() == 1
