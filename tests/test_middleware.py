import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from middleware import RATE_LIMIT_MESSAGE, RateLimiter, RateLimitMiddleware, RequestLoggingMiddleware


def _limited_app(limiter):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    return app


def test_rate_limiter_counts_within_window():
    limiter = RateLimiter(max_requests=2, window_seconds=60)

    assert limiter.hit("a", now=0) == (True, 1, 60)
    assert limiter.hit("a", now=10) == (True, 0, 60)
    assert limiter.hit("a", now=20) == (False, 0, 60)


def test_rate_limiter_keys_are_independent():
    limiter = RateLimiter(max_requests=1, window_seconds=60)

    assert limiter.hit("a", now=0)[0]
    assert limiter.hit("b", now=0)[0]
    assert not limiter.hit("a", now=1)[0]


def test_rate_limiter_window_resets():
    limiter = RateLimiter(max_requests=1, window_seconds=60)

    limiter.hit("a", now=0)
    assert not limiter.hit("a", now=59)[0]
    allowed, remaining, reset_at = limiter.hit("a", now=60)
    assert allowed
    assert remaining == 0
    assert reset_at == 120


def test_rate_limiter_reset_clears_counters():
    limiter = RateLimiter(max_requests=1, window_seconds=60)
    limiter.hit("a", now=0)
    limiter.reset()
    assert limiter.hit("a", now=1)[0]


def test_middleware_returns_429_after_limit():
    client = TestClient(_limited_app(RateLimiter(max_requests=2, window_seconds=60)))

    first = client.get("/ping")
    assert first.status_code == 200
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert client.get("/ping").status_code == 200

    blocked = client.get("/ping")
    assert blocked.status_code == 429
    assert blocked.json() == {"success": False, "message": RATE_LIMIT_MESSAGE}
    assert int(blocked.headers["Retry-After"]) >= 1


def test_request_logging_middleware_logs_request(caplog):
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    with caplog.at_level(logging.INFO, logger="middleware"):
        res = TestClient(app).get("/ping")

    assert "X-Process-Time" in res.headers
    record = next(r for r in caplog.records if r.name == "middleware")
    assert record.getMessage().startswith("GET /ping -> 200")
    assert record.status_code == 200


def test_rate_limiter_drops_expired_clients():
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    for i in range(1000):
        limiter.hit(f"client-{i}", now=0)
    assert limiter.client_count() == 1000

    limiter.hit("late", now=10_000)

    assert limiter.client_count() == 1


def test_rate_limiter_keeps_active_clients_on_sweep():
    limiter = RateLimiter(max_requests=5, window_seconds=60)
    limiter.hit("old", now=0)
    limiter.hit("recent", now=50)

    limiter.hit("new", now=70)

    assert limiter.client_count() == 2
    assert limiter.hit("recent", now=71) == (True, 3, 110)


def test_request_logging_middleware_logs_unhandled_error(caplog):
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/boom")
    def boom():
        raise RuntimeError("boom")

    with caplog.at_level(logging.INFO, logger="middleware"):
        res = TestClient(app).get("/boom")

    assert res.status_code == 500
    assert res.json()["success"] is False
    assert "X-Process-Time" in res.headers
    assert any(r.getMessage().startswith("GET /boom -> 500") for r in caplog.records)
    assert any(r.exc_info for r in caplog.records if r.levelno == logging.ERROR)


def test_rate_limit_headers_on_unhandled_error():
    limiter = RateLimiter(max_requests=3, window_seconds=60)
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter)

    @app.get("/boom")
    def boom():
        raise RuntimeError("boom")

    res = TestClient(app).get("/boom")

    assert res.status_code == 500
    assert res.headers["X-RateLimit-Remaining"] == "2"
