"""
tests/test_rate_limit.py — Per-Client Rate Limiting Tests
===========================================================
Sliding-window limits per (policy bucket, client IP); exceeding one returns
429 with a Retry-After header and the standard error envelope.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from onsweb.api.rate_limit import RateLimiter
from onsweb.constants import AUTH_LIMIT, RateLimitPolicy
from onsweb.database.models import RateLimitEvent

TESTCLIENT_IP = "testclient"


# ---------------------------------------------------------------------------
# Unit tests for the RateLimiter core (DB-backed)
# ---------------------------------------------------------------------------
class TestRateLimiter:
    """Test the sliding-window rate limiter in isolation (DB-backed)."""

    @pytest.fixture(autouse=True)
    def _limiter(self, db_engine):
        self.limiter = RateLimiter(engine=db_engine)
        self.engine = db_engine
        self.policy = RateLimitPolicy("test", 5, 60)

    def test_allows_requests_within_limit(self):
        for _ in range(5):
            allowed, _ = self.limiter.check(self.policy, "10.0.0.1")
            assert allowed
            self.limiter.record(self.policy, "10.0.0.1")

    def test_blocks_after_limit_exceeded(self):
        policy = RateLimitPolicy("test", 3, 60)
        for _ in range(3):
            self.limiter.record(policy, "10.0.0.1")

        allowed, info = self.limiter.check(policy, "10.0.0.1")
        assert not allowed
        assert info["remaining"] == 0
        assert 0 < info["reset"] <= 61

    def test_separate_callers_have_separate_limits(self):
        policy = RateLimitPolicy("test", 2, 60)
        self.limiter.record(policy, "10.0.0.1")
        self.limiter.record(policy, "10.0.0.1")

        allowed1, _ = self.limiter.check(policy, "10.0.0.1")
        assert not allowed1

        allowed2, _ = self.limiter.check(policy, "10.0.0.2")
        assert allowed2

    def test_buckets_are_independent(self):
        tight = RateLimitPolicy("tight", 1, 60)
        loose = RateLimitPolicy("loose", 5, 60)
        self.limiter.record(tight, "10.0.0.1")

        assert not self.limiter.check(tight, "10.0.0.1")[0]
        assert self.limiter.check(loose, "10.0.0.1")[0]

    def test_remaining_count_decreases(self):
        _, info = self.limiter.check(self.policy, "10.0.0.1")
        assert info["remaining"] == 5

        assert self.limiter.record(self.policy, "10.0.0.1")["remaining"] == 4
        _, info = self.limiter.check(self.policy, "10.0.0.1")
        assert info["remaining"] == 4

    def test_check_prunes_expired_events(self):
        policy = RateLimitPolicy("test", 2, 0)
        self.limiter.record(policy, "10.0.0.1")
        self.limiter.record(policy, "10.0.0.1")

        allowed, info = self.limiter.check(policy, "10.0.0.1")
        assert allowed
        assert info["remaining"] == 2
        with Session(self.engine) as session:
            count = session.scalar(select(func.count()).select_from(RateLimitEvent))
        assert count == 0

    def test_reset_clears_one_bucket(self):
        a = RateLimitPolicy("a", 1, 60)
        b = RateLimitPolicy("b", 1, 60)
        self.limiter.record(a, "10.0.0.1")
        self.limiter.record(b, "10.0.0.1")

        self.limiter.reset("a")

        assert self.limiter.check(a, "10.0.0.1")[0]
        assert not self.limiter.check(b, "10.0.0.1")[0]

    def test_reset_all(self):
        self.limiter.record(self.policy, "10.0.0.1")
        self.limiter.record(self.policy, "10.0.0.2")

        self.limiter.reset()

        _, info1 = self.limiter.check(self.policy, "10.0.0.1")
        _, info2 = self.limiter.check(self.policy, "10.0.0.2")
        assert info1["remaining"] == info2["remaining"] == 5


# ---------------------------------------------------------------------------
# Integration tests with FastAPI TestClient
# ---------------------------------------------------------------------------
class TestRateLimitDependency:
    """Test the rate limit dependency end-to-end via TestClient."""

    @pytest.fixture
    def limiter(self, db_engine):
        return RateLimiter(engine=db_engine)

    def _fill(self, limiter: RateLimiter, policy: RateLimitPolicy, caller: str = TESTCLIENT_IP):
        for _ in range(policy.max_requests):
            limiter.record(policy, caller)

    def test_login_returns_429_with_retry_after(self, client, limiter, member):
        self._fill(limiter, AUTH_LIMIT)

        resp = client.post(
            "/api/auth/login", json={"email": member.email, "password": "whatever1"}
        )
        assert resp.status_code == 429
        assert int(resp.headers["Retry-After"]) > 0

        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["error"]["details"]["limit"] == AUTH_LIMIT.max_requests

    def test_auth_limit_does_not_block_content_reads(self, client, limiter):
        self._fill(limiter, AUTH_LIMIT)
        resp = client.get("/api/content")
        assert resp.status_code == 200

    def test_forwarded_for_identifies_caller(self, client, limiter, member):
        self._fill(limiter, AUTH_LIMIT, caller="203.0.113.9")

        blocked = client.post(
            "/api/auth/login",
            json={"email": member.email, "password": "whatever1"},
            headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )
        assert blocked.status_code == 429

        other = client.post(
            "/api/auth/login", json={"email": member.email, "password": "whatever1"}
        )
        assert other.status_code == 401

    def test_each_request_is_recorded(self, client, db_engine):
        for _ in range(3):
            client.get("/api/content")
        with Session(db_engine) as session:
            count = session.scalar(
                select(func.count())
                .select_from(RateLimitEvent)
                .where(RateLimitEvent.bucket == "general")
            )
        assert count == 3
