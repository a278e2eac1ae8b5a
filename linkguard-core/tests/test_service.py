"""
Guard Service and Router Tests
==============================
Facade wiring, lifecycle, health reporting and the admin HTTP routes.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


def make_client(guard):
    from linkguard_core.health import create_guard_router

    app = FastAPI()
    app.include_router(create_guard_router(guard, service_name="linkguard-test"))
    return TestClient(app)


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        from linkguard_core.config import GuardSettings

        monkeypatch.delenv("LINKGUARD_NAMESPACE", raising=False)
        settings = GuardSettings()

        assert settings.namespace == "linkedin"
        assert settings.compliance_mode == "ULTRA_STRICT"
        assert settings.recovery_policy == "cooldown"
        assert settings.max_sleep_seconds == 60.0

    def test_from_env(self, monkeypatch):
        from linkguard_core.config import GuardSettings

        monkeypatch.setenv("LINKGUARD_NAMESPACE", "tenant_a")
        monkeypatch.setenv("LINKGUARD_THROTTLE_INTERVAL", "60")
        monkeypatch.setenv("LINKGUARD_RECOVERY_CLEAN_INTERVALS", "5")

        settings = GuardSettings.from_env()

        assert settings.namespace == "tenant_a"
        assert settings.throttle_interval_seconds == 60.0
        assert settings.recovery_clean_intervals == 5


class TestErrors:
    """Tests for error classification helpers."""

    def test_extract_status_code(self):
        from unittest.mock import MagicMock

        from linkguard_core.errors import UpstreamRateLimited, extract_status_code

        error = Exception("boom")
        error.response = MagicMock(status_code=503)

        assert extract_status_code(UpstreamRateLimited()) == 429
        assert extract_status_code(error) == 503
        assert extract_status_code(ValueError("x")) is None

    def test_is_rate_limit_error(self):
        from linkguard_core.errors import QuotaExceeded, is_rate_limit_error

        assert is_rate_limit_error(QuotaExceeded("x", retry_after=5, endpoint="/v2/me")) is True
        assert is_rate_limit_error(RuntimeError("x")) is False

    def test_day_scoped_quota_is_not_retryable(self):
        from linkguard_core.errors import QuotaExceeded, WindowScope, is_rate_limit_error

        error = QuotaExceeded("x", retry_after=3600, endpoint="/v2/me", scope=WindowScope.DAY)

        assert is_rate_limit_error(error) is False


class TestComplianceGuard:
    """Tests for the service facade."""

    @pytest.mark.asyncio
    async def test_namespace_applied_to_keys(self, store, clock, sleeper):
        from linkguard_core.config import GuardSettings
        from linkguard_core.service import ComplianceGuard

        guard = ComplianceGuard(
            store, settings=GuardSettings(namespace="tenant"), clock=clock, sleep=sleeper
        )
        await guard.record_usage("u1", "/v2/me")

        keys = await store.scan_keys("tenant_rate_limit:u1:*")
        assert len(keys) == 5

    @pytest.mark.asyncio
    async def test_health_status(self, guard):
        await guard.record_usage("u1", "/v2/me")

        report = await guard.get_health_status()

        assert report.status == "healthy"
        assert report.store_connected is True
        assert report.active_users == 1

    @pytest.mark.asyncio
    async def test_health_status_store_down(self, guard):
        from linkguard_core.errors import StoreUnavailable

        guard.store.ping = AsyncMock(side_effect=StoreUnavailable("refused", operation="ping"))

        report = await guard.get_health_status()

        assert report.status == "unhealthy"
        assert report.store_connected is False
        assert "refused" in report.error

    @pytest.mark.asyncio
    async def test_lifecycle(self, guard):
        async with guard:
            assert guard.throttler.running is True
        assert guard.throttler.running is False

    @pytest.mark.asyncio
    async def test_adjust_quotas(self, guard):
        from linkguard_core.throttle import ThrottleAction

        await guard.record_usage("u1", "/v2/me", success=False, status_code=429)

        adjustment = await guard.adjust_quotas()

        assert adjustment.action == ThrottleAction.REDUCED
        assert guard.inspect_quotas()["cumulative_factor"] == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_reset_user_rate_limits(self, guard):
        await guard.record_usage("u1", "/v2/me")

        assert await guard.reset_user_rate_limits("u1") == 5
        assert (await guard.check_quota("u1", "/v2/me")).remaining == 2

    def test_from_settings_builds_redis_store(self):
        from linkguard_core.config import GuardSettings
        from linkguard_core.service import ComplianceGuard
        from linkguard_core.store import RedisCounterStore

        guard = ComplianceGuard.from_settings(GuardSettings(redis_url="redis://localhost:6379/3"))

        assert isinstance(guard.store, RedisCounterStore)


class TestGuardRouter:
    """Tests for the health and admin routes."""

    def test_health(self, guard):
        client = make_client(guard)

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "linkguard-test"
        assert data["components"]["counter_store"]["status"] == "connected"

    def test_liveness(self, guard):
        response = make_client(guard).get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_readiness(self, guard):
        from linkguard_core.errors import StoreUnavailable

        client = make_client(guard)
        assert client.get("/health/ready").status_code == 200

        guard.store.ping = AsyncMock(side_effect=StoreUnavailable("refused", operation="ping"))
        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_metrics(self, guard):
        response = make_client(guard).get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "linkguard_quota_scale_factor" in response.text

    def test_quotas(self, guard):
        data = make_client(guard).get("/guard/quotas").json()

        assert data["cumulative_factor"] == 1.0
        assert data["current"]["global"]["max_requests_per_hour"] == 50

    def test_usage_and_reset(self, guard):
        client = make_client(guard)

        usage = client.get("/guard/usage/u1").json()
        assert usage["user_id"] == "u1"
        assert usage["global"]["hourly_usage"] == 0

        response = client.delete("/guard/usage/u1")
        assert response.status_code == 200
        assert response.json() == {"user_id": "u1", "keys_removed": 0}

    def test_reset_wildcard_user_removes_nothing(self, guard):
        asyncio.run(guard.record_usage("u1", "/v2/me"))
        client = make_client(guard)

        response = client.delete("/guard/usage/*")

        assert response.json() == {"user_id": "*", "keys_removed": 0}
        assert client.get("/guard/usage/u1").json()["global"]["hourly_usage"] == 1

    def test_compliance_routes(self, guard):
        client = make_client(guard)

        status = client.get("/guard/compliance/u1").json()
        report = client.get("/guard/compliance/report").json()

        assert status["status"] == "COMPLIANT"
        assert status["score"] == 100
        assert report["total_users"] == 0

    def test_violations(self, guard):
        client = make_client(guard)

        created = client.post(
            "/guard/violations/u1",
            json={"type": "automation_detected", "details": {"severity": "high"}},
        )
        listed = client.get("/guard/violations/u1").json()
        status = client.get("/guard/compliance/u1").json()

        assert created.status_code == 201
        assert created.json()["severity"] == "high"
        assert len(listed["violations"]) == 1
        assert status["safety_metrics"]["compliance_history"] == 85

    def test_violation_requires_type(self, guard):
        response = make_client(guard).post("/guard/violations/u1", json={"type": ""})

        assert response.status_code == 422
