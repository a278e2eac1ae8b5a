"""
Guard Health and Admin Router
=============================
FastAPI routes for liveness probes, metrics and administrative dashboards.
"""

import time
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from .metrics import CONTENT_TYPE_LATEST, get_metrics_text
from .service import ComplianceGuard

logger = structlog.get_logger(__name__)


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    active_users: int
    components: Dict[str, ComponentHealth]
    timestamp: float


class ViolationRequest(BaseModel):
    type: str = Field(..., min_length=1)
    details: Dict[str, Any] = Field(default_factory=dict)


def create_guard_router(
    guard: ComplianceGuard,
    service_name: str = "linkguard",
    version: str = "1.0.0",
) -> APIRouter:
    """
    Create the health and admin router for a guard instance.

    Args:
        guard: The process-wide ComplianceGuard
        service_name: Name reported by /health
        version: Service version

    Returns:
        FastAPI router with health, metrics and /guard admin endpoints
    """
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        report = await guard.get_health_status()
        return HealthResponse(
            status=report.status,
            service=service_name,
            version=version,
            active_users=report.active_users,
            components={
                "counter_store": ComponentHealth(
                    status="connected" if report.store_connected else "error",
                    latency_ms=report.latency_ms,
                    error=report.error,
                ),
            },
            timestamp=time.time(),
        )

    @router.get("/health/live", tags=["Health"])
    async def liveness_probe():
        """Always 200 while the process is running."""
        return {"status": "alive"}

    @router.get("/health/ready", tags=["Health"])
    async def readiness_probe():
        """Not ready while the counter store is down, since calls fail closed."""
        report = await guard.get_health_status()
        if not report.store_connected:
            logger.warning("readiness_check_failed", error=report.error)
            return Response(
                content='{"status": "not_ready", "reason": "counter_store_unavailable"}',
                status_code=503,
                media_type="application/json",
            )
        return {"status": "ready"}

    @router.get("/metrics", tags=["Health"])
    async def metrics_endpoint():
        return Response(content=get_metrics_text(), media_type=CONTENT_TYPE_LATEST)

    @router.get("/guard/quotas", tags=["Guard"])
    async def inspect_quotas():
        return guard.inspect_quotas()

    @router.get("/guard/usage/{user_id}", tags=["Guard"])
    async def usage_statistics(user_id: str):
        snapshot = await guard.get_usage_statistics(user_id)
        return snapshot.to_dict()

    @router.delete("/guard/usage/{user_id}", tags=["Guard"])
    async def reset_usage(user_id: str):
        removed = await guard.reset_user_rate_limits(user_id)
        return {"user_id": user_id, "keys_removed": removed}

    @router.get("/guard/compliance/report", tags=["Guard"])
    async def compliance_report():
        report = await guard.get_compliance_report()
        return report.to_dict()

    @router.get("/guard/compliance/{user_id}", tags=["Guard"])
    async def compliance_status(user_id: str):
        status = await guard.get_compliance_status(user_id)
        return status.to_dict()

    @router.post("/guard/violations/{user_id}", status_code=201, tags=["Guard"])
    async def record_violation(user_id: str, body: ViolationRequest):
        record = await guard.record_violation(user_id, body.type, body.details)
        return record.to_dict()

    @router.get("/guard/violations/{user_id}", tags=["Guard"])
    async def list_violations(user_id: str):
        records = await guard.list_violations(user_id)
        return {"user_id": user_id, "violations": [record.to_dict() for record in records]}

    return router
