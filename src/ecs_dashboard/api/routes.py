"""API routes for the ECS dashboard."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ecs_dashboard.api.dependencies import (
    METRICS_LIMITER,
    SERVICES_LIMITER,
    get_dashboard,
    get_limiters,
    rate_limited,
    require_admin,
)
from ecs_dashboard.governance.limiter import RateLimiter
from ecs_dashboard.governance.validator import ValidationError
from ecs_dashboard.services.dashboard import DashboardService

logger = logging.getLogger(__name__)
router = APIRouter()


# --- Request/Response Models ---

class ClusterRequest(BaseModel):
    """Request naming a single cluster."""
    cluster_name: str = Field(..., description="Allow-listed ECS cluster name")


class ForceDeployRequest(BaseModel):
    """Force a new deployment of some services."""
    cluster_name: str
    service_names: list[str] = Field(..., description="Services to redeploy")


class ServiceMetricsRequest(BaseModel):
    """Latest utilization of one service."""
    cluster_name: str
    service_name: str


class MetricsRangeRequest(BaseModel):
    """Utilization time series of one service."""
    cluster_name: str
    service_name: str
    start_time: str = Field(..., description="ISO-8601 start instant")
    end_time: str = Field(..., description="ISO-8601 end instant")
    metric_type: str = Field(default="both", description="cpu, memory or both")


class ServiceSummary(BaseModel):
    """Compact service listing entry."""
    name: str
    arn: str
    status: str
    running_count: int
    desired_count: int


class ServiceListResponse(BaseModel):
    cluster_name: str
    services: list[ServiceSummary]


class DeployResult(BaseModel):
    service_name: str
    success: bool
    message: str


class RateLimitResetRequest(BaseModel):
    """Administrative unblock of a caller."""
    limiter: str = Field(..., description="Limiter name: metrics or services")
    identifier: str


# --- Routes ---

@router.get("/aws/health")
async def aws_health(
    dashboard: DashboardService = Depends(get_dashboard),
) -> JSONResponse:
    """Check AWS connectivity and credentials."""
    result = await dashboard.check_connection()
    status_code = 200 if result["status"] == "healthy" else 500
    return JSONResponse(status_code=status_code, content=result)


@router.get("/clusters/status")
async def cluster_status(
    cluster: list[str] | None = Query(default=None, description="Clusters to include"),
    include_definitions: bool = Query(default=False),
    _caller: str = Depends(rate_limited(SERVICES_LIMITER)),
    dashboard: DashboardService = Depends(get_dashboard),
) -> list[dict[str, Any]]:
    """
    Aggregate status of clusters and their services.

    A cluster that fails is reported with status "error" instead of
    failing the whole response.
    """
    results = await dashboard.aggregate_status(
        cluster,
        include_definitions=include_definitions,
    )
    return [result.to_dict() for result in results]


@router.post("/services", response_model=ServiceListResponse)
async def list_services(
    request: ClusterRequest,
    _caller: str = Depends(rate_limited(SERVICES_LIMITER)),
    dashboard: DashboardService = Depends(get_dashboard),
) -> ServiceListResponse:
    """List the services of one cluster, sorted by name."""
    services = await dashboard.list_services(request.cluster_name)
    return ServiceListResponse(
        cluster_name=request.cluster_name,
        services=[
            ServiceSummary(
                name=service.service_name,
                arn=service.service_arn,
                status=service.status,
                running_count=service.running_count,
                desired_count=service.desired_count,
            )
            for service in services
        ],
    )


@router.post("/services/force-deploy", response_model=list[DeployResult])
async def force_deploy(
    request: ForceDeployRequest,
    caller: str = Depends(rate_limited(SERVICES_LIMITER)),
    dashboard: DashboardService = Depends(get_dashboard),
) -> list[DeployResult]:
    """Force new deployments; each service succeeds or fails on its own."""
    logger.info(
        f"Force deploy of {len(request.service_names)} service(s) in "
        f"{request.cluster_name} requested by {caller}"
    )
    results = await dashboard.force_redeploy(request.cluster_name, request.service_names)
    return [
        DeployResult(service_name=r.name, success=r.success, message=r.message)
        for r in results
    ]


@router.post("/metrics")
async def latest_metrics(
    request: ServiceMetricsRequest,
    _caller: str = Depends(rate_limited(METRICS_LIMITER)),
    dashboard: DashboardService = Depends(get_dashboard),
) -> dict[str, Any]:
    """Most recent CPU and memory utilization of a service."""
    return await dashboard.latest_metrics(request.cluster_name, request.service_name)


@router.post("/metrics/range")
async def metrics_range(
    request: MetricsRangeRequest,
    _caller: str = Depends(rate_limited(METRICS_LIMITER)),
    dashboard: DashboardService = Depends(get_dashboard),
) -> dict[str, Any]:
    """CPU and memory time series of a service over a validated range."""
    series = await dashboard.fetch_metrics(
        request.cluster_name,
        request.service_name,
        request.start_time,
        request.end_time,
        request.metric_type,
    )
    return series.to_dict()


@router.post("/admin/rate-limits/reset", dependencies=[Depends(require_admin)])
async def reset_rate_limit(
    request: RateLimitResetRequest,
    limiters: dict[str, RateLimiter] = Depends(get_limiters),
) -> dict[str, Any]:
    """Clear a caller's window, violations and block."""
    limiter = limiters.get(request.limiter)
    if limiter is None:
        raise ValidationError(
            f"Unknown limiter '{request.limiter}'. Expected one of: {', '.join(sorted(limiters))}"
        )
    cleared = await limiter.reset(request.identifier)
    return {"limiter": request.limiter, "identifier": request.identifier, "cleared": cleared}
