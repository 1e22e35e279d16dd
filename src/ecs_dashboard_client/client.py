"""
ECS Dashboard API Client
Synchronous HTTP client for the dashboard API.
"""

from __future__ import annotations

import os
from typing import Optional

import httpx

from .models import ClusterStatus, DeployOutcome, MetricRange, ServiceStatus


class DashboardApiError(Exception):
    """The API returned an error response."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class RateLimitedError(DashboardApiError):
    """The API rejected the call with 429."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        blocked_until: Optional[str] = None,
    ) -> None:
        super().__init__(429, message)
        self.retry_after = retry_after
        self.blocked_until = blocked_until


class DashboardClient:
    """
    Python client for the ECS dashboard API.

    Example:
        ```python
        with DashboardClient() as client:
            for cluster in client.cluster_status():
                print(cluster.name, cluster.status)
        ```
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API server URL (default: localhost:8000)
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or os.getenv("ECS_DASHBOARD_API_KEY")

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> DashboardClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def _handle(self, response: httpx.Response):
        if response.status_code == 429:
            body = response.json()
            retry_after = response.headers.get("Retry-After")
            raise RateLimitedError(
                body.get("error", "Rate limited"),
                retry_after=int(retry_after) if retry_after else None,
                blocked_until=body.get("blocked_until"),
            )
        if response.is_error:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            raise DashboardApiError(response.status_code, message)
        return response.json()

    # =========================================================================
    # Health
    # =========================================================================

    def health(self) -> dict:
        """Check API process health."""
        return self._handle(self._client.get("/health"))

    def aws_health(self) -> dict:
        """
        Check AWS connectivity through the API.

        An unhealthy probe is returned, not raised.
        """
        response = self._client.get("/v1/aws/health")
        if response.status_code == 500:
            return response.json()
        return self._handle(response)

    # =========================================================================
    # Clusters & Services
    # =========================================================================

    def cluster_status(
        self,
        clusters: Optional[list[str]] = None,
        include_definitions: bool = False,
    ) -> list[ClusterStatus]:
        """Status of clusters (all allowed clusters if none given)."""
        params: list[tuple[str, str]] = [("cluster", name) for name in clusters or []]
        if include_definitions:
            params.append(("include_definitions", "true"))
        data = self._handle(self._client.get("/v1/clusters/status", params=params))
        return [ClusterStatus.from_dict(c) for c in data]

    def list_services(self, cluster_name: str) -> list[ServiceStatus]:
        """Services of one cluster, sorted by name."""
        data = self._handle(
            self._client.post("/v1/services", json={"cluster_name": cluster_name})
        )
        return [
            ServiceStatus(
                service_name=s["name"],
                status=s["status"],
                running_count=s["running_count"],
                desired_count=s["desired_count"],
            )
            for s in data.get("services", [])
        ]

    def force_deploy(self, cluster_name: str, service_names: list[str]) -> list[DeployOutcome]:
        """Force new deployments of the given services."""
        data = self._handle(
            self._client.post(
                "/v1/services/force-deploy",
                json={"cluster_name": cluster_name, "service_names": service_names},
            )
        )
        return [DeployOutcome.from_dict(d) for d in data]

    # =========================================================================
    # Metrics
    # =========================================================================

    def latest_metrics(self, cluster_name: str, service_name: str) -> dict:
        return self._handle(
            self._client.post(
                "/v1/metrics",
                json={"cluster_name": cluster_name, "service_name": service_name},
            )
        )

    def metrics_range(
        self,
        cluster_name: str,
        service_name: str,
        start_time: str,
        end_time: str,
        metric_type: str = "both",
    ) -> MetricRange:
        """CPU/memory time series between two ISO-8601 instants."""
        data = self._handle(
            self._client.post(
                "/v1/metrics/range",
                json={
                    "cluster_name": cluster_name,
                    "service_name": service_name,
                    "start_time": start_time,
                    "end_time": end_time,
                    "metric_type": metric_type,
                },
            )
        )
        return MetricRange.from_dict(data)
