"""boto3-backed implementation of the ECS backend."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ecs_dashboard.aws.base import (
    ClusterSummary,
    ConnectionStatus,
    Datapoint,
    Deployment,
    EcsBackend,
    ServiceDetail,
    ServicePage,
    short_name,
)
from ecs_dashboard.aws.errors import RemoteError, translate_error

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_service(raw: dict[str, Any]) -> ServiceDetail:
    """Convert a DescribeServices entry into a ServiceDetail."""
    deployments = raw.get("deployments") or []
    last_deployment = None
    if deployments:
        latest = deployments[0]
        last_deployment = Deployment(
            status=latest.get("status") or "Unknown",
            created_at=_iso(latest.get("createdAt")),
            task_definition=short_name(latest.get("taskDefinition")),
        )

    return ServiceDetail(
        service_name=raw.get("serviceName") or "Unknown",
        service_arn=raw.get("serviceArn") or "",
        status=raw.get("status") or "Unknown",
        running_count=raw.get("runningCount") or 0,
        pending_count=raw.get("pendingCount") or 0,
        desired_count=raw.get("desiredCount") or 0,
        task_definition=short_name(raw.get("taskDefinition")),
        task_definition_arn=raw.get("taskDefinition"),
        platform_version=raw.get("platformVersion"),
        created_at=_iso(raw.get("createdAt")),
        last_deployment=last_deployment,
    )


def parse_task_definition(raw: dict[str, Any]) -> dict[str, Any]:
    """Keep the parts of a task definition the dashboard shows."""
    return {
        "family": raw.get("family"),
        "revision": raw.get("revision"),
        "cpu": raw.get("cpu"),
        "memory": raw.get("memory"),
        "network_mode": raw.get("networkMode"),
        "containers": [
            {
                "name": container.get("name"),
                "image": container.get("image"),
                "cpu": container.get("cpu"),
                "memory": container.get("memory"),
            }
            for container in raw.get("containerDefinitions") or []
        ],
    }


class BotoEcsBackend(EcsBackend):
    """
    ECS and CloudWatch access through boto3.

    boto3 is blocking, so each call runs in a worker thread. Clients are
    created lazily so the app can start without credentials; a missing
    credential surfaces as RemotePermissionDeniedError on first use.
    """

    def __init__(
        self,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session_token: str | None = None,
    ) -> None:
        self._region = region
        self._session = boto3.Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            aws_session_token=session_token,
            region_name=region,
        )
        # Throttling retries are handled by FanoutScheduler
        self._config = Config(retries={"max_attempts": 1, "mode": "standard"})
        self._clients: dict[str, Any] = {}

    @property
    def region(self) -> str | None:
        return self._region or self._session.region_name

    def _client(self, name: str) -> Any:
        if name not in self._clients:
            self._clients[name] = self._session.client(name, config=self._config)
        return self._clients[name]

    async def _call(self, client_name: str, operation: str, /, **params: Any) -> dict[str, Any]:
        """
        Run one API call in a thread, translating botocore failures.

        The leading arguments are positional-only so AWS parameters such as
        ``service`` pass through ``params`` untouched.
        """
        try:
            client = self._client(client_name)
            method: Callable[..., dict[str, Any]] = getattr(client, operation)
            return await asyncio.to_thread(method, **params)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e) from e

    async def describe_cluster(self, cluster: str) -> ClusterSummary | None:
        response = await self._call(
            "ecs",
            "describe_clusters",
            clusters=[cluster],
            include=["STATISTICS"],
        )
        clusters = response.get("clusters") or []
        if not clusters:
            return None

        raw = clusters[0]
        return ClusterSummary(
            cluster_name=raw.get("clusterName") or cluster,
            status=raw.get("status") or "Unknown",
            active_services_count=raw.get("activeServicesCount") or 0,
            running_tasks_count=raw.get("runningTasksCount") or 0,
            pending_tasks_count=raw.get("pendingTasksCount") or 0,
        )

    async def list_services(
        self,
        cluster: str,
        next_token: str | None = None,
        page_size: int = 100,
    ) -> ServicePage:
        params: dict[str, Any] = {"cluster": cluster, "maxResults": page_size}
        if next_token:
            params["nextToken"] = next_token

        response = await self._call("ecs", "list_services", **params)
        return ServicePage(
            service_arns=list(response.get("serviceArns") or []),
            next_token=response.get("nextToken"),
        )

    async def describe_services(
        self,
        cluster: str,
        service_arns: list[str],
    ) -> list[ServiceDetail]:
        response = await self._call(
            "ecs",
            "describe_services",
            cluster=cluster,
            services=service_arns,
        )
        for failure in response.get("failures") or []:
            logger.warning(
                f"DescribeServices failure in {cluster}: "
                f"{failure.get('arn')} ({failure.get('reason')})"
            )
        return [parse_service(raw) for raw in response.get("services") or []]

    async def describe_task_definition(self, task_definition: str) -> dict[str, Any]:
        response = await self._call(
            "ecs",
            "describe_task_definition",
            taskDefinition=task_definition,
        )
        return parse_task_definition(response.get("taskDefinition") or {})

    async def force_new_deployment(self, cluster: str, service: str) -> str:
        response = await self._call(
            "ecs",
            "update_service",
            cluster=cluster,
            service=service,
            forceNewDeployment=True,
        )
        return short_name((response.get("service") or {}).get("taskDefinition"))

    async def get_metric_statistics(
        self,
        cluster: str,
        service: str,
        metric_name: str,
        start: datetime,
        end: datetime,
        period: int,
    ) -> list[Datapoint]:
        response = await self._call(
            "cloudwatch",
            "get_metric_statistics",
            Namespace="AWS/ECS",
            MetricName=metric_name,
            Dimensions=[
                {"Name": "ServiceName", "Value": service},
                {"Name": "ClusterName", "Value": cluster},
            ],
            StartTime=start,
            EndTime=end,
            Period=period,
            Statistics=["Average"],
        )
        return [
            Datapoint(timestamp=dp["Timestamp"], value=float(dp.get("Average", 0.0)))
            for dp in response.get("Datapoints") or []
            if dp.get("Timestamp") is not None
        ]

    async def test_connection(self) -> ConnectionStatus:
        try:
            await self._call("ecs", "describe_clusters")
        except RemoteError as e:
            logger.error(f"AWS connection test failed: {e.message}")
            return ConnectionStatus(success=False, message=e.message, region=self.region)

        return ConnectionStatus(
            success=True,
            message="AWS connection successful",
            region=self.region,
        )
