"""Tests for the Python client SDK and CLI."""

import json
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from ecs_dashboard_client import DashboardApiError, DashboardClient, RateLimitedError
from ecs_dashboard_client.cli import cli

STATUS_PAYLOAD = [
    {
        "name": "alpha-cluster",
        "status": "ACTIVE",
        "summary": {"running_tasks_count": 3, "pending_tasks_count": 0},
        "items": [
            {
                "service_name": "web",
                "status": "ACTIVE",
                "running_count": 1,
                "desired_count": 2,
                "task_definition": "web:4",
                "last_deployment": {"status": "PRIMARY"},
            }
        ],
        "error": None,
        "warnings": [],
    },
    {
        "name": "beta-cluster",
        "status": "error",
        "summary": {},
        "items": [],
        "error": "Access denied - check AWS credentials and permissions",
        "warnings": [],
    },
]


def make_client(handler, **kwargs) -> DashboardClient:
    return DashboardClient(
        base_url="http://dashboard.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestDashboardClient:
    """Tests for DashboardClient."""

    def test_cluster_status(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = request.url.params.multi_items()
            return httpx.Response(200, json=STATUS_PAYLOAD)

        with make_client(handler) as client:
            clusters = client.cluster_status(["alpha-cluster", "beta-cluster"], include_definitions=True)

        assert seen["params"] == [
            ("cluster", "alpha-cluster"),
            ("cluster", "beta-cluster"),
            ("include_definitions", "true"),
        ]
        alpha, beta = clusters
        assert alpha.running_tasks_count == 3
        assert alpha.services[0].healthy is False
        assert alpha.services[0].last_deployment_status == "PRIMARY"
        assert beta.error.startswith("Access denied")

    def test_sends_bearer_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer abc"
            return httpx.Response(200, json={"status": "healthy", "version": "0.1.0"})

        with make_client(handler, api_key="abc") as client:
            assert client.health()["status"] == "healthy"

    def test_rate_limited(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                429,
                headers={"Retry-After": "42"},
                json={
                    "error": "Rate limit exceeded. Try again after 2025-01-01T00:00:42+00:00",
                    "limiter": "metrics",
                    "blocked_until": None,
                },
            )

        with make_client(handler) as client:
            with pytest.raises(RateLimitedError) as exc_info:
                client.latest_metrics("alpha-cluster", "web")

        assert exc_info.value.retry_after == 42
        assert exc_info.value.status_code == 429

    def test_error_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "Invalid cluster name"})

        with make_client(handler) as client:
            with pytest.raises(DashboardApiError, match="Invalid cluster name") as exc_info:
                client.list_services("prod")

        assert exc_info.value.status_code == 400

    def test_aws_health_returns_unhealthy_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"status": "unhealthy", "message": "Invalid AWS credentials"})

        with make_client(handler) as client:
            assert client.aws_health()["status"] == "unhealthy"

    def test_force_deploy(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json=[
                    {"service_name": name, "success": True, "message": "ok"}
                    for name in body["service_names"]
                ],
            )

        with make_client(handler) as client:
            outcomes = client.force_deploy("alpha-cluster", ["web", "api"])

        assert [o.service_name for o in outcomes] == ["web", "api"]

    def test_metrics_range(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "cluster_name": "alpha-cluster",
                    "service_name": "web",
                    "time_range": {"start": "s", "end": "e", "period": 60},
                    "cpu": [{"timestamp": "2025-01-01T00:00:00+00:00", "value": 12.5}],
                    "memory": [],
                },
            )

        with make_client(handler) as client:
            series = client.metrics_range("alpha-cluster", "web", "s", "e", "cpu")

        assert series.period == 60
        assert series.cpu[0].value == 12.5


class TestCli:
    """Tests for the ecs-dash CLI."""

    def run(self, handler, *args):
        client = make_client(handler)
        with patch("ecs_dashboard_client.cli.get_client", return_value=client):
            return CliRunner().invoke(cli, list(args), obj={})

    def test_status_json(self) -> None:
        result = self.run(lambda request: httpx.Response(200, json=STATUS_PAYLOAD), "status", "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data[0]["services"] == [{"name": "web", "running": 1, "desired": 2}]
        assert data[1]["status"] == "error"

    def test_redeploy_failure_exits_nonzero(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[{"service_name": "web", "success": False, "message": "Failed to initiate deployment: Service not found"}],
            )

        result = self.run(handler, "redeploy", "alpha-cluster", "web", "--yes")

        assert result.exit_code == 1
        assert "Service not found" in result.output

    def test_rate_limited_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "30"}, json={"error": "Rate limit exceeded"})

        result = self.run(handler, "services", "alpha-cluster")

        assert result.exit_code == 1
        assert "Retry in 30s" in result.output
