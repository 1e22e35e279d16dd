"""Tests for the fan-out scheduler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ecs_dashboard.aws.errors import (
    RemoteNotFoundError,
    RemotePermissionDeniedError,
    RemoteThrottlingError,
)
from ecs_dashboard.fanout import (
    STATUS_ERROR,
    STATUS_NOT_FOUND,
    AggregationTimeoutError,
    EnrichmentGate,
    FanoutScheduler,
    FanoutTask,
)
from conftest import FakeEcsBackend, instant_retry


def cluster_task(
    backend: FakeEcsBackend,
    cluster: str,
    page_size: int = 100,
    describe: bool = True,
    enrich: bool = False,
) -> FanoutTask:
    """Bind the fake backend's calls for one cluster."""

    async def list_page(token):
        return await backend.list_services(cluster, token, page_size)

    async def describe_batch(arns):
        return await backend.describe_services(cluster, arns)

    async def describe_target():
        return await backend.describe_cluster(cluster)

    async def enrich_item(service):
        service.definition = await backend.describe_task_definition(service.task_definition_arn)
        return service

    return FanoutTask(
        name=cluster,
        list_page=list_page,
        describe_batch=describe_batch,
        describe_target=describe_target if describe else None,
        enrich=enrich_item if enrich else None,
    )


def describe_batches(backend: FakeEcsBackend) -> list[list[str]]:
    return [payload for op, payload in backend.calls if op == "describe_services"]


class TestRunTask:
    """Tests for a single target pipeline."""

    @pytest.mark.asyncio
    async def test_empty_target_succeeds(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        """Test a cluster without services is a success with no describe calls."""
        result = await fanout.run_task(cluster_task(backend, "gamma-cluster"))

        assert result.ok
        assert result.status == "ACTIVE"
        assert result.items == []
        assert result.summary["active_services_count"] == 0
        assert backend.count("describe_services") == 0

    @pytest.mark.asyncio
    async def test_describes_in_batches_of_ten(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        """Test 25 services go out as 10 + 10 + 5 in listing order."""
        result = await fanout.run_task(cluster_task(backend, "alpha-cluster"))

        assert [len(batch) for batch in describe_batches(backend)] == [10, 10, 5]
        assert [s.service_name for s in result.items] == [f"svc-{i:02d}" for i in range(25)]

    @pytest.mark.asyncio
    async def test_follows_continuation_tokens(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        """Test listing pages until no token is returned."""
        identifiers = await fanout.collect_identifiers(
            cluster_task(backend, "alpha-cluster", page_size=10)
        )

        assert len(identifiers) == 25
        tokens = [payload[1] for op, payload in backend.calls if op == "list_services"]
        assert tokens == [None, "10", "20"]

    @pytest.mark.asyncio
    async def test_missing_target_is_not_found(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        result = await fanout.run_task(cluster_task(backend, "ghost-cluster"))

        assert result.status == STATUS_NOT_FOUND
        assert result.error == "ghost-cluster not found"
        assert backend.count("list_services") == 0

    @pytest.mark.asyncio
    async def test_without_target_description(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        result = await fanout.run_task(cluster_task(backend, "beta-cluster", describe=False))

        assert result.status == "ok"
        assert result.summary == {}
        assert backend.count("describe_cluster") == 0
        assert len(result.items) == 2

    @pytest.mark.asyncio
    async def test_batch_delay_between_batches(self, backend: FakeEcsBackend) -> None:
        """Test the pause is applied between batches, not before the first."""
        sleep = AsyncMock()
        scheduler = FanoutScheduler(
            gate=EnrichmentGate(min_interval=0),
            retry_policy=instant_retry(),
            batch_size=10,
            batch_delay=0.1,
            stagger_delay=0,
            sleep=sleep,
        )

        await scheduler.run_task(cluster_task(backend, "alpha-cluster"))

        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_throttled_batch_is_retried(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        backend.failures["describe_services"] = [
            RemoteThrottlingError("slow down", "ThrottlingException"),
            RemoteThrottlingError("slow down", "ThrottlingException"),
        ]

        result = await fanout.run_task(cluster_task(backend, "beta-cluster"))

        assert [s.service_name for s in result.items] == ["api", "worker"]
        assert backend.count("describe_services") == 3

    def test_split_batches(self, fanout: FanoutScheduler) -> None:
        assert fanout.split_batches([]) == []
        assert fanout.split_batches(list("abcdefghijk")) == [list("abcdefghij"), ["k"]]

    def test_rejects_zero_batch_size(self) -> None:
        with pytest.raises(ValueError):
            FanoutScheduler(batch_size=0)


class TestEnrichment:
    """Tests for per-item enrichment."""

    @pytest.mark.asyncio
    async def test_enrichment_respects_gate(self, fanout: FanoutScheduler) -> None:
        """Test enrichment concurrency never exceeds the gate capacity."""
        backend = FakeEcsBackend(
            services={"alpha-cluster": [f"svc-{i}" for i in range(12)]},
            enrich_delay=0.01,
        )

        result = await fanout.run_task(cluster_task(backend, "alpha-cluster", enrich=True))

        assert backend.count("describe_task_definition") == 12
        assert backend.max_in_flight <= 3
        assert fanout.gate.peak <= 3
        assert all(s.definition is not None for s in result.items)

    @pytest.mark.asyncio
    async def test_enrichment_failure_keeps_item(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        """Test a failed enrichment adds a warning and keeps the plain item."""
        backend.failures["describe_task_definition"] = [
            RemoteNotFoundError("Resource not found", "ResourceNotFoundException")
        ]

        result = await fanout.run_task(cluster_task(backend, "beta-cluster", enrich=True))

        assert result.ok
        assert [s.service_name for s in result.items] == ["api", "worker"]
        assert sum(1 for s in result.items if s.definition is None) == 1
        assert len(result.warnings) == 1
        assert result.warnings[0].endswith("Resource not found")


class TestAggregate:
    """Tests for multi-target aggregation."""

    @pytest.mark.asyncio
    async def test_results_in_request_order(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        names = ["gamma-cluster", "alpha-cluster", "beta-cluster"]

        results = await fanout.aggregate([cluster_task(backend, n) for n in names])

        assert [r.name for r in results] == names
        assert [len(r.items) for r in results] == [0, 25, 2]

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        """Test one failing target does not affect its siblings."""
        backend.cluster_failures["beta-cluster"] = RemotePermissionDeniedError(
            "Access denied - check AWS credentials and permissions",
            "AccessDeniedException",
        )
        names = ["alpha-cluster", "beta-cluster", "ghost-cluster"]

        results = await fanout.aggregate([cluster_task(backend, n) for n in names])

        alpha, beta, ghost = results
        assert alpha.ok and len(alpha.items) == 25
        assert beta.status == STATUS_ERROR
        assert beta.error == "Access denied - check AWS credentials and permissions"
        assert ghost.status == STATUS_NOT_FOUND

    @pytest.mark.asyncio
    async def test_exhausted_throttling_reports_error(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        backend.cluster_failures["beta-cluster"] = RemoteThrottlingError(
            "AWS throttled the request: Rate exceeded", "ThrottlingException"
        )

        results = await fanout.aggregate([cluster_task(backend, "beta-cluster")])

        assert results[0].status == STATUS_ERROR
        assert backend.count("describe_cluster") == 3

    @pytest.mark.asyncio
    async def test_staggered_starts(self, backend: FakeEcsBackend) -> None:
        """Test target i starts i * stagger_delay seconds late."""
        sleep = AsyncMock()
        scheduler = FanoutScheduler(
            gate=EnrichmentGate(min_interval=0),
            retry_policy=instant_retry(),
            batch_delay=0,
            stagger_delay=0.2,
            sleep=sleep,
        )
        names = ["alpha-cluster", "beta-cluster", "gamma-cluster"]

        await scheduler.aggregate([cluster_task(backend, n) for n in names])

        delays = sorted(c.args[0] for c in sleep.await_args_list)
        assert delays == [pytest.approx(0.2), pytest.approx(0.4)]

    @pytest.mark.asyncio
    async def test_empty_aggregate(self, fanout: FanoutScheduler) -> None:
        assert await fanout.aggregate([]) == []

    @pytest.mark.asyncio
    async def test_deadline(self, fanout: FanoutScheduler) -> None:
        """Test a slow aggregation raises instead of returning partial data."""
        backend = FakeEcsBackend(services={"alpha-cluster": ["slow"]}, enrich_delay=5)

        with pytest.raises(AggregationTimeoutError, match="within 0.05s"):
            await fanout.aggregate(
                [cluster_task(backend, "alpha-cluster", enrich=True)], timeout=0.05
            )

        await asyncio.sleep(0)
        assert backend.in_flight == 0

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, backend: FakeEcsBackend, fanout: FanoutScheduler) -> None:
        backend.failures["describe_services"] = [KeyError("serviceArn")]

        with pytest.raises(KeyError):
            await fanout.aggregate([cluster_task(backend, "beta-cluster")])
