"""
ECS Dashboard CLI
Command-line interface for the ECS dashboard API.
"""

import json
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .client import DashboardClient, RateLimitedError


console = Console()


def get_client(url: str, api_key: Optional[str] = None) -> DashboardClient:
    """Create a client instance."""
    return DashboardClient(base_url=url, api_key=api_key)


def fail(error: Exception) -> None:
    if isinstance(error, RateLimitedError):
        wait = f" Retry in {error.retry_after}s." if error.retry_after else ""
        console.print(f"⏳ [yellow]{error.message}.{wait}[/yellow]")
    else:
        console.print(f"❌ [red]Error: {error}[/red]")
    sys.exit(1)


@click.group()
@click.option("--url", "-u", default="http://localhost:8000", help="API server URL")
@click.option("--api-key", "-k", envvar="ECS_DASHBOARD_API_KEY", help="API key")
@click.pass_context
def cli(ctx, url: str, api_key: Optional[str]):
    """ECS Dashboard CLI - cluster status, deployments and metrics."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["api_key"] = api_key


@cli.command()
@click.pass_context
def health(ctx):
    """Check API and AWS connectivity."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client:
        try:
            client.health()
            aws = client.aws_health()
        except Exception as e:
            console.print(f"❌ [red]Connection failed: {e}[/red]")
            sys.exit(1)

        if aws.get("status") == "healthy":
            console.print("✅ [green]API and AWS are healthy[/green]")
        else:
            console.print("⚠️ [yellow]API is up but AWS is unreachable[/yellow]")
        console.print(f"   Region: {aws.get('region', 'unknown')}")
        console.print(f"   {aws.get('message', '')}")


@cli.command()
@click.option("--cluster", "-c", "clusters", multiple=True, help="Cluster (repeatable)")
@click.option("--definitions", is_flag=True, help="Include task definitions")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx, clusters: tuple[str, ...], definitions: bool, as_json: bool):
    """Show cluster and service status."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client:
        try:
            results = client.cluster_status(list(clusters), include_definitions=definitions)
        except Exception as e:
            fail(e)
            return

        if as_json:
            data = [
                {
                    "cluster": c.name,
                    "status": c.status,
                    "error": c.error,
                    "services": [
                        {
                            "name": s.service_name,
                            "running": s.running_count,
                            "desired": s.desired_count,
                        }
                        for s in c.services
                    ],
                }
                for c in results
            ]
            console.print(json.dumps(data, indent=2))
            return

        for cluster in results:
            if cluster.error:
                console.print(Panel(
                    cluster.error,
                    title=f"[red]{cluster.name} ({cluster.status})[/red]",
                    border_style="red",
                ))
                continue

            table = Table(
                title=f"{cluster.name} [{cluster.status}] "
                f"running={cluster.running_tasks_count} pending={cluster.pending_tasks_count}"
            )
            table.add_column("Service", style="cyan")
            table.add_column("Status")
            table.add_column("Running", justify="right")
            table.add_column("Desired", justify="right")
            table.add_column("Task Definition", style="dim")

            for s in cluster.services:
                color = "green" if s.healthy else "yellow"
                table.add_row(
                    s.service_name,
                    s.status,
                    f"[{color}]{s.running_count}[/{color}]",
                    str(s.desired_count),
                    s.task_definition,
                )

            console.print(table)
            for warning in cluster.warnings:
                console.print(f"[dim]warning: {warning}[/dim]")


@cli.command()
@click.argument("cluster")
@click.pass_context
def services(ctx, cluster: str):
    """List the services of a cluster."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client:
        try:
            service_list = client.list_services(cluster)
        except Exception as e:
            fail(e)
            return

        table = Table(title=f"Services in {cluster} ({len(service_list)})")
        table.add_column("Service", style="cyan")
        table.add_column("Status")
        table.add_column("Running/Desired", justify="right")
        for s in service_list:
            table.add_row(s.service_name, s.status, f"{s.running_count}/{s.desired_count}")
        console.print(table)


@cli.command()
@click.argument("cluster")
@click.argument("service_names", nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def redeploy(ctx, cluster: str, service_names: tuple[str, ...], yes: bool):
    """Force a new deployment of one or more services."""
    if not yes:
        click.confirm(
            f"Force new deployment of {len(service_names)} service(s) in {cluster}?",
            abort=True,
        )

    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client:
        try:
            outcomes = client.force_deploy(cluster, list(service_names))
        except Exception as e:
            fail(e)
            return

        for outcome in outcomes:
            mark = "✅ [green]" if outcome.success else "❌ [red]"
            close = "[/green]" if outcome.success else "[/red]"
            console.print(f"{mark}{outcome.service_name}{close}: {outcome.message}")

        if not all(o.success for o in outcomes):
            sys.exit(1)


@cli.command()
@click.argument("cluster")
@click.argument("service")
@click.option("--hours", "-h", default=1.0, help="Hours back from now")
@click.option("--type", "metric_type", default="both", type=click.Choice(["cpu", "memory", "both"]))
@click.pass_context
def metrics(ctx, cluster: str, service: str, hours: float, metric_type: str):
    """Show CPU/memory utilization of a service."""
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=hours)

    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client:
        try:
            series = client.metrics_range(
                cluster, service, start.isoformat(), end.isoformat(), metric_type
            )
        except Exception as e:
            fail(e)
            return

        table = Table(title=f"{cluster}/{service} (period {series.period}s)")
        table.add_column("Timestamp", style="dim")
        table.add_column("CPU %", justify="right")
        table.add_column("Memory %", justify="right")

        memory = {p.timestamp: p.value for p in series.memory}
        cpu = {p.timestamp: p.value for p in series.cpu}
        for ts in sorted(set(cpu) | set(memory)):
            table.add_row(
                ts,
                f"{cpu[ts]:.2f}" if ts in cpu else "-",
                f"{memory[ts]:.2f}" if ts in memory else "-",
            )
        console.print(table)


def main():
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
