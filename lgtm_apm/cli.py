"""
LGTM APM CLI

Command-line interface for inspecting configuration, probing the collector
and running scripts under APM.
"""

import sys
import runpy
import logging
from pathlib import Path
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from . import __version__
from .config import APMConfig, load_config, create_default_config


console = Console()


def resolve_config(config_path: Optional[str]) -> APMConfig:
    """Config file if given, otherwise environment variables."""
    if config_path:
        return load_config(config_path)
    return APMConfig.from_env()


@click.group()
@click.version_option(__version__, prog_name="lgtm-apm")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path: str, verbose: bool):
    """LGTM APM - OpenTelemetry bootstrap for Grafana Alloy / Tempo / Mimir"""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Show the resolved configuration."""
    try:
        config = resolve_config(ctx.obj.get("config_path"))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    table = Table(title="APM Configuration")
    table.add_column("Option", style="cyan")
    table.add_column("Value")

    table.add_row("service_name", config.service_name)
    table.add_row("service_version", config.service_version)
    table.add_row("environment", config.environment)
    table.add_row("collector_url", config.collector_url)
    table.add_row("traces", config.traces_endpoint)
    table.add_row("metrics", config.metrics_endpoint if config.enable_metrics else "[dim]disabled[/dim]")
    table.add_row("logs", config.logs_endpoint if config.enable_logs else "[dim]disabled[/dim]")
    table.add_row("org_id", config.org_id or "-")
    for name in sorted(config.additional_headers):
        table.add_row(f"header {name}", "[dim]<set>[/dim]")
    table.add_row("auto_instrument", "✓" if config.auto_instrument else "✗")
    if config.disabled_instrumentations:
        table.add_row("disabled", ", ".join(config.disabled_instrumentations))

    console.print(table)


@cli.command()
@click.option("--output", "-o", default="apm.yaml", type=click.Path(), help="File to write")
def init(output: str):
    """Initialize a new configuration file."""
    config_path = Path(output)

    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    config_path.write_text(create_default_config())
    console.print(f"[green]✓[/green] Created {config_path}")
    console.print("\nEdit the file, then run your app under APM:")
    console.print(f"  [cyan]lgtm-apm -c {config_path} run app.py[/cyan]")


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(ctx, script: str, args: tuple):
    """Run a Python script with APM started."""
    from .telemetry import init_apm, shutdown

    try:
        config = resolve_config(ctx.obj.get("config_path"))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    init_apm(config)
    console.print(Panel(
        f"[bold]LGTM APM v{__version__}[/bold]\n"
        f"Service [cyan]{config.service_name}[/cyan] → {config.collector_url}",
        title="🚀 Starting"
    ))

    argv = sys.argv
    sys.argv = [script, *args]
    try:
        runpy.run_path(script, run_name="__main__")
    finally:
        sys.argv = argv
        shutdown()


@cli.command()
@click.option("--timeout", "-t", default=5.0, type=float, help="Request timeout in seconds")
@click.pass_context
def ping(ctx, timeout: float):
    """Check that the collector accepts OTLP/HTTP traces."""
    try:
        config = resolve_config(ctx.obj.get("config_path"))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    url = config.traces_endpoint
    headers = {"Content-Type": "application/x-protobuf", **config.headers}

    try:
        # An empty body is a valid, empty ExportTraceServiceRequest
        response = httpx.post(url, content=b"", headers=headers, timeout=timeout)
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/red] Collector unreachable at {url}: {e}")
        sys.exit(1)

    if response.is_success:
        console.print(f"[green]✓[/green] Collector accepted request at {url} ({response.status_code})")
    else:
        console.print(f"[red]✗[/red] Collector rejected request at {url} ({response.status_code})")
        sys.exit(1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
