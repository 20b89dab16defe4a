"""Command line interface for run-events.

Commands:
- `run-events show RUN_FILE`: print the event that would be emitted for a run
- `run-events emit RUN_FILE`: deliver the event and wait for the outcome

Example:
    $ run-events show taskrun.yaml
    $ run-events emit taskrun.yaml --sink https://events.example.com/
    $ run-events emit pipelinerun.json --config run-events.yaml -v
"""

import logging
from pathlib import Path

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from run_events.core.async_utils import run_until_delivered
from run_events.core.config import EventsConfig, load_config, load_config_file
from run_events.core.exceptions import ConfigError, RunEventsError
from run_events.delivery.pipeline import DeliveryState, build_pipeline
from run_events.events.envelope import event_for_run
from run_events.runs.models import RunObject, parse_run

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2

app = typer.Typer(
    name="run-events",
    help="Emit CloudEvents for TaskRun and PipelineRun lifecycle transitions",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_run(run_file: Path) -> RunObject:
    """Load a TaskRun or PipelineRun manifest (YAML or JSON)."""
    if not run_file.is_file():
        console.print(f"[red]Error:[/red] Run file not found: {run_file}")
        raise typer.Exit(code=EXIT_ERROR)
    try:
        data = yaml.safe_load(run_file.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        console.print(f"[red]Error reading {run_file}:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_ERROR) from None
    if not isinstance(data, dict):
        console.print(f"[red]Error:[/red] {run_file} does not contain a run manifest")
        raise typer.Exit(code=EXIT_ERROR)
    try:
        return parse_run(data)
    except (RunEventsError, ValidationError) as e:
        console.print(f"[red]Invalid run manifest:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_ERROR) from None


def _load_config(config_file: Path | None, sink: str | None) -> EventsConfig:
    try:
        config = load_config_file(config_file) if config_file is not None else load_config()
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None
    if sink:
        transport = config.transport.model_copy(update={"sink_url": sink})
        config = config.model_copy(update={"transport": transport})
    return config


async def _emit(run: RunObject, config: EventsConfig) -> DeliveryState:
    async with build_pipeline(config) as pipeline:
        handle = await pipeline.deliver(run)
        logger.info("Dispatched %s for %s", handle.envelope.type.value, handle.envelope.subject)
        return await handle.wait()


@app.command(name="show")
def show_command(
    run_file: Path = typer.Argument(..., help="TaskRun or PipelineRun manifest (YAML or JSON)"),
) -> None:
    """Print the CloudEvent that would be emitted for a run."""
    run = _load_run(run_file)
    try:
        envelope = event_for_run(run)
    except RunEventsError as e:
        console.print(f"[red]Cannot build event:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_ERROR) from None
    console.print(f"[bold]{envelope.type.value}[/bold] ({envelope.status.value})")
    console.print_json(data=envelope.to_structured())


@app.command(name="emit")
def emit_command(
    run_file: Path = typer.Argument(..., help="TaskRun or PipelineRun manifest (YAML or JSON)"),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to run-events YAML config",
    ),
    sink: str | None = typer.Option(None, "--sink", "-s", help="Override the sink URL"),
) -> None:
    """Deliver the CloudEvent for a run and wait for the outcome.

    Exits with code 0 when the sink acknowledged the event, 1 when delivery
    failed, and 2 on configuration errors.
    """
    config = _load_config(config_file, sink)
    if not config.enabled:
        console.print("[yellow]Run events are disabled in configuration[/yellow]")
        raise typer.Exit(code=EXIT_SUCCESS)

    run = _load_run(run_file)
    try:
        state = run_until_delivered(_emit(run, config))
    except RunEventsError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=EXIT_ERROR) from None

    if state is DeliveryState.ACKNOWLEDGED:
        console.print(f"[green]Delivered[/green] event for {run.name}")
        raise typer.Exit(code=EXIT_SUCCESS)
    console.print(f"[red]Delivery {state.value}[/red] for {run.name}")
    raise typer.Exit(code=EXIT_ERROR)


if __name__ == "__main__":
    app()
