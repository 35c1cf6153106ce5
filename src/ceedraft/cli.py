"""ceedraft CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ceedraft.observability import close_file_logging, configure_logging

if TYPE_CHECKING:
    from ceedraft.pipeline import PipelineConfig, PipelineResponse

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="ceedraft",
    help="Draft, repair and validate causal decision graphs.",
    no_args_is_help=True,
)
console = Console()

DEFAULT_LOG_DIR = Path("logs")


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_enabled: Annotated[
        bool,
        typer.Option("--log", help="Enable file logging to {log-dir}/debug.jsonl."),
    ] = False,
    log_dir: Annotated[
        Path,
        typer.Option("--log-dir", help="Directory for --log output.", envvar="CEE_LOG_DIR"),
    ] = DEFAULT_LOG_DIR,
) -> None:
    """Draft, repair and validate causal decision graphs."""
    if log_enabled:
        configure_logging(verbosity=verbose, log_to_file=True, log_dir=log_dir)
        atexit.register(close_file_logging)
    else:
        configure_logging(verbosity=verbose)


def _load_config(config_path: Path | None) -> PipelineConfig:
    from ceedraft.pipeline import PipelineConfig, PipelineConfigError, load_pipeline_config

    if config_path is None:
        return PipelineConfig().with_env_overrides()
    try:
        return load_pipeline_config(config_path).with_env_overrides()
    except PipelineConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _print_response(response: PipelineResponse, as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps(response.body, default=str))
        return

    body = response.body
    if not response.ok:
        console.print(f"[red]{body.get('code')}[/red] ({response.status_code}): {body['message']}")
        details: dict[str, Any] = body.get("details", {})
        for key in ("reason", "missing_kinds", "stage"):
            if key in details:
                console.print(f"  {key}: {details[key]}")
        return

    graph = body["graph"]
    summary = body["trace"]["pipeline"].get("repair_summary", {})
    table = Table(title="Graph")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Nodes", str(len(graph.get("nodes", []))))
    table.add_row("Edges", str(len(graph.get("edges", []))))
    table.add_row("Quality", str(body["quality"]["overall"]))
    table.add_row("Repairs", str(summary.get("deterministic_repairs_count", 0)))
    table.add_row("Status quo", str(summary.get("status_quo_action", "none")))
    remaining = summary.get("remaining_violations") or []
    table.add_row("Remaining", ", ".join(remaining) if remaining else "-")
    console.print(table)
    for warning in body.get("structural_warnings", []):
        console.print(f"[yellow]{warning['code']}[/yellow]: {warning['message']}")


@app.command()
def repair(
    file: Annotated[Path, typer.Argument(help="JSON graph with nodes and edges.")],
    brief: Annotated[
        str, typer.Option("--brief", "-b", help="Problem statement for goal inference.")
    ] = "",
    goal: Annotated[str | None, typer.Option("--goal", help="Explicit goal label.")] = None,
    config_path: Annotated[
        Path | None, typer.Option("--config", "-c", help="Pipeline config YAML.")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the full response body.")] = False,
) -> None:
    """Repair, validate and finalize an existing graph without calling a model."""
    from ceedraft.pipeline import DraftRequest, PipelineOrchestrator

    if not file.exists():
        console.print(f"[red]Error:[/red] {file} not found")
        raise typer.Exit(1)
    try:
        payload = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {file} is not valid JSON: {e}")
        raise typer.Exit(1) from None

    if isinstance(payload, dict) and isinstance(payload.get("graph"), dict):
        payload = payload["graph"]

    orchestrator = PipelineOrchestrator(_load_config(config_path))
    request = DraftRequest(brief=brief, explicit_goal=goal)
    response = asyncio.run(orchestrator.run_graph(request, payload))
    _print_response(response, as_json)
    if not response.ok:
        raise typer.Exit(1)


@app.command()
def draft(
    brief: Annotated[str, typer.Argument(help="Problem statement.")],
    model: Annotated[
        str | None, typer.Option("--model", "-m", help="Model as provider/model.")
    ] = None,
    config_path: Annotated[
        Path | None, typer.Option("--config", "-c", help="Pipeline config YAML.")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the full response body.")] = False,
) -> None:
    """Draft a graph from a brief and run the full pipeline."""
    from ceedraft.pipeline import DraftRequest, PipelineOrchestrator

    orchestrator = PipelineOrchestrator(_load_config(config_path))
    request = DraftRequest(brief=brief, model_override=model)
    with console.status("Drafting..."):
        response = asyncio.run(orchestrator.run(request))
    _print_response(response, as_json)
    if not response.ok:
        raise typer.Exit(1)


@app.command()
def stages(
    markdown: Annotated[
        bool, typer.Option("--markdown", help="Print a Markdown table instead.")
    ] = False,
) -> None:
    """Show registered pipeline stages in execution order."""
    from ceedraft.pipeline.stages import get_registry

    registry = get_registry()
    if markdown:
        console.print(registry.stage_table(), markup=False, highlight=False)
        return

    table = Table(title="Pipeline stages")
    table.add_column("Priority", justify="right")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Depends on")
    for name in registry.execution_order():
        meta = registry.get_meta(name)
        if meta is None:
            continue
        table.add_row(
            str(meta.priority),
            name,
            "llm" if meta.llm_bound else "deterministic",
            ", ".join(meta.depends_on) or "-",
        )
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from ceedraft import __version__

    console.print(f"ceedraft v{__version__}")


if __name__ == "__main__":
    app()
