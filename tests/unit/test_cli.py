"""Test CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from typer.testing import CliRunner

from ceedraft import __version__
from ceedraft.cli import app

if TYPE_CHECKING:
    from pathlib import Path

runner = CliRunner()


def _write_graph(tmp_path: Path, payload: Any) -> Path:
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(payload))
    return path


def test_version_command() -> None:
    """Test ceedraft version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"v{__version__}" in result.stdout


def test_no_args_shows_help() -> None:
    """Test that no arguments shows help."""
    result = runner.invoke(app, [])
    # no_args_is_help=True returns exit code 2 (not 0 like --help)
    assert result.exit_code == 2
    assert "causal decision graphs" in result.stdout


def test_stages_command() -> None:
    """Stages are listed in execution order."""
    result = runner.invoke(app, ["stages"])
    assert result.exit_code == 0
    assert "draft" in result.stdout
    assert "threshold_sweep" in result.stdout
    assert result.stdout.index("draft") < result.stdout.index("package")


def test_stages_markdown() -> None:
    """--markdown prints the registry table verbatim."""
    result = runner.invoke(app, ["stages", "--markdown"])
    assert result.exit_code == 0
    assert "| Priority | Name |" in result.stdout


# --- Repair Command Tests ---


def test_repair_valid_graph(tmp_path: Path, valid_graph_payload: dict[str, Any]) -> None:
    """A clean graph is finalized and summarized."""
    result = runner.invoke(app, ["repair", str(_write_graph(tmp_path, valid_graph_payload))])
    assert result.exit_code == 0
    assert "Nodes" in result.stdout
    assert "Quality" in result.stdout


def test_repair_unwraps_response_body(
    tmp_path: Path, valid_graph_payload: dict[str, Any]
) -> None:
    """A previous response body with a graph key is accepted."""
    path = _write_graph(tmp_path, {"graph": valid_graph_payload, "quality": {}})
    result = runner.invoke(app, ["repair", str(path)])
    assert result.exit_code == 0


def test_repair_reports_warnings(
    tmp_path: Path, droppable_status_quo_payload: dict[str, Any]
) -> None:
    """Skipped model-assisted repair shows up as a warning."""
    path = _write_graph(tmp_path, droppable_status_quo_payload)
    result = runner.invoke(app, ["repair", str(path)])
    assert result.exit_code == 0
    assert "LLM_REPAIR_SKIPPED" in result.stdout
    assert "droppable" in result.stdout


def test_repair_json_output(tmp_path: Path, valid_graph_payload: dict[str, Any]) -> None:
    """--json prints the full response body."""
    path = _write_graph(tmp_path, valid_graph_payload)
    result = runner.invoke(app, ["repair", str(path), "--json"])
    assert result.exit_code == 0
    assert '"quality"' in result.stdout
    assert '"goal_profit"' in result.stdout


def test_repair_empty_graph_fails(tmp_path: Path) -> None:
    """An empty graph is rejected with a non-zero exit."""
    path = _write_graph(tmp_path, {"nodes": [], "edges": []})
    result = runner.invoke(app, ["repair", str(path)])
    assert result.exit_code == 1
    assert "CEE_GRAPH_INVALID" in result.stdout
    assert "empty_graph" in result.stdout


def test_repair_missing_file(tmp_path: Path) -> None:
    """A missing input file exits with an error."""
    result = runner.invoke(app, ["repair", str(tmp_path / "missing.json")])
    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_repair_invalid_json(tmp_path: Path) -> None:
    """Unparseable input exits with an error."""
    path = tmp_path / "graph.json"
    path.write_text("{not json")
    result = runner.invoke(app, ["repair", str(path)])
    assert result.exit_code == 1
    assert "JSON" in result.stdout


def test_repair_bad_config(tmp_path: Path, valid_graph_payload: dict[str, Any]) -> None:
    """A missing config file is reported before any work is done."""
    path = _write_graph(tmp_path, valid_graph_payload)
    result = runner.invoke(
        app, ["repair", str(path), "--config", str(tmp_path / "nope.yaml")]
    )
    assert result.exit_code == 1
    assert "nope.yaml" in result.stdout
