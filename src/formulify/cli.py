"""Command-line interface for formulify."""

from __future__ import annotations

import json
import math
from pathlib import Path

import click

from formulify import __version__
from formulify.formulas.errors import ENGINE_ERRORS


@click.group()
@click.version_option(version=__version__, prog_name="formulify")
def main() -> None:
    """formulify -- named arithmetic formulas with dependency validation.

    Lifecycle: Define -> Validate -> Evaluate
    """


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _parse_variables(items: tuple[str, ...]) -> dict[str, float]:
    variables: dict[str, float] = {}
    for item in items:
        if "=" not in item:
            raise click.ClickException(f"Invalid --set format: {item!r}. Use name=value.")
        k, v = item.split("=", 1)
        try:
            variables[k.strip()] = float(v)
        except ValueError:
            raise click.ClickException(f"Invalid --set value for {k!r}: {v!r} is not a number")
    return variables


def _open_workspace(directory: str):
    from formulify.project import CatalogFileError
    from formulify.workspace import Workspace

    try:
        return Workspace(Path(directory))
    except (CatalogFileError, *ENGINE_ERRORS) as e:
        raise click.ClickException(str(e))


def _format_value(value: float) -> str:
    if math.isfinite(value) and value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return f"{value:.15g}"


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def new(directory: str) -> None:
    """Scaffold a demo project at DIRECTORY."""
    from formulify.project import scaffold_project

    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


# ---------------------------------------------------------------------------
# Validate / check
# ---------------------------------------------------------------------------


@main.command()
@click.option("--project", "directory", type=click.Path(exists=True), default=".", help="Project directory.")
@click.option("--json", "as_json", is_flag=True, help="Output result as JSON.")
def validate(directory: str, as_json: bool) -> None:
    """Check the catalog for unknown names and cycles."""
    ws = _open_workspace(directory)
    result = ws.validate()

    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2))
    elif result.ok:
        click.echo(f"Catalog OK: {len(ws.catalog)} formula(s)")
        click.echo(f"  Order: {', '.join(result.order)}")
        click.echo(f"  Independent: {', '.join(result.independent)}")
    else:
        click.echo(f"Catalog INVALID: {result.message}")

    if not result.ok:
        raise SystemExit(2)


@main.command()
@click.argument("name")
@click.option("--project", "directory", type=click.Path(exists=True), default=".", help="Project directory.")
def check(name: str, directory: str) -> None:
    """Probe whether NAME evaluates, binding every leaf variable to 1."""
    ws = _open_workspace(directory)
    error = ws.check(name)
    if error is not None:
        click.echo(f"{name}: {error}")
        raise SystemExit(2)
    click.echo(f"{name}: OK")


# ---------------------------------------------------------------------------
# Evaluate
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("name")
@click.option("--project", "directory", type=click.Path(exists=True), default=".", help="Project directory.")
@click.option("--set", "assignments", multiple=True, help="Variable value as name=value.")
@click.option("--json", "as_json", is_flag=True, help="Output result as JSON.")
def eval_cmd(name: str, directory: str, assignments: tuple[str, ...], as_json: bool) -> None:
    """Evaluate the formula NAME."""
    variables = _parse_variables(assignments)
    ws = _open_workspace(directory)
    try:
        value = ws.evaluate(name, variables)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps({"name": name, "variables": variables, "result": value}))
    else:
        click.echo(_format_value(value))


@main.command()
@click.argument("text")
@click.option("--project", "directory", type=click.Path(exists=True), default=".", help="Project directory.")
@click.option("--set", "assignments", multiple=True, help="Variable value as name=value.")
def expr(text: str, directory: str, assignments: tuple[str, ...]) -> None:
    """Evaluate formula TEXT against the project catalog."""
    variables = _parse_variables(assignments)
    ws = _open_workspace(directory)
    try:
        value = ws.evaluate_expression(text, variables)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(_format_value(value))


@main.command()
@click.argument("name")
@click.option("--project", "directory", type=click.Path(exists=True), default=".", help="Project directory.")
def inputs(name: str, directory: str) -> None:
    """List the leaf variables NAME needs."""
    ws = _open_workspace(directory)
    try:
        names = ws.required_variables(name)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e))
    for n in names:
        click.echo(n)


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


@main.command()
@click.argument("name")
@click.option("--scenarios", "scenarios_file", required=True, type=click.Path(exists=True), help="CSV file with one variable set per row.")
@click.option("--project", "directory", type=click.Path(exists=True), default=".", help="Project directory.")
@click.option("--output", "output_file", type=click.Path(), default=None, help="Write results to this CSV file.")
def batch(name: str, scenarios_file: str, directory: str, output_file: str | None) -> None:
    """Evaluate NAME once per row of a scenarios CSV."""
    from formulify.batch import load_scenarios, run_batch

    ws = _open_workspace(directory)
    scenarios = load_scenarios(Path(scenarios_file))
    if scenarios.height == 0:
        click.echo("No scenario rows found in CSV.")
        return

    try:
        summary = run_batch(ws, name, scenarios)
    except ENGINE_ERRORS as e:
        raise click.ClickException(str(e))

    click.echo(f"Batch ID: {summary['batch_id']}")
    click.echo(f"Total: {summary['total']}  OK: {summary['ok']}  Failed: {summary['failed']}")
    frame = summary["results"]
    for idx, row in enumerate(frame.iter_rows(named=True)):
        if row["error"] is None:
            click.echo(f"  [{idx}] OK  {_format_value(row['result'])}")
        else:
            click.echo(f"  [{idx}] FAIL  {row['error']}")

    if output_file:
        frame.write_csv(Path(output_file))
        click.echo(f"Results: {output_file}")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.option("--project", "directory", type=click.Path(exists=True), default=".", help="Project directory.")
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--formula", default=None, help="Filter by formula name.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    formula: str | None,
    limit: int,
) -> None:
    """Show the structured event log."""
    from formulify.logging.sink import EventSink
    from formulify.project import CatalogFileError, load_project_config

    root = Path(directory)
    try:
        cfg = load_project_config(root)
    except CatalogFileError as e:
        raise click.ClickException(str(e))
    sink = EventSink(root, tail_bytes=int(cfg["logging_tail_bytes"]))
    events = sink.read_global(level=level, event_type=event_type, formula=formula, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


if __name__ == "__main__":
    main()
