"""CLI entry point for casegate.

Usage:
    casegate verify cases/acme-fraud
    casegate verify cases/acme-fraud --json --fix
    casegate gaps cases/acme-fraud --write
    casegate gates
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from casegate.config import settings
from casegate.gates import case_files
from casegate.gates.base import GateContext
from casegate.models import Gap, GapList, VerificationReport
from casegate.verify import service
from casegate.verify.errors import RunCancelled
from casegate.verify.registry import default_registry
from casegate.verify.report import build_remediation_tasks

logger = logging.getLogger(__name__)
console = Console()

CASE_DIR = click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path)


def _setup_logging():
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _write_control(case_dir: Path, filename: str, payload: dict) -> Path:
    control_dir = case_dir / "control"
    control_dir.mkdir(parents=True, exist_ok=True)
    path = control_dir / filename
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


def _read_iteration(case_dir: Path) -> int:
    """Loop iteration from state.json; best-effort, defaults to 1."""
    path = case_dir / "state.json"
    if not path.is_file():
        return 1
    try:
        state = case_files.load_json(path)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed %s", path)
        return 1
    iteration = state.get("iteration") if isinstance(state, dict) else None
    return iteration if isinstance(iteration, int) and iteration > 0 else 1


def _report_payload(report: VerificationReport, fix: bool) -> dict:
    payload = report.model_dump(mode="json")
    if report.overall_passed:
        payload.pop("blocking", None)
        payload.pop("advisory", None)
    if fix:
        gaps = GapList(blocking=report.blocking or [], advisory=report.advisory or [])
        payload["remediation_tasks"] = [t.model_dump(mode="json") for t in build_remediation_tasks(gaps)]
    return payload


def _gaps_payload(case_dir: Path, gaps: GapList) -> dict:
    return {
        "case_dir": str(case_dir),
        "stats": gaps.stats.model_dump(),
        "blocking": [g.model_dump(mode="json") for g in gaps.blocking],
        "advisory": [g.model_dump(mode="json") for g in gaps.advisory],
    }


def _print_gaps(title: str, gaps: list[Gap], color: str):
    if not gaps:
        return
    table = Table(title=title, title_style=f"bold {color}", show_lines=False)
    table.add_column("Gap", style="bold")
    table.add_column("Type")
    table.add_column("Severity")
    table.add_column("Reported by")
    table.add_column("Description", overflow="fold")
    for gap in gaps:
        table.add_row(
            gap.gap_id, gap.type.value, gap.severity.value, ", ".join(gap.reported_by), gap.description
        )
    console.print(table)


def _print_report(report: VerificationReport, fix: bool):
    console.print(
        Panel(
            f"[bold]Termination Gate Verification[/bold]\nCase: {report.case_dir}",
            title="casegate",
            border_style="blue",
        )
    )
    table = Table(show_header=True, header_style="bold")
    table.add_column("Gate")
    table.add_column("Status")
    table.add_column("Kind")
    table.add_column("ms", justify="right")
    table.add_column("Reason", overflow="fold")
    for name, gate in report.gates.items():
        status = "[green]PASS[/green]" if gate.passed else "[red]FAIL[/red]"
        kind = gate.failure_kind.value if gate.failure_kind else ""
        table.add_row(name, status, kind, str(gate.duration_ms), gate.reason or "")
    console.print(table)

    s = report.summary
    console.print(f"[bold]Gates passed:[/bold] {s.passed}/{s.total}")
    if report.overall_passed:
        console.print("[bold green]OVERALL: PASS[/bold green] - READY TO TERMINATE")
        return

    console.print("[bold red]OVERALL: FAIL[/bold red] - CANNOT TERMINATE")
    console.print(f"[bold]Blocking gates:[/bold] {', '.join(report.blocking_gates)}")
    console.print()
    _print_gaps("Blocking gaps", report.blocking or [], "red")
    _print_gaps("Advisory gaps", report.advisory or [], "yellow")

    if fix:
        gaps = GapList(blocking=report.blocking or [], advisory=report.advisory or [])
        tasks = build_remediation_tasks(gaps)
        if tasks:
            console.print()
            console.print("[bold]Remediation tasks:[/bold]")
            for task in tasks:
                console.print(f"- [{task.id}] {task.description}", markup=False)


@click.group("casegate")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Verbose logging")
def cli(verbose: bool):
    """Termination gates and gap backlog for research cases."""
    if verbose:
        settings.log_level = "DEBUG"
    _setup_logging()


@cli.command("verify")
@click.argument("case_dir", type=CASE_DIR)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON")
@click.option("--fix", is_flag=True, default=False, help="Include remediation tasks for blocking gaps")
@click.option(
    "--write",
    is_flag=True,
    default=False,
    help="Write control/gate_results.json after evaluation",
)
def verify(case_dir: Path, as_json: bool, fix: bool, write: bool):
    """Run every gate against CASE_DIR. Exit 0 only when all gates pass."""
    try:
        report = service.verify_case(case_dir, ctx=GateContext.from_settings(settings))
    except RunCancelled as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(130)

    payload = _report_payload(report, fix)
    if write:
        path = _write_control(case_dir, "gate_results.json", {"generated_at": _timestamp(), **payload})
        if not as_json:
            console.print(f"[bold green]Wrote:[/bold green] {path}")

    if as_json:
        click.echo(json.dumps(payload, indent=2))
    else:
        _print_report(report, fix)

    sys.exit(0 if report.overall_passed else 1)


@cli.command("gaps")
@click.argument("case_dir", type=CASE_DIR)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the gap list as JSON")
@click.option("--write", is_flag=True, default=False, help="Write control/gaps.json after evaluation")
def gaps(case_dir: Path, as_json: bool, write: bool):
    """Derive the gap backlog for CASE_DIR. Exit 0 only when nothing is blocking."""
    try:
        gap_list = service.generate_gaps(case_dir, ctx=GateContext.from_settings(settings))
    except RunCancelled as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(130)

    payload = _gaps_payload(case_dir, gap_list)
    if write:
        generated_at = _timestamp()
        iteration = _read_iteration(case_dir)
        path = _write_control(
            case_dir, "gaps.json", {"generated_at": generated_at, "iteration": iteration, **payload}
        )
        digest = _write_control(
            case_dir,
            "digest.json",
            {
                "iteration": iteration,
                "generated_at": generated_at,
                "blocking_gaps": len(gap_list.blocking),
                "total_gaps": gap_list.stats.total_gaps,
                "can_terminate": not gap_list.blocking,
            },
        )
        if not as_json:
            console.print(f"[bold green]Wrote:[/bold green] {path}")
            console.print(f"[bold green]Wrote:[/bold green] {digest}")

    if as_json:
        click.echo(json.dumps(payload, indent=2))
    else:
        stats = gap_list.stats
        console.print(
            f"[bold]Gaps:[/bold] {stats.total_gaps} total, "
            f"[red]{stats.blocking_count} blocking[/red], "
            f"{stats.high_count} high, {stats.medium_count} medium, {stats.low_count} low"
        )
        _print_gaps("Blocking gaps", gap_list.blocking, "red")
        _print_gaps("Advisory gaps", gap_list.advisory, "yellow")

    sys.exit(1 if gap_list.blocking else 0)


@cli.command("gates")
def gates():
    """List the registered gates in evaluation order."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Gate")
    table.add_column("Title")
    table.add_column("Timeout (s)", justify="right")
    for i, spec in enumerate(default_registry().specs(), 1):
        timeout = spec.timeout_seconds if spec.timeout_seconds is not None else settings.gate_timeout_seconds
        table.add_row(str(i), spec.name, spec.title, f"{timeout:g}")
    console.print(table)


def main():
    cli()
