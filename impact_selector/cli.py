"""Typer-based CLI for impact-based test selection."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from . import __version__, config
from .bridge import execute, plan_invocation
from .config_manager import SelectorSettings, load_settings, save_settings
from .errors import SelectorError
from .pipeline import AnalysisRun, run_analysis
from .render import render_report
from .selection import EMPTY_SELECTION_JSON, Selection, build_selection

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="🎯 Impact Selector: run only the tests a commit can break.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"impact-selector v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    )
):
    """Impact Selector: precise test selection from git history and test ASTs."""
    pass


def _configure_logging(verbose: bool, json_output: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif json_output:
        # stdout must carry nothing but the JSON object
        level = logging.CRITICAL + 1
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _settings(repo: Path, workers: Optional[int], timeout: Optional[float]) -> SelectorSettings:
    return load_settings(repo).with_overrides(max_workers=workers, timeout=timeout)


def _fail(message: str, remediation: str, json_output: bool) -> NoReturn:
    if json_output:
        typer.echo(EMPTY_SELECTION_JSON)
    else:
        err_console.print(f"[red]✖ Error: {message}[/red]")
        if remediation:
            err_console.print(f"[dim]  {remediation}[/dim]")
    raise typer.Exit(code=1)


def _analyze(
    repo: Path,
    commit: Optional[str],
    analyze_all: bool,
    json_output: bool,
    workers: Optional[int],
    timeout: Optional[float],
) -> AnalysisRun:
    try:
        settings = _settings(repo, workers, timeout)
        return run_analysis(repo, commit=commit, analyze_all=analyze_all, settings=settings)
    except SelectorError as exc:
        _fail(str(exc), exc.remediation, json_output)
    except Exception as exc:  # noqa: BLE001
        logging.getLogger(__name__).debug("Unexpected failure", exc_info=True)
        _fail(f"An unexpected error occurred: {exc}", "", json_output)


RepoOption = typer.Option(..., "--repo", "-r", help="Path to the Git repository.")
CommitOption = typer.Option(None, "--commit", "-c", help="Commit SHA or ref to analyze.")
AllOption = typer.Option(False, "--all", help="Analyze every test in the repository (ignores git).")
WorkersOption = typer.Option(None, "--workers", "-w", min=1, help="Parse files on this many threads.")
TimeoutOption = typer.Option(None, "--timeout", "-t", min=0.0, help="Abort analysis after this many seconds.")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr.")


@app.command("select")
def select(
    repo: Path = RepoOption,
    commit: Optional[str] = CommitOption,
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON (for CI pipelines)."),
    full_report: bool = typer.Option(
        False, "--report", help="With --json, output the full per-file analysis report instead of the selection.",
    ),
    analyze_all: bool = AllOption,
    workers: Optional[int] = WorkersOption,
    timeout: Optional[float] = TimeoutOption,
    verbose: bool = VerboseOption,
):
    """🔍 Report which tests a commit impacts.

    Example:
      impact-selector select --repo . --commit HEAD
      impact-selector select --repo . --commit a1b2c3d --json
      impact-selector select --repo . --commit a1b2c3d --json --report
    """
    _configure_logging(verbose, json_output)
    run = _analyze(repo, commit, analyze_all, json_output, workers, timeout)

    if not analyze_all and not run.changes:
        if json_output:
            typer.echo(EMPTY_SELECTION_JSON)
            raise typer.Exit(code=0)
        console.print()
        console.print("[yellow]⚠ No file changes found for this commit.[/yellow]")
        console.print("[dim]This could mean:[/dim]")
        console.print("[dim]  • The commit is empty (e.g. a merge with no conflicts)[/dim]")
        console.print("[dim]  • All changes have been reverted[/dim]")
        raise typer.Exit(code=0)

    if json_output and full_report:
        typer.echo(json.dumps(run.report.to_dict()))
    elif json_output:
        typer.echo(build_selection(run.report).to_json())
    else:
        render_report(run.report, console, run.parent_commit)


@app.command("run")
def run_tests(
    repo: Path = RepoOption,
    commit: str = typer.Option("HEAD", "--commit", "-c", help="Commit SHA or ref to analyze."),
    runner: Optional[List[str]] = typer.Option(
        None, "--runner", help="Runner command word; repeat for each word. Default: npx playwright test.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the runner command without executing it."),
    workers: Optional[int] = WorkersOption,
    timeout: Optional[float] = TimeoutOption,
    verbose: bool = VerboseOption,
):
    """🚀 Analyze a commit, then launch the test runner on the impacted tests.

    Uses --grep for granular runs, the impacted file list when names are
    dynamic or the pattern is too long, and the full suite when analysis
    fails.
    """
    _configure_logging(verbose, json_output=False)
    selection: Optional[Selection] = None
    settings = SelectorSettings()
    try:
        settings = _settings(repo, workers, timeout)
        selection = build_selection(run_analysis(repo, commit=commit, settings=settings).report)
    except SelectorError as exc:
        err_console.print(f"[red]✖ {exc}[/red]")
        if exc.remediation:
            err_console.print(f"[dim]  {exc.remediation}[/dim]")
        err_console.print("[yellow]⚠ Defaulting to RUN ALL TESTS.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        logging.getLogger(__name__).debug("Unexpected failure", exc_info=True)
        err_console.print(f"[red]✖ An unexpected error occurred: {exc}[/red]")
        err_console.print("[yellow]⚠ Defaulting to RUN ALL TESTS.[/yellow]")

    plan = plan_invocation(
        selection, runner or settings.runner_command, settings.max_command_length,
    )
    if plan.mode == "skip":
        console.print("[green]✅ No impacted tests found. Skipping execution.[/green]")
        raise typer.Exit(code=0)

    if selection is not None:
        console.print(f"📁 Impacted files: {len(selection.files)}")
        console.print(f"🧪 Impacted tests: {len(selection.tests)}")
    console.print(f"🚀 {plan.reason}")
    console.print(f"   Command: {plan.command_line}")
    if dry_run:
        raise typer.Exit(code=0)

    code = execute(plan, repo)
    if code == 0:
        console.print("[green]✅ All tests passed![/green]")
    else:
        console.print(f"[red]❌ Tests failed with exit code: {code}[/red]")
    raise typer.Exit(code=code)


@app.command("init")
def init_config(
    repo: Path = typer.Option(Path("."), "--repo", "-r", exists=True, file_okay=False, help="Repository root."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing settings table."),
):
    """⚙️  Write a .impact-selector.toml with the default settings."""
    target = repo / config.PROJECT_CONFIG_NAME
    if target.exists() and not force:
        typer.echo(f"{target} already exists (use --force to overwrite).")
        raise typer.Exit(code=1)
    save_settings(SelectorSettings(), target)
    typer.echo(f"Wrote {target}")


if __name__ == "__main__":
    app()
