"""Human-readable report rendering."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.tree import Tree

from .models import AnalysisReport, FileAnalysisResult, FileStatus, ImpactType

STATUS_STYLE = {
    FileStatus.ADDED: ("green", "✚"),
    FileStatus.MODIFIED: ("yellow", "●"),
    FileStatus.DELETED: ("red", "✖"),
    FileStatus.RENAMED: ("blue", "➜"),
}

IMPACT_LABEL = {
    ImpactType.DIRECT: "[cyan]\\[DIRECT IMPACT][/cyan]",
    ImpactType.DEPENDENCY: "[magenta]\\[DEPENDENCY][/magenta]",
    ImpactType.REMOVED: "[red]\\[REMOVED][/red]",
}


def _file_tree(result: FileAnalysisResult) -> Tree:
    color, icon = STATUS_STYLE.get(result.status, ("white", "○"))
    tree = Tree(f"[{color}]{icon} {escape(result.file_path)} \\[{result.status.value}][/{color}]")
    if not result.tests:
        if result.forced_file_mode:
            tree.add("[dim]Tests unknown; the whole file will run[/dim]")
        elif result.status == FileStatus.DELETED:
            tree.add("[dim]File was deleted (No specific tests found)[/dim]")
        else:
            tree.add("[dim]No tests affected[/dim]")
        return tree
    for test in result.tests:
        suffix = " [yellow](dynamic name)[/yellow]" if test.is_dynamic else ""
        tree.add(f'[white]"{escape(test.test_name)}"[/white] {IMPACT_LABEL[test.impact_type]}{suffix}')
    return tree


def render_report(
    report: AnalysisReport,
    console: Optional[Console] = None,
    parent_commit: Optional[str] = None,
) -> None:
    console = console or Console()
    console.print()
    console.print("[bold underline]📊 Smart Test Selector Report[/bold underline]")
    console.print()
    console.print(f"[dim]Commit:    [/dim]{escape(report.commit_ref)}")
    if parent_commit:
        console.print(f"[dim]Parent:    [/dim]{parent_commit[:8]}")
    console.print(f"[dim]Repo:      [/dim]{escape(report.repo_path)}")
    console.print(f"[dim]Files:     [/dim]{len(report.file_results)}")
    console.print(f"[dim]Tests:     [/dim]{report.total_tests_selected}")

    console.print()
    console.print("[bold]Legend:[/bold]")
    console.print("[green]  ✚ ADDED[/green][dim] - New files[/dim]")
    console.print("[yellow]  ● MODIFIED[/yellow][dim] - Changed files[/dim]")
    console.print("[red]  ✖ DELETED[/red][dim] - Removed files[/dim]")
    console.print("[blue]  ➜ RENAMED[/blue][dim] - Renamed files[/dim]")
    console.print(f"  {IMPACT_LABEL[ImpactType.DIRECT]}[dim] - Test code was changed[/dim]")
    console.print(f"  {IMPACT_LABEL[ImpactType.DEPENDENCY]}[dim] - Test depends on changed code[/dim]")
    console.print(f"  {IMPACT_LABEL[ImpactType.REMOVED]}[dim] - Test was removed[/dim]")

    console.print(Rule("Tests by File"))
    for result in report.file_results:
        console.print()
        console.print(_file_tree(result))
    console.print()
    console.print(Rule())

    if report.fallback:
        console.print("[yellow]⚠ Analysis failed; changed test files will run in full.[/yellow]")
    if report.diagnostics:
        console.print(f"[yellow]⚠ {len(report.diagnostics)} file(s) could not be analysed:[/yellow]")
        for diag in report.diagnostics:
            console.print(f"[dim]   {escape(diag.path)}: {escape(diag.reason)}[/dim]")

    if report.total_tests_selected == 0:
        console.print("[yellow]⚠ No tests were selected to run.[/yellow]")
    else:
        console.print(
            f"[green]✓ {report.total_tests_selected} test(s) selected across "
            f"{len(report.file_results)} file(s).[/green]"
        )
    console.print()
