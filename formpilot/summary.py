"""
End-of-run summary output.
"""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .engine import RunReport
from .selector_store import LearningStats


class RunSummaryUI:
    """Renders the run report for the operator."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def display_report(self, report: RunReport, dry_run: bool = False):
        """Per-job outcome table followed by the totals."""
        self.console.print()
        table = Table(title="Application Run", show_header=True)
        table.add_column("Job", style="cyan")
        table.add_column("Platform")
        table.add_column("Status", justify="center")
        table.add_column("Reason")

        for r in report.results:
            status = {
                "applied": "[green]✓ applied[/green]",
                "skipped": "[red]⊘ skipped[/red]",
                "previewed": "[blue]◌ previewed[/blue]",
            }.get(r.status, r.status)
            name = f"{r.company} - {r.title}" if r.company or r.title else r.job_id
            table.add_row(name, r.adapter or "-", status, r.reason)

        self.console.print(table)

        title = "Dry Run Summary" if dry_run else "Summary"
        lines = [
            f"[bold]{title}[/bold]",
            f"Applied: {report.applied}",
            f"Skipped: {report.skipped}",
        ]
        if report.previewed:
            lines.append(f"Previewed: {report.previewed}")
        lines.append(f"Total: {report.total}")
        if report.stopped:
            lines.append("[yellow]Stopped early on request[/yellow]")
        self.console.print(Panel("\n".join(lines), style="blue"))

        self.display_unknown_labels(report)

    def display_unknown_labels(self, report: RunReport):
        """Labels no tier could place, so they can be added to the vocabulary."""
        unknown = [(r, label) for r in report.results for label in r.unknown_labels]
        if not unknown:
            return
        self.console.print()
        self.console.print(
            Panel(
                "[bold yellow]⚠️  UNRECOGNISED FIELDS[/bold yellow]\n"
                "These labels were left unfilled:",
                style="yellow",
            )
        )
        for r, label in unknown:
            self.console.print(f"  • {label} [dim]({r.job_id})[/dim]")

    def display_learning(self, stats: LearningStats):
        """What the selector store knows after this run."""
        self.console.print(
            f"[dim]Learned mappings: {stats.mappings} "
            f"({stats.with_locator} with locators), "
            f"successes {stats.successes}, failures {stats.failures}[/dim]"
        )
