"""Rich rendering of validation reports."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from qbank.validation.validator import ValidationFinding, ValidationReport

_MAX_LISTED = 10
_MAX_WARNINGS_IN_FULL = 20


def _finding_table(title: str, findings: list[ValidationFinding], style: str) -> Table:
    table = Table(title=title, show_header=True, title_style=style)
    table.add_column("Question", style="cyan")
    table.add_column("Field", style="bold")
    table.add_column("Message")
    for finding in findings:
        table.add_row(finding.record_id, finding.field, finding.message)
    return table


def display_report(report: ValidationReport, console: Console) -> None:
    """Display a validation report.

    Shows totals, issue counts per field (most frequent first), the first
    10 errors, and the warnings (all of them when there are at most 20,
    otherwise the first 10).
    """
    summary = Table(title="Validation Results", show_header=True)
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    summary.add_row("Total questions", f"{report.total_records:,}")
    summary.add_row("Errors", f"[red]{report.error_count:,}[/red]")
    summary.add_row("Warnings", f"[yellow]{report.warning_count:,}[/yellow]")
    summary.add_row("Valid", "[green]YES[/green]" if report.valid else "[red]NO[/red]")
    console.print(summary)

    if report.by_field:
        by_field = Table(title="Issues by field", show_header=True)
        by_field.add_column("Field", style="bold")
        by_field.add_column("Count", justify="right")
        for name, count in sorted(report.by_field.items(), key=lambda kv: kv[1], reverse=True):
            by_field.add_row(name, str(count))
        console.print(by_field)

    if report.errors:
        console.print(
            _finding_table(
                f"Errors (first {min(report.error_count, _MAX_LISTED)} of {report.error_count})",
                report.errors[:_MAX_LISTED],
                "red",
            )
        )

    if report.warnings:
        shown = (
            report.warnings
            if report.warning_count <= _MAX_WARNINGS_IN_FULL
            else report.warnings[:_MAX_LISTED]
        )
        console.print(
            _finding_table(
                f"Warnings ({len(shown)} of {report.warning_count})",
                shown,
                "yellow",
            )
        )

    if report.valid:
        console.print(
            Panel("[bold green]VALIDATION PASSED[/bold green]", border_style="green")
        )
    else:
        console.print(
            Panel(
                "[bold red]VALIDATION FAILED[/bold red] - fix errors before loading the corpus",
                border_style="red",
            )
        )
