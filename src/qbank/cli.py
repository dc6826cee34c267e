"""CLI entry point for the question-bank corpus pipeline.

Provides commands:
  - clean: Normalize the raw export into the canonical corpus
  - rewrite: Rewrite question text through the LLM backend (resumable)
  - validate: Check the corpus and gate promotion via exit code
  - status: Show rewrite checkpoint progress
  - pipeline: Run clean -> rewrite -> validate
  - config: Manage the backend API key
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import keyring
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from qbank.config import (
    API_KEY_ENV,
    KEY_NAME,
    SERVICE_NAME,
    PipelinePaths,
    RewriteConfig,
    get_api_key,
    load_rewrite_config,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Question bank corpus pipeline - normalize, rewrite and validate",
    rich_markup_mode="rich",
)
console = Console()

config_app = typer.Typer(help="Manage configuration (API keys, settings)")
app.add_typer(config_app, name="config")

DataDirOption = Annotated[
    Path,
    typer.Option("--data-dir", "-d", help="Directory holding corpus and checkpoint files"),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to rewrite_config.json"),
]


def _load_config_or_exit(
    config_path: Optional[Path], overrides: dict | None = None
) -> RewriteConfig:
    """Load rewrite settings, re-validating any command-line overrides."""
    try:
        config = load_rewrite_config(config_path)
        if overrides:
            config = dataclasses.replace(config, **overrides)
    except ValueError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=1)
    return config


@app.callback()
def app_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging for all commands."""
    package_logger = logging.getLogger("qbank")
    package_logger.handlers.clear()
    package_logger.addHandler(RichHandler(console=console, show_path=False))
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False


@app.command()
def clean(
    input_file: Annotated[
        Path,
        typer.Option("--input", "-i", help="Raw export JSON file"),
    ] = Path("data_final.json"),
    data_dir: DataDirOption = Path("data"),
) -> None:
    """Normalize the raw export into data/cleaned.json."""
    from qbank.cleanup.normalizer import run_cleanup

    paths = PipelinePaths(data_dir=data_dir, raw_file=input_file)
    try:
        corpus = run_cleanup(paths.raw_file, paths.cleaned_file)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="Cleanup Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Questions", f"{corpus.metadata['totalQuestions']:,}")
    table.add_row("Categories", f"{corpus.metadata['totalCategories']:,}")
    table.add_row("Assets", f"{corpus.metadata['totalAssets']:,}")
    for region, count in corpus.metadata["regionDistribution"].items():
        table.add_row(f"Region: {region}", f"{count:,}")
    console.print(table)
    console.print(f"[dim]Output:[/dim] {paths.cleaned_file}")


@app.command()
def rewrite(
    data_dir: DataDirOption = Path("data"),
    config_path: ConfigOption = None,
    batch_size: Annotated[
        Optional[int],
        typer.Option("--batch-size", "-b", help="Questions per checkpoint flush"),
    ] = None,
    concurrency: Annotated[
        Optional[int],
        typer.Option("--concurrency", "-n", help="Max concurrent backend calls"),
    ] = None,
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", "-l", help="Rewrite at most N random pending questions"),
    ] = None,
    only_rewritten: Annotated[
        Optional[bool],
        typer.Option(
            "--only-rewritten/--all-records",
            help="Emit only rewritten questions in the output file",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show pending count without calling the backend"),
    ] = False,
) -> None:
    """Rewrite question and explanation text, resuming from the checkpoint."""
    from qbank.corpus import load_corpus, resolve_latest_corpus
    from qbank.rewrite.checkpoint import CheckpointStore
    from qbank.rewrite.client import MistralRewriteClient
    from qbank.rewrite.orchestrator import run_rewrite

    paths = PipelinePaths(data_dir=data_dir)
    overrides = {
        "batch_size": batch_size,
        "max_concurrent": concurrency,
        "limit": limit,
        "only_export_rewritten": only_rewritten,
    }
    config = _load_config_or_exit(
        config_path, {k: v for k, v in overrides.items() if v is not None}
    )

    store = CheckpointStore(paths.checkpoint_file)

    if dry_run:
        try:
            corpus = load_corpus(
                resolve_latest_corpus(paths.cleaned_file, paths.rewritten_file)
            )
        except FileNotFoundError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(code=1)
        state = store.load()
        pending = sum(1 for r in corpus.records if not state.is_processed(r.original_id))
        to_run = min(pending, config.limit) if config.limit else pending
        console.print(
            Panel(
                f"[bold]{pending}[/bold] of {len(corpus.records)} questions pending\n"
                f"This run would attempt: [bold]{to_run}[/bold] "
                f"in batches of {config.batch_size} (concurrency {config.max_concurrent})",
                title="Dry Run",
                border_style="yellow",
            )
        )
        return

    try:
        api_key = get_api_key()
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    client = MistralRewriteClient(api_key=api_key, model=config.model)
    console.print(f"[dim]Model:[/dim] {client.model}")
    try:
        outcome = asyncio.run(run_rewrite(paths, client, config, store))
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    summary = outcome.summary
    table = Table(title="Rewrite Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Attempted", f"{summary.attempted:,}")
    table.add_row("Rewritten", f"[green]{summary.succeeded:,}[/green]")
    table.add_row("Failed", f"[red]{summary.failed:,}[/red]")
    table.add_row("Length ratio warnings", f"[yellow]{summary.ratio_warnings:,}[/yellow]")
    table.add_row("Batches", f"{summary.batches:,}")
    table.add_row("Total tokens", f"{summary.total_tokens:,}")
    table.add_row("Remaining", f"{summary.remaining:,}")
    table.add_row("Time elapsed", f"{summary.elapsed_seconds:.1f}s")
    console.print(table)

    if summary.failed:
        console.print(
            f"\n[yellow]{summary.failed} question(s) failed and will be retried "
            "on the next run.[/yellow]"
        )


@app.command()
def validate(
    data_dir: DataDirOption = Path("data"),
    input_file: Annotated[
        Optional[Path],
        typer.Option("--input", "-i", help="Corpus file (default: rephrased, else cleaned)"),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict/--no-strict", help="Exit non-zero when validation fails"),
    ] = True,
    json_output: Annotated[
        Optional[Path],
        typer.Option("--json", help="Also write the machine-readable report here"),
    ] = None,
) -> None:
    """Validate the corpus before it is loaded into the serving store."""
    from qbank.corpus import write_json_atomic
    from qbank.validation.report import display_report
    from qbank.validation.validator import resolve_validation_input, run_validation

    paths = PipelinePaths(data_dir=data_dir)
    path = resolve_validation_input(paths.cleaned_file, paths.rewritten_file, input_file)
    try:
        report = run_validation(path)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {path} is not valid JSON: {e}")
        raise typer.Exit(code=1)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    display_report(report, console)
    if json_output is not None:
        write_json_atomic(json_output, report.to_dict())

    if strict and not report.valid:
        raise typer.Exit(code=1)


@app.command()
def status(
    data_dir: DataDirOption = Path("data"),
) -> None:
    """Show rewrite checkpoint progress."""
    from qbank.corpus import load_corpus, resolve_latest_corpus
    from qbank.rewrite.checkpoint import CheckpointStore, display_progress

    paths = PipelinePaths(data_dir=data_dir)
    store = CheckpointStore(paths.checkpoint_file)
    if not store.exists:
        console.print("[yellow]No checkpoint found - rewriting has not started.[/yellow]")

    try:
        corpus = load_corpus(resolve_latest_corpus(paths.cleaned_file, paths.rewritten_file))
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    display_progress(store.load(), len(corpus.records), console)


@app.command()
def pipeline(
    input_file: Annotated[
        Path,
        typer.Option("--input", "-i", help="Raw export JSON file"),
    ] = Path("data_final.json"),
    data_dir: DataDirOption = Path("data"),
    config_path: ConfigOption = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Re-run steps even if outputs exist")
    ] = False,
    skip_cleanup: Annotated[bool, typer.Option("--skip-cleanup")] = False,
    skip_rewrite: Annotated[bool, typer.Option("--skip-rewrite")] = False,
    skip_validate: Annotated[bool, typer.Option("--skip-validate")] = False,
) -> None:
    """Run cleanup, rewriting and validation in order."""
    from qbank.pipeline import PipelineOptions, run_pipeline
    from qbank.validation.report import display_report

    result = run_pipeline(
        options=PipelineOptions(
            force=force,
            skip_cleanup=skip_cleanup,
            skip_rewrite=skip_rewrite,
            skip_validate=skip_validate,
        ),
        paths=PipelinePaths(data_dir=data_dir, raw_file=input_file),
        config=_load_config_or_exit(config_path),
    )

    if result.report is not None:
        display_report(result.report, console)

    table = Table(title="Pipeline Summary")
    table.add_column("Step", style="bold")
    table.add_column("Status")
    for name, step in result.steps.items():
        if step.skipped:
            label = f"[dim]Skipped[/dim] ({step.reason})"
        elif step.success:
            label = "[green]Success[/green]"
        else:
            label = "[red]Failed[/red]"
        table.add_row(name, label)
    console.print(table)

    for error in result.errors:
        console.print(f"[red]- {error}[/red]")

    if not result.success:
        console.print("[red]Pipeline failed. See errors above.[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Pipeline completed successfully![/green]")


@config_app.command("set-api-key")
def set_api_key(
    api_key: Annotated[str, typer.Argument(help="Mistral API key")],
) -> None:
    """Store the Mistral API key in the system keyring."""
    keyring.set_password(SERVICE_NAME, KEY_NAME, api_key)
    console.print(f"[green]API key stored in keyring[/green] (service: {SERVICE_NAME})")


@config_app.command("show")
def show_config(config_path: ConfigOption = None) -> None:
    """Show effective rewrite settings and whether a key is configured."""
    config = _load_config_or_exit(config_path)

    table = Table(title="Rewrite Configuration")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for name in config.__dataclass_fields__:
        table.add_row(name, str(getattr(config, name)))

    try:
        get_api_key()
        key_status = "[green]configured[/green]"
    except RuntimeError:
        key_status = f"[red]missing[/red] (keyring or {API_KEY_ENV})"
    table.add_row("api_key", key_status)
    console.print(table)
