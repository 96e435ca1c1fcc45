"""
SurveyLens - Main Entry Point

Command-line interface for ingesting survey exports and administering
the session registry.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from surveylens import __version__
from surveylens.config import SurveyLensConfig, create_default_config
from surveylens.core.distribution import DistributionEngine
from surveylens.core.errors import NotFoundError, SurveyLensError
from surveylens.core.registry import (
    JsonFileBackend,
    SessionPatch,
    SessionRegistry,
    load_seed_sessions,
)
from surveylens.core.session_store import Session
from surveylens.demo.sample_survey import build_seed_sessions, write_sample_survey
from surveylens.inference.assistant import ResearchAssistant
from surveylens.inference.summarizer import SummarizationClient
from surveylens.pipeline import IngestionReport, SurveyIngestionPipeline

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

console = Console()


def load_config(config_path: Optional[str], storage: Optional[str]) -> SurveyLensConfig:
    """Load YAML config if given, then apply command-line overrides."""
    config = SurveyLensConfig.from_yaml(config_path) if config_path else create_default_config()
    if storage:
        config.registry.storage_dir = storage
    return config


def build_registry(config: SurveyLensConfig, demo_seed: bool = False) -> SessionRegistry:
    """Registry over the configured storage directory and seed file."""
    seeds = load_seed_sessions(config.registry.seed_path)
    if demo_seed:
        seeds = seeds + build_seed_sessions()
    return SessionRegistry(JsonFileBackend(config.registry.storage_dir), seed_provider=lambda: seeds)


def print_sessions(sessions):
    """Render a session list as a table."""
    table = Table(title="Sessions", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Responses", justify="right")
    table.add_column("Charts", justify="right")
    table.add_column("Visibility")
    table.add_column("Updated", style="dim")

    for s in sessions:
        visibility = "[green]public[/green]" if s.is_public else "[yellow]private[/yellow]"
        table.add_row(
            s.id,
            s.title,
            f"{s.participation_count:,}",
            str(len(s.visualizable_columns)),
            visibility,
            s.last_updated[:19],
        )

    console.print(table)


def print_session(session: Session):
    """Render one session with its per-column breakdowns."""
    console.print(Panel(
        f"[bold]{session.title}[/bold]\n"
        f"{session.description}\n\n"
        f"Responses: {session.participation_count:,}   "
        f"Source: {session.source_name or '-'}   "
        f"Visibility: {session.visibility}   "
        f"Status: {session.status.value}",
        title=session.id,
        border_style="blue",
    ))

    if not session.show_charts:
        console.print("[dim]Charts are hidden for this session[/dim]")

    engine = DistributionEngine()
    for column in session.visualizable_columns:
        if session.show_charts:
            dist = engine.compute(session.responses, column)
            table = Table(title=f"{column.label}  [dim]({column.id}, n={dist.total_valid})[/dim]")
            table.add_column("Value")
            table.add_column("Count", justify="right")
            table.add_column("%", justify="right")
            for entry in dist.entries[:15]:
                table.add_row(entry.name, str(entry.count), f"{entry.percentage:.1f}")
            console.print(table)

        description = session.column_descriptions.get(column.id)
        if description and session.show_ai_insights:
            console.print(f"  [italic]{description}[/italic]\n")

    hidden = [c for c in session.columns if not c.is_visualizable]
    if hidden:
        console.print("[dim]Not charted: " + ", ".join(f"{c.label} ({c.id})" for c in hidden) + "[/dim]")

    for warning in session.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")


def print_report(report: IngestionReport):
    """Print ingestion summary."""
    session = report.session
    stats = session.get_statistics()

    table = Table(title="Ingestion Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Session ID", session.id)
    table.add_row("Responses", f"{stats['participation_count']:,}")
    table.add_row("Columns", str(stats["total_columns"]))
    table.add_row("Visualizable", str(stats["visualizable_columns"]))
    table.add_row("Cross-tabulations", str(stats["correlation_pairs"]))
    table.add_row("Malformed Rows Skipped", str(report.defect_count))
    table.add_row("Fallback Summaries", str(report.fallback_count))
    table.add_row("Visibility", stats["visibility"])
    table.add_row("Processing Time", f"{report.elapsed:.1f}s")
    console.print(table)

    for warning in report.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")


def fail(error: Exception, verbose: bool = False):
    """Report an error verbatim and exit."""
    console.print(f"[bold red]✗ Error: {error}[/bold red]")
    if verbose:
        import traceback
        traceback.print_exc()
    sys.exit(1)


# CLI Commands
@click.group()
@click.version_option(version=__version__, prog_name="SurveyLens")
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True), help='YAML configuration file')
@click.option('--storage', '-s', help='Registry storage directory')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, config_path, storage, verbose):
    """SurveyLens - Survey ingestion and descriptive analysis"""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    try:
        ctx.obj["config"] = load_config(config_path, storage)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        fail(e, verbose)


@cli.command()
@click.argument('csv_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--title', '-t', required=True, help='Session title')
@click.option('--description', '-d', default='', help='Session description')
@click.option('--public', is_flag=True, help='Publish the session right after ingestion')
@click.option('--skip-llm', is_flag=True, help='Skip summarization (all columns get the fallback text)')
@click.pass_context
def ingest(ctx, csv_file, title, description, public, skip_llm):
    """
    Ingest a survey CSV export into a new private session.

    Examples:

        surveylens ingest responses.csv -t "Spring intake survey"
    """
    config = ctx.obj["config"]
    try:
        registry = build_registry(config)
        summarizer = SummarizationClient(config.llm, enabled=not skip_llm)
        pipeline = SurveyIngestionPipeline(config, summarizer=summarizer, registry=registry)

        with Progress(SpinnerColumn(), TextColumn("[bold blue]{task.description}"), console=console) as progress:
            task = progress.add_task("Analyzing survey...", total=1)
            report = asyncio.run(pipeline.ingest_and_commit(csv_file, title, description))
            progress.update(task, completed=1)

        if public:
            registry.update(report.session.id, SessionPatch(is_public=True))
            report.session.is_public = True

        print_report(report)
        console.print("\n[bold green]✓ Session committed[/bold green]")

    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command(name='list')
@click.option('--all', 'show_all', is_flag=True, help='Include private sessions')
@click.pass_context
def list_sessions(ctx, show_all):
    """List sessions (public only unless --all)."""
    try:
        registry = build_registry(ctx.obj["config"])
        print_sessions(registry.list(privileged=show_all))
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
@click.argument('session_id')
@click.option('--all', 'show_all', is_flag=True, help='Allow private sessions')
@click.pass_context
def show(ctx, session_id, show_all):
    """Show one session's breakdowns and descriptions."""
    try:
        registry = build_registry(ctx.obj["config"])
        print_session(registry.get(session_id, privileged=show_all))
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
@click.argument('session_id')
@click.pass_context
def publish(ctx, session_id):
    """Make a session visible to everyone."""
    try:
        session = build_registry(ctx.obj["config"]).update(session_id, SessionPatch(is_public=True))
        console.print(f"[green]✓ {session.id} is now {session.visibility}[/green]")
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
@click.argument('session_id')
@click.pass_context
def unpublish(ctx, session_id):
    """Make a session visible to administrators only."""
    try:
        session = build_registry(ctx.obj["config"]).update(session_id, SessionPatch(is_public=False))
        console.print(f"[green]✓ {session.id} is now {session.visibility}[/green]")
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command(name='set-column')
@click.argument('session_id')
@click.argument('column_id')
@click.option('--visible/--hidden', default=True, help='Chart or hide the column')
@click.pass_context
def set_column(ctx, session_id, column_id, visible):
    """Override whether a column is charted."""
    try:
        patch = SessionPatch(column_visibility={column_id: visible})
        build_registry(ctx.obj["config"]).update(session_id, patch)
        state = "visible" if visible else "hidden"
        console.print(f"[green]✓ Column {column_id} is now {state}[/green]")
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
@click.argument('session_id')
@click.confirmation_option(prompt='Delete this session permanently?')
@click.pass_context
def delete(ctx, session_id):
    """Delete a session and its stored source file."""
    try:
        build_registry(ctx.obj["config"]).detach(session_id)
        console.print(f"[green]✓ Deleted {session_id}[/green]")
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
@click.argument('session_id')
@click.argument('output', type=click.Path(dir_okay=False))
@click.pass_context
def export(ctx, session_id, output):
    """Write a session's original CSV bytes to OUTPUT."""
    try:
        data = build_registry(ctx.obj["config"]).export_source(session_id, privileged=True)
        Path(output).write_bytes(data)
        console.print(f"[green]✓ Wrote {len(data):,} bytes to {output}[/green]")
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
@click.argument('session_id')
@click.argument('question')
@click.option('--all', 'show_all', is_flag=True, help='Allow private sessions')
@click.pass_context
def ask(ctx, session_id, question, show_all):
    """
    Ask the research assistant a question about a session.

    Examples:

        surveylens ask <session-id> "How many respondents study Physics?"
    """
    config = ctx.obj["config"]
    try:
        session = build_registry(config).get(session_id, privileged=show_all)
        if not session.show_ai_insights and not show_all:
            raise NotFoundError(f"AI insights are disabled for session '{session_id}'", session_id)

        reply = asyncio.run(ResearchAssistant(config.llm).ask(session, question))
        console.print(Panel(
            reply.text,
            title="Research Assistant",
            border_style="green" if reply.ok else "yellow",
        ))
    except (SurveyLensError, ValueError) as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
@click.option('--with-llm', is_flag=True,help='Enable summarization (requires OPENAI_API_KEY)')
@click.pass_context
def demo(ctx, with_llm):
    """Generate a sample survey, ingest it and list the registry."""
    config = ctx.obj["config"]
    console.print(Panel(
        "[bold blue]SurveyLens Demo[/bold blue]\n\n"
        "This demo will:\n"
        "1. Generate a sample academic-profile survey\n"
        "2. Ingest it into a private session\n"
        "3. List the registry with the baseline seed session",
        title="Welcome",
        border_style="blue",
    ))

    try:
        csv_path = write_sample_survey(str(Path(config.registry.storage_dir) / "demo" / "sample_survey.csv"))
        registry = build_registry(config, demo_seed=True)
        summarizer = SummarizationClient(config.llm, enabled=with_llm)
        pipeline = SurveyIngestionPipeline(config, summarizer=summarizer, registry=registry)

        report = asyncio.run(pipeline.ingest_and_commit(str(csv_path), "Demo Survey", "Generated sample data"))
        print_report(report)
        print_sessions(registry.list(privileged=True))
    except SurveyLensError as e:
        fail(e, ctx.obj["verbose"])


@cli.command()
def version():
    """Show version information."""
    console.print(Panel(
        f"[bold]SurveyLens[/bold] v{__version__}\n\n"
        "Descriptive analysis of spreadsheet survey exports.\n\n"
        "Components:\n"
        "  • CSV Parser\n"
        "  • Column Classifier\n"
        "  • Distribution Engine\n"
        "  • Correlation Builder\n"
        "  • Summarization Client\n"
        "  • Research Assistant\n"
        "  • Session Registry",
        title="About",
        border_style="blue",
    ))


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
