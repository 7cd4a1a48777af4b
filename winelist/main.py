"""
Wine List Generator - CLI Entry Point.
"""

import asyncio
import sys
from datetime import date
from functools import wraps
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from winelist.config.settings import Settings, get_settings
from winelist.models.schemas import GenerationResult
from winelist.pipeline.orchestrator import WineListPipeline
from winelist.services.airtable_client import AirtableClient
from winelist.services.publisher import AttachmentPublisher
from winelist.utils.errors import ErrorHandler, PublishError
from winelist.utils.logger import setup_logging

# Initialize Rich Console
console = Console()

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def setup_logger(settings: Settings, verbose: bool, quiet: bool = False) -> None:
    """Configure structured logging based on verbosity."""
    level = "DEBUG" if verbose else ("WARNING" if quiet else settings.log_level)
    setup_logging(level=level, json_format=settings.log_json, environment=settings.app_env)


def fail(error: Exception, verbose: bool) -> None:
    """Print an error with its category and exit with status 1."""
    category = ErrorHandler.categorize_error(error)
    console.print(f"[bold red]{category}:[/bold red] {escape(str(error))}")
    if isinstance(error, PublishError) and error.details:
        for key, value in error.details.items():
            console.print(f"  [dim]{key}:[/dim] {escape(str(value))}")
    if verbose:
        console.print_exception()
    sys.exit(1)


def print_summary(result: GenerationResult) -> None:
    table = Table(title="Wine List Summary", show_header=False)
    table.add_row("Venue", result.venue.name or result.venue.id)
    table.add_row("Document", result.document.meta.id)
    table.add_row("Valid", f"[green]{result.summary['valid']}[/green]")
    table.add_row("Warning", f"[yellow]{result.summary['warning']}[/yellow]")
    table.add_row("Invalid", f"[red]{result.summary['invalid']}[/red]")
    table.add_row("Categories", str(result.summary["categories"]))
    if result.html_path:
        table.add_row("HTML", str(result.html_path))
    if result.pdf_path:
        table.add_row("PDF", str(result.pdf_path))
    if result.published:
        table.add_row("Published record", result.published.id)
    console.print(table)

# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version="1.0.0")
def cli():
    """Wine List Generator"""
    pass

# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument("venue_id")
@click.option("--html-only", is_flag=True, help="Skip PDF conversion")
@click.option("--publish", is_flag=True, help="Upload the result to the wine list table")
@click.option("--date", "on", type=click.DateTime(formats=["%Y-%m-%d"]), help="Document date (default: today)")
@click.option("--verbose", is_flag=True, help="Detailed logging")
@async_command
async def generate(venue_id: str, html_only: bool, publish: bool, on, verbose: bool):
    """
    Generate the wine list of a venue.

    VENUE_ID: Airtable record id of the venue (rec...)
    """
    settings = get_settings()
    setup_logger(settings, verbose)

    console.print(Panel.fit(f"[bold magenta]Carta dei Vini[/bold magenta]\nVenue: [cyan]{venue_id}[/cyan]"))

    try:
        async with WineListPipeline(settings=settings) as pipeline:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task("[cyan]Generating wine list...", total=None)
                result = await pipeline.run(
                    venue_id,
                    publish=publish,
                    html_only=html_only,
                    generated_on=on.date() if on else None,
                )
                progress.update(task, completed=True, description="[green]Wine list ready!")

        print_summary(result)
        console.print("[green]✓[/green] Wine list generated successfully.")

    except Exception as e:
        fail(e, verbose)


@cli.command()
@click.argument("venue_id")
@click.option("--verbose", is_flag=True, help="Detailed logging")
@async_command
async def preview(venue_id: str, verbose: bool):
    """
    Print the assembled document without rendering files.

    VENUE_ID: Airtable record id of the venue (rec...)
    """
    settings = get_settings()
    setup_logger(settings, verbose, quiet=True)

    try:
        async with WineListPipeline(settings=settings) as pipeline:
            result = await pipeline.run(venue_id, render=False)

        console.print(Syntax(result.document_yaml, "yaml", word_wrap=False))
        print_summary(result)

    except Exception as e:
        fail(e, verbose)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--venue-id", required=True, help="Venue record id to link (rec...)")
@click.option("--date", "on", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Record date (default: today)")
@click.option("--filename", default=None, help="Attachment filename (default: file basename)")
@click.option("--verbose", is_flag=True, help="Detailed logging")
@async_command
async def publish(file_path: str, venue_id: str, on, filename: Optional[str], verbose: bool):
    """
    Attach an existing file to a new wine list record.

    FILE_PATH: Local file to upload (max 5 MB)
    """
    settings = get_settings()
    setup_logger(settings, verbose)

    try:
        async with AirtableClient(settings) as client:
            publisher = AttachmentPublisher(client, settings)
            record = await publisher.publish(
                settings.require("airtable_wine_list_table"),
                venue_id,
                (on.date() if on else date.today()),
                settings.require("airtable_wine_list_field"),
                file_path,
                filename=filename,
            )

        console.print(f"[green]✓[/green] Published [bold]{record.filename}[/bold] on record {record.id}")

    except Exception as e:
        fail(e, verbose)


@cli.command()
def validate_setup():
    """Check Airtable credentials and identifiers."""
    console.print("[bold]Validating Setup...[/bold]")

    try:
        settings = get_settings()

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Check")
        table.add_column("Status")
        table.add_column("Details")

        missing = settings.missing_identifiers()
        checks = [
            ("AIRTABLE_AUTH_TOKEN", "airtable_auth_token"),
            ("AIRTABLE_BASE_ID", "airtable_base_id"),
            ("AIRTABLE_INV_TAB_ID", "airtable_inventory_table"),
            ("AIRTABLE_ZONE_TAB_ID", "airtable_zone_table"),
            ("AIRTABLE_ENO_TAB_ID", "airtable_venue_table"),
            ("AIRTABLE_WINE_LIST_TAB_ID", "airtable_wine_list_table"),
            ("AIRTABLE_WINE_LIST_FIELD_ID", "airtable_wine_list_field"),
        ]
        for env_name, attr in checks:
            if env_name in missing:
                table.add_row(env_name, "[red]Fail[/red]", "not configured")
            elif attr == "airtable_auth_token":
                table.add_row(env_name, "[green]Pass[/green]", "configured")
            else:
                table.add_row(env_name, "[green]Pass[/green]", str(getattr(settings, attr)))

        producer_status = "[green]Pass[/green]" if settings.airtable_producer_table else "[blue]Info[/blue]"
        table.add_row(
            "AIRTABLE_PRODUCER_TAB_ID",
            producer_status,
            settings.airtable_producer_table or "not set, producer values used as-is",
        )
        table.add_row("Output Dir", "[green]Pass[/green]", str(settings.output_dir))
        table.add_row("Environment", "[blue]Info[/blue]", settings.app_env)

        console.print(table)

        if missing:
            console.print(f"\n[yellow]Missing configuration: {', '.join(missing)}[/yellow]")
            sys.exit(1)

    except Exception as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {escape(str(e))}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
