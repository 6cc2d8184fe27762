#!/usr/bin/env python3
"""
Photo Discovery CLI
Parse queries and commands, and search a photo collection from the terminal.
"""

import json
import sys
from pathlib import Path
from typing import List

import click
from pydantic import TypeAdapter
from pydantic import ValidationError as ModelValidationError
from rich.console import Console
from rich.table import Table

from photo_discovery import __version__
from photo_discovery.config import settings
from photo_discovery.errors import PhotoDiscoveryError
from photo_discovery.logger import setup_logger
from photo_discovery.models.filters import CombinationMode
from photo_discovery.models.photo import Photo
from photo_discovery.models.search import SearchOptions
from photo_discovery.services.command_parser import CommandParser
from photo_discovery.services.discovery_service import PhotoDiscoveryService
from photo_discovery.services.operation_catalogue import OPERATION_CATALOGUE
from photo_discovery.services.photo_library import InMemoryPhotoLibrary
from photo_discovery.services.query_parser import QueryParser

console = Console()


def load_photos(path: Path) -> List[Photo]:
    """Read a JSON array of photos"""
    return TypeAdapter(List[Photo]).validate_json(path.read_bytes())


@click.group()
@click.version_option(version=__version__)
@click.option('--log-level', default=None, help='Override PHOTO_DISCOVERY_LOG_LEVEL')
def cli(log_level):
    """Photo Discovery - natural-language photo search"""
    setup_logger(settings, log_level=log_level, console=log_level is not None)


@cli.command()
@click.argument('query')
def parse(query):
    """Show how a search query is understood."""
    try:
        parsed = QueryParser().parse(query)
    except PhotoDiscoveryError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        sys.exit(1)

    console.print(f"\n[bold]Intent:[/bold] {parsed.intent.value} ({parsed.confidence:.2f})")
    console.print(f"[bold]Combination:[/bold] {parsed.combination_mode.value}")

    if parsed.entities:
        table = Table(title="Entities", show_header=True)
        table.add_column("Type", style="cyan")
        table.add_column("Value")
        table.add_column("Normalized")
        table.add_column("Confidence", justify="right", style="green")
        for entity in parsed.entities:
            normalized = entity.normalized_value
            if isinstance(normalized, dict):
                normalized = f"{normalized.get('start')} .. {normalized.get('end')}"
            table.add_row(entity.type.value, entity.value, str(normalized or ""), f"{entity.confidence:.2f}")
        console.print(table)

    if parsed.needs_clarification:
        console.print("\n[yellow]Needs clarification:[/yellow]")
        for question in parsed.clarification_questions:
            console.print(f"  • {question}")
        for suggestion in parsed.suggested_actions:
            console.print(f"  → {suggestion}")


@cli.command()
@click.argument('text')
@click.option('--last-query', default=None, help='Previous search, used for tag suggestions')
def command(text, last_query):
    """Show how a bulk-action command is understood."""
    context = {"last_query": last_query} if last_query else None
    operation = CommandParser().parse_command(text, context=context)

    console.print(f"\n[bold]Operation:[/bold] {operation.type.value} ({operation.confidence:.2f})")
    console.print(f"[bold]Parameters:[/bold] {json.dumps(operation.parameters)}")
    if operation.suggested_parameters:
        console.print(f"[bold]Suggested:[/bold] {json.dumps(operation.suggested_parameters)}")
    if operation.suggestions:
        console.print("\n[yellow]Did you mean:[/yellow]")
        for suggestion in operation.suggestions:
            console.print(f"  • {suggestion}")


@cli.command()
@click.argument('query')
@click.option('--photos', 'photos_path', required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='JSON file with an array of photos')
@click.option('--mode', type=click.Choice(['AND', 'OR'], case_sensitive=False), default=None,
              help='Override the combination mode')
@click.option('--limit', default=20, show_default=True, help='Maximum results')
def search(query, photos_path, mode, limit):
    """Search a photo collection."""
    try:
        photos = load_photos(photos_path)
    except (ModelValidationError, ValueError) as e:
        console.print(f"[red]Could not read {photos_path}: {e}[/red]")
        sys.exit(1)

    service = PhotoDiscoveryService(InMemoryPhotoLibrary(photos), register_agent=False)
    try:
        response = service.search(
            query,
            options=SearchOptions(max_results=limit),
            combination_mode=CombinationMode(mode.upper()) if mode else None,
        )
    except PhotoDiscoveryError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        sys.exit(1)
    finally:
        service.close()

    console.print(f"\n[bold cyan]{response.total_count} of {len(photos)} photos matched[/bold cyan] "
                  f"({response.execution_time:.1f}ms)\n")
    if not response.results:
        return

    table = Table(show_header=True)
    table.add_column("Score", justify="right", style="green")
    table.add_column("Photo", style="cyan")
    table.add_column("Matched")
    table.add_column("Highlights")
    for photo in response.results:
        highlights = "; ".join(f"{field}: {', '.join(values)}" for field, values in photo.highlighted_fields.items())
        table.add_row(f"{photo.relevance_score:.2f}", photo.filename, ", ".join(photo.matched_criteria), highlights)
    console.print(table)


@cli.command()
def operations():
    """List bulk operations."""
    table = Table(title="Bulk Operations", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Permission")
    table.add_column("Max photos", justify="right")
    table.add_column("Confirm")
    table.add_column("Rollback")
    for definition in OPERATION_CATALOGUE.values():
        table.add_row(
            definition.type.value,
            definition.required_permission,
            str(definition.max_photos),
            "always" if definition.destructive or definition.requires_confirmation else "over limit",
            "yes" if definition.reversible else "no",
        )
    console.print(table)


def main():
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
