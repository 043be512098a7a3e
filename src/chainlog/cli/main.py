"""
ChainLog CLI - Main entry point

Commands:
    version     Show version information
    show        List entries with level, status, category, chain and key filters
    chains      Show every entry of one chain in chronological order
    cleanup     Apply retention to one owner or to every owner
"""

import json
import logging
from datetime import timedelta
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from chainlog.core.config.settings import settings
from chainlog.core.exceptions.custom_exceptions import ChainLogError
from chainlog.core.logging.logger import get_logger
from chainlog.loggable.service import ChainLog
from chainlog.models.log_entry import LogEntry, OwnerRef
from chainlog.query.helpers import LogQuery
from chainlog.retention.policy import RetentionPolicySet, load_policies
from chainlog.storage.factory import create_store

# Initialize CLI app
app = typer.Typer(
    name="chainlog",
    help="Correlation-aware structured event logs for domain entities",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()
logger = get_logger(__name__)

LEVEL_STYLES = {
    "error": "red",
    "warn": "yellow",
    "info": "cyan",
    "debug": "dim",
}


def _open_service(database_url: Optional[str]) -> ChainLog:
    if database_url:
        return ChainLog(store=create_store(database_url))
    return ChainLog.from_settings()


def _owner_option(owner_type: Optional[str], owner_id: Optional[str]) -> Optional[OwnerRef]:
    if owner_id is not None and owner_type is None:
        console.print("--owner-id requires --owner-type", style="red")
        raise typer.Exit(1)
    if owner_type is not None and owner_id is not None:
        return OwnerRef(owner_type, owner_id)
    return None


def _entries_table(title: str, entries: List[LogEntry]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="bold")
    table.add_column("Owner")
    table.add_column("Level")
    table.add_column("Status")
    table.add_column("Category")
    table.add_column("Chain", style="magenta")
    table.add_column("Message")
    table.add_column("Created", style="green")

    for entry in entries:
        level = entry.log_level.value
        table.add_row(
            str(entry.id),
            entry.owner.key,
            f"[{LEVEL_STYLES[level]}]{level}[/{LEVEL_STYLES[level]}]",
            entry.status or "-",
            entry.category or "-",
            (entry.log_chain or "-")[:8],
            entry.message,
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def _emit(title: str, entries: List[LogEntry], as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return
    if not entries:
        console.print("No log entries found", style="yellow")
        return
    console.print(_entries_table(title, entries))
    console.print(f"{len(entries)} entries", style="bold")


def version_callback(value: bool) -> None:
    """Handle version callback"""
    if value:
        version()
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
    show_version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show ChainLog version and exit",
    ),
) -> None:
    """
    ChainLog CLI - structured, chained event logs for domain entities

    Run 'chainlog --help' for available commands.
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.info("Verbose logging enabled")


@app.command()
def version() -> None:
    """Show ChainLog version information"""
    table = Table(title="ChainLog Version Information")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("Environment", style="yellow")

    table.add_row("ChainLog", settings.APP_VERSION, settings.ENVIRONMENT)
    table.add_row("Store", settings.DATABASE_URL, "Default")

    console.print(table)


@app.command()
def show(
    owner_type: Optional[str] = typer.Option(
        None, "--owner-type", "-t", help="Only entries of this owner type"
    ),
    owner_id: Optional[str] = typer.Option(
        None, "--owner-id", "-i", help="Only entries of this owner (needs --owner-type)"
    ),
    level: Optional[str] = typer.Option(None, "--level", "-l", help="Log level"),
    status: Optional[str] = typer.Option(None, "--status", help="Status value"),
    category: Optional[str] = typer.Option(None, "--category", help="Category value"),
    chain: Optional[str] = typer.Option(None, "--chain", help="Log chain id"),
    keys: Optional[List[str]] = typer.Option(
        None, "--key", "-k", help="Metadata key present at any depth (repeatable)"
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum entries shown"),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON"),
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="Store URL (defaults to DATABASE_URL)"
    ),
) -> None:
    """Show the most recent log entries"""
    owner = _owner_option(owner_type, owner_id)
    try:
        with _open_service(database_url) as service:
            query = LogQuery(service.store, owner=owner)
            if owner is None and owner_type:
                query = query.by_owner_type(owner_type)
            if level:
                query = query.by_level(level)
            if status:
                query = query.by_status(status)
            if category:
                query = query.by_category(category)
            if chain:
                query = query.by_chain(chain)
            if keys:
                query = query.with_keys(*keys)
            entries = query.recent(limit).all()
    except ChainLogError as e:
        console.print(f"Error: {e.message}", style="red")
        raise typer.Exit(1)

    _emit("Log Entries", entries, as_json)


@app.command()
def chains(
    chain: str = typer.Argument(..., help="Log chain id"),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON"),
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="Store URL (defaults to DATABASE_URL)"
    ),
) -> None:
    """Show every entry of one chain, oldest first"""
    try:
        with _open_service(database_url) as service:
            entries = service.query().by_chain(chain).chronological().all()
    except ChainLogError as e:
        console.print(f"Error: {e.message}", style="red")
        raise typer.Exit(1)

    _emit(f"Chain {chain}", entries, as_json)


@app.command()
def cleanup(
    owner_type: Optional[str] = typer.Option(
        None, "--owner-type", "-t", help="Only owners of this type"
    ),
    owner_id: Optional[str] = typer.Option(
        None, "--owner-id", "-i", help="Only this owner (needs --owner-type)"
    ),
    older_than_days: Optional[float] = typer.Option(
        None, "--older-than-days", help="Delete entries older than this many days"
    ),
    keep_recent: Optional[int] = typer.Option(
        None, "--keep-recent", help="Always keep this many recent entries per owner"
    ),
    policy_file: Optional[str] = typer.Option(
        None, "--policy-file", "-p", help="YAML/JSON retention policy file"
    ),
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="Store URL (defaults to DATABASE_URL)"
    ),
) -> None:
    """Delete old entries while keeping the most recent ones"""
    owner = _owner_option(owner_type, owner_id)
    older_than = (
        timedelta(days=older_than_days) if older_than_days is not None else None
    )
    logger.info(
        "Starting retention cleanup",
        owner=owner.key if owner else None,
        owner_type=owner_type,
    )

    try:
        policies = load_policies(policy_file) if policy_file else None
        with _open_service(database_url) as service:
            if owner is not None:
                policy = (policies or RetentionPolicySet()).for_type(owner.owner_type)
                deleted = service.retention.cleanup(
                    owner,
                    older_than if older_than is not None else policy.older_than,
                    keep_recent if keep_recent is not None else policy.keep_recent,
                )
                results = {owner: deleted}
            else:
                results = service.cleanup_all(
                    older_than=older_than,
                    keep_recent=keep_recent,
                    policies=policies,
                    owner_type=owner_type,
                )
    except ChainLogError as e:
        console.print(f"Error: {e.message}", style="red")
        raise typer.Exit(1)

    table = Table(title="Retention Cleanup")
    table.add_column("Owner", style="cyan")
    table.add_column("Deleted", style="red", justify="right")
    for ref, deleted in results.items():
        table.add_row(ref.key, str(deleted))
    console.print(table)
    console.print(f"Deleted {sum(results.values())} entries", style="bold green")


if __name__ == "__main__":
    app()
