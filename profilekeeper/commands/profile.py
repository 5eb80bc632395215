"""Profile management commands."""

from __future__ import annotations

import sys
from datetime import UTC
from datetime import datetime

import click
from rich.panel import Panel
from rich.table import Table

from ..console import console
from ..directories import find_orphaned_dirs
from ..directories import list_profiles
from ..errors import RegistryParseError
from ..lock import LOCK_FILE_NAME
from ..manager import get_manager
from ..profile import UNKNOWN_CREATION_DATE
from ..registry import Registry
from ..utils.error_format import escape_markup
from ..utils.error_format import format_error_message


def _fail(e: BaseException) -> None:
    console.print(f"[red]Error:[/red] {escape_markup(format_error_message(e))}")
    sys.exit(1)


def _format_millis(millis: int) -> str:
    if millis == UNKNOWN_CREATION_DATE:
        return "unknown"
    return datetime.fromtimestamp(millis / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")


@click.group(invoke_without_command=True)
@click.pass_context
def profile(ctx: click.Context):
    """Manage profile directories."""
    if ctx.invoked_subcommand is None:
        click.echo("\n" + ctx.get_help())
        ctx.exit()


@profile.command(name="list")
def profile_list():
    """List profiles recorded in profiles.ini."""
    try:
        entries = list_profiles(Registry.load(get_manager().root_dir))
    except RegistryParseError as e:
        _fail(e)
        return

    if not entries:
        console.print("[yellow]No profiles found.[/yellow]")
        return

    table = Table(title="Profiles", show_header=True, header_style="bold cyan")
    table.add_column("Section", style="magenta")
    table.add_column("Name", style="green")
    table.add_column("Directory", style="yellow")
    table.add_column("Status")

    for entry in entries:
        status_parts: list[str] = []
        if entry.is_default:
            status_parts.append("[cyan]default[/cyan]")
        if (entry.path / LOCK_FILE_NAME).exists():
            status_parts.append("[bold red]locked[/bold red]")
        if not entry.path.is_dir():
            status_parts.append("[dim]missing[/dim]")
        table.add_row(entry.section, entry.name, escape_markup(entry.path), ", ".join(status_parts))

    console.print(table)


@profile.command(name="show")
@click.argument("name")
def profile_show(name: str):
    """Show a profile's directory, lock state and creation date."""
    manager = get_manager()
    try:
        handle = manager.get(name)
        profile_dir = handle.get_dir()
        locked = handle.locked()
        created = handle.get_and_persist_creation_date()
    except Exception as e:
        _fail(e)
        return

    panel_content = [
        f"[bold]Name:[/bold] {escape_markup(name)}",
        f"[bold]Directory:[/bold] {escape_markup(profile_dir)}",
        f"[bold]Locked:[/bold] {'yes' if locked else 'no'}",
        f"[bold]Created:[/bold] {_format_millis(created)}",
        f"[bold]Default:[/bold] {'yes' if manager.get_default_profile_name() == name else 'no'}",
    ]
    console.print(Panel("\n".join(panel_content), title="Profile Info", border_style="cyan"))


@profile.command(name="create")
@click.argument("name")
def profile_create(name: str):
    """Create a profile (no-op if it already exists)."""
    try:
        profile_dir = get_manager().get(name).get_dir()
    except Exception as e:
        _fail(e)
        return
    console.print(f"[green]✓ Profile '{escape_markup(name)}' at[/green] {escape_markup(profile_dir)}")


@profile.command(name="remove")
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation")
def profile_remove(name: str, force: bool):
    """Delete a profile directory and its registry entry."""
    if not force:
        confirm = console.input(f"Delete profile '{escape_markup(name)}' and all its data? [y/N]: ")
        if confirm.lower() != "y":
            console.print("[yellow]Cancelled[/yellow]")
            return

    if get_manager().remove_profile(name):
        console.print(f"[green]✓ Removed profile '{escape_markup(name)}'[/green]")
    else:
        console.print(f"[red]Error:[/red] Failed to remove profile '{escape_markup(name)}'")
        sys.exit(1)


@profile.command(name="lock")
@click.argument("name")
def profile_lock(name: str):
    """Mark a profile as in use."""
    handle = get_manager().get(name)
    if handle.lock():
        console.print(f"[green]✓ Locked '{escape_markup(name)}'[/green]")
    elif handle.locked():
        console.print(f"[yellow]Profile '{escape_markup(name)}' was already locked[/yellow]")
    else:
        console.print(f"[red]Error:[/red] Could not lock profile '{escape_markup(name)}'")
        sys.exit(1)


@profile.command(name="unlock")
@click.argument("name")
def profile_unlock(name: str):
    """Release a profile's lock."""
    if get_manager().get(name).unlock():
        console.print(f"[green]✓ Unlocked '{escape_markup(name)}'[/green]")
    else:
        console.print(f"[red]Error:[/red] Could not unlock profile '{escape_markup(name)}'")
        sys.exit(1)


@profile.command(name="client-id")
@click.argument("name")
def profile_client_id(name: str):
    """Print the profile's client ID, creating one if needed."""
    try:
        client_id = get_manager().get(name).get_client_id()
    except Exception as e:
        _fail(e)
        return
    click.echo(client_id)


@profile.command(name="created")
@click.argument("name")
def profile_created(name: str):
    """Print the profile's creation time in epoch milliseconds."""
    try:
        created = get_manager().get(name).get_and_persist_creation_date()
    except Exception as e:
        _fail(e)
        return
    click.echo(str(created))


@profile.command(name="orphans")
def profile_orphans():
    """List directories under the profiles root with no registry entry."""
    try:
        orphans = find_orphaned_dirs(Registry.load(get_manager().root_dir))
    except RegistryParseError as e:
        _fail(e)
        return
    if not orphans:
        console.print("[green]No orphaned profile directories.[/green]")
        return

    console.print(f"[yellow]{len(orphans)} orphaned directories (not deleted):[/yellow]")
    for path in orphans:
        console.print(f"  {escape_markup(path)}")


@profile.command(name="guest-cleanup")
def profile_guest_cleanup():
    """Delete the guest profile if it is not in use."""
    if get_manager().maybe_cleanup_guest_profile():
        console.print("[green]✓ Removed unlocked guest profile[/green]")
    else:
        console.print("[dim]No guest profile to clean up[/dim]")


__all__ = ["profile"]
