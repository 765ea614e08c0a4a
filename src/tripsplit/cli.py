"""CLI for TripSplit."""

import base64
import mimetypes
from pathlib import Path

import typer
from rich.table import Table

from .mcp_server import run_server
from .trips.cli import app as trips_app
from .trips.cli import console, open_service
from .trips.ui import confirm

app = typer.Typer(
    name="tripsplit",
    help="Split trip expenses with friends and settle up",
)

friends_app = typer.Typer(name="friends", help="Manage your friends list")

app.add_typer(friends_app, name="friends")
app.add_typer(trips_app, name="trips", help="Trips, expenses and settlements")


def read_photo(path: Path) -> str:
    """Read an image file into a data URL."""
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


@friends_app.command("list")
def list_friends(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List all friends."""
    with open_service(verbose) as service:
        friends = service.list_friends()

        if not friends:
            console.print("[yellow]No friends yet.[/yellow]")
            console.print('[dim]Run "tripsplit friends add" to add one.[/dim]')
            return

        table = Table(title="Friends", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=8)
        table.add_column("Name", style="cyan")
        table.add_column("Email")
        table.add_column("WhatsApp")
        table.add_column("Photo", justify="center")

        for friend in friends:
            table.add_row(
                friend.id[:8],
                friend.name,
                friend.email,
                friend.whatsapp or "—",
                "✓" if friend.photo else "",
            )

        console.print(table)


@friends_app.command("add")
def add_friend(
    name: str = typer.Argument(..., help="Display name"),
    email: str = typer.Option(..., "--email", "-e", help="Email address"),
    whatsapp: str = typer.Option("", "--whatsapp", "-w", help="WhatsApp number"),
    photo: Path | None = typer.Option(
        None, "--photo", exists=True, dir_okay=False, help="Profile picture file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a friend."""
    with open_service(verbose) as service:
        friend = service.add_friend(
            name,
            email,
            whatsapp=whatsapp,
            photo=read_photo(photo) if photo else None,
        )
        console.print(
            f"[bold green]✓ Added {friend.name}[/bold green] [dim]({friend.id})[/dim]"
        )


@friends_app.command("edit")
def edit_friend(
    friend_ref: str = typer.Argument(..., help="Friend name, email or id"),
    name: str | None = typer.Option(None, "--name", "-n", help="New name"),
    email: str | None = typer.Option(None, "--email", "-e", help="New email"),
    whatsapp: str | None = typer.Option(None, "--whatsapp", "-w", help="New number"),
    photo: Path | None = typer.Option(
        None, "--photo", exists=True, dir_okay=False, help="New profile picture"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Edit a friend's details."""
    changes: dict[str, str] = {}
    if name is not None:
        changes["name"] = name
    if email is not None:
        changes["email"] = email
    if whatsapp is not None:
        changes["whatsapp"] = whatsapp
    if photo is not None:
        changes["photo"] = read_photo(photo)

    with open_service(verbose) as service:
        friend = service.resolve_friend(friend_ref)
        if not changes:
            console.print("[yellow]Nothing to change.[/yellow]")
            return

        updated = service.update_friend(friend.id, **changes)
        console.print(f"[bold green]✓ Updated {updated.name}[/bold green]")


@friends_app.command("remove")
def remove_friend(
    friend_ref: str = typer.Argument(..., help="Friend name, email or id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete a friend. Trips they were part of will show them as Unknown."""
    with open_service(verbose) as service:
        friend = service.resolve_friend(friend_ref)

        if not yes and not confirm(
            f"Delete {friend.name}? This may affect existing trips."
        ):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        service.delete_friend(friend.id)
        console.print(f"[bold green]✓ Deleted {friend.name}[/bold green]")


@app.command()
def mcp():
    """Start the MCP server for assistant integration."""
    run_server()


if __name__ == "__main__":
    app()
