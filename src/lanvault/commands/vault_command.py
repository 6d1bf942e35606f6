"""Vault management commands."""

from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel

from lanvault.commands.decorators import AppError, command_wrapper
from lanvault.commands.utils import (
    corrupted_summary,
    entry_detail,
    entry_summary,
    get_vault_service,
    read_password,
    unlocked_vault,
)
from lanvault.models.entry import CorruptedEntry, EntryCreate, EntryUpdate
from lanvault.models.exceptions import InvalidTotpSecret
from lanvault.models.password import DEFAULT_LENGTH, generate_password
from lanvault.models.totp import format_totp_code, totp_code, validate_totp_secret
from lanvault.services.config_service import get_config_service
from lanvault.utils import exit_codes
from lanvault.utils.ui.formatters import (
    console,
    format_info,
    format_output,
    format_success,
    format_warning,
    get_console,
)

app = typer.Typer(help="Vault management commands")


def _output_format(output: str | None) -> str:
    return output or get_config_service().config.output.format


def _corrupted(service, session, favorites_only: bool = False) -> list[CorruptedEntry]:
    return [
        service.get(session, entry_id)
        for entry_id in service.corrupted_ids(session, favorites_only=favorites_only)
    ]


def _check_totp(secret: str | None) -> None:
    if secret is not None and not validate_totp_secret(secret):
        raise InvalidTotpSecret("TOTP secret must be base32 or an otpauth:// URI with a secret")


@app.command("create")
@command_wrapper
def create_vault(
    iterations: Optional[int] = typer.Option(
        None, "--iterations", help="PBKDF2 iterations (defaults to vault.kdf_iterations)"
    ),
) -> None:
    """Create a new vault protected by a master password."""
    service = get_vault_service()
    try:
        session = service.create(read_password(confirm=True), iterations=iterations)
        service.lock(session)
        format_success(f"Vault created at {service.db_path}")
    finally:
        service.close()


@app.command("list")
@command_wrapper
def list_entries(
    favorites: bool = typer.Option(False, "--favorites", "-f", help="Only favorites"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="table, json or yaml"),
) -> None:
    """List entries."""
    with unlocked_vault() as (service, session):
        entries = service.list_favorites(session) if favorites else service.list_all(session)
        rows = [entry_summary(e) for e in entries]
        rows += [corrupted_summary(e) for e in _corrupted(service, session, favorites)]
        format_output(rows, _output_format(output))


@app.command("get")
@command_wrapper
def get_entry(
    entry_id: str = typer.Argument(..., help="Entry ID"),
    show_password: bool = typer.Option(False, "--show-password", "-s", help="Reveal the password"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="table, json or yaml"),
) -> None:
    """Show one entry."""
    reveal = show_password or get_config_service().config.output.show_passwords
    with unlocked_vault() as (service, session):
        entry = service.get(session, entry_id)
        if entry.is_corrupted:
            format_warning("This entry cannot be decrypted")
        format_output(entry_detail(entry, show_password=reveal), _output_format(output))


@app.command("add")
@command_wrapper
def add_entry(
    title: str = typer.Option(..., "--title", "-t", help="Entry title"),
    username: str = typer.Option("", "--username", "-u", help="Username or e-mail"),
    url: Optional[str] = typer.Option(None, "--url", help="Site URL"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes"),
    folder: Optional[str] = typer.Option(None, "--folder", help="Folder ID"),
    favorite: bool = typer.Option(False, "--favorite", help="Mark as favorite"),
    totp: Optional[str] = typer.Option(None, "--totp", help="TOTP secret or otpauth:// URI"),
    secret: Optional[str] = typer.Option(
        None, "--secret", help="Entry password (prompted if omitted)"
    ),
    generate: bool = typer.Option(False, "--generate", "-g", help="Generate a random password"),
) -> None:
    """Add an entry."""
    _check_totp(totp)
    with unlocked_vault() as (service, session):
        if generate:
            secret = generate_password()
        elif secret is None:
            secret = typer.prompt("Entry password", hide_input=True, default="", show_default=False)
        entry_id = service.add_entry(
            session,
            EntryCreate(
                title=title,
                username=username,
                password=secret,
                url=url,
                notes=notes,
                totp_secret=totp,
                folder_id=folder,
                is_favorite=favorite,
            ),
        )
        format_success(f"Entry added: {entry_id}")


@app.command("update")
@command_wrapper
def update_entry(
    entry_id: str = typer.Argument(..., help="Entry ID"),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    username: Optional[str] = typer.Option(None, "--username", "-u"),
    url: Optional[str] = typer.Option(None, "--url"),
    notes: Optional[str] = typer.Option(None, "--notes"),
    folder: Optional[str] = typer.Option(None, "--folder"),
    totp: Optional[str] = typer.Option(None, "--totp", help="TOTP secret or otpauth:// URI"),
    secret: Optional[str] = typer.Option(None, "--secret", help="New entry password"),
    new_secret: bool = typer.Option(False, "--prompt-secret", help="Prompt for a new password"),
) -> None:
    """Update fields of an entry."""
    _check_totp(totp)
    changes = {
        "title": title,
        "username": username,
        "url": url,
        "notes": notes,
        "folder_id": folder,
        "totp_secret": totp,
        "password": secret,
    }
    with unlocked_vault() as (service, session):
        if new_secret:
            changes["password"] = typer.prompt(
                "New entry password", hide_input=True, confirmation_prompt=True
            )
        provided = {k: v for k, v in changes.items() if v is not None}
        if not provided:
            format_info("Nothing to update")
            return
        entry = service.update_entry(session, entry_id, EntryUpdate(**provided))
        format_success(f"Entry updated: {entry.id}")


@app.command("delete")
@command_wrapper
def delete_entry(
    entry_id: str = typer.Argument(..., help="Entry ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete an entry."""
    if not yes and not typer.confirm(f"Delete entry {entry_id}?"):
        format_info("Cancelled")
        raise typer.Exit(0)
    with unlocked_vault() as (service, session):
        service.delete_entry(session, entry_id)
        format_success(f"Entry deleted: {entry_id}")


@app.command("favorite")
@command_wrapper
def toggle_favorite(entry_id: str = typer.Argument(..., help="Entry ID")) -> None:
    """Toggle the favorite flag of an entry."""
    with unlocked_vault() as (service, session):
        favorite = service.toggle_favorite(session, entry_id)
        state = "added to" if favorite else "removed from"
        format_success(f"Entry {entry_id} {state} favorites")


@app.command("search")
@command_wrapper
def search_entries(
    query: str = typer.Argument(..., help="Text to match in title, username or URL"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="table, json or yaml"),
) -> None:
    """Search entries."""
    fmt = _output_format(output)
    with unlocked_vault() as (service, session):
        results = service.search(session, query)
        corrupted = _corrupted(service, session)
        # Only the plaintext URL of an unreadable entry can be matched
        needle = query.casefold()
        matched = [e for e in corrupted if needle in (e.url or "").casefold()]
        rows = [entry_summary(e) for e in results] + [corrupted_summary(e) for e in matched]
        if corrupted and fmt == "table":
            format_warning(
                f"{len(corrupted)} unreadable entries searched by URL only: "
                + ", ".join(e.id for e in corrupted)
            )
        format_output(rows, fmt)


@app.command("totp")
@command_wrapper
def show_totp(
    entry_id: str = typer.Argument(..., help="Entry ID"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="table, json or yaml"),
) -> None:
    """Show the current one-time code of an entry."""
    with unlocked_vault() as (service, session):
        entry = service.get(session, entry_id)
        if entry.is_corrupted:
            raise AppError(f"Entry {entry_id} cannot be decrypted")
        if not entry.totp_secret:
            raise AppError(f"Entry {entry_id} has no TOTP secret", exit_codes.ERROR_INVALID_ARGS)
        result = totp_code(entry.totp_secret)
        service.record_used(session, entry_id)

    fmt = _output_format(output)
    if fmt == "table":
        console.print(
            f"[bold]{format_totp_code(result.code)}[/bold]  "
            f"[dim]expires in {result.remaining}s[/dim]"
        )
    else:
        format_output({"id": entry_id, "code": result.code, "remaining": result.remaining}, fmt)


@app.command("generate")
@command_wrapper
def generate(
    length: int = typer.Option(DEFAULT_LENGTH, "--length", "-l", help="Number of characters"),
    uppercase: bool = typer.Option(True, "--uppercase/--no-uppercase", help="Use A-Z"),
    lowercase: bool = typer.Option(True, "--lowercase/--no-lowercase", help="Use a-z"),
    numbers: bool = typer.Option(True, "--numbers/--no-numbers", help="Use 0-9"),
    symbols: bool = typer.Option(True, "--symbols/--no-symbols", help="Use punctuation"),
) -> None:
    """Print a random password. Does not need an unlocked vault."""
    password = generate_password(length, uppercase, lowercase, numbers, symbols)
    get_console(highlight=False).print(password, markup=False)


@app.command("export")
@command_wrapper
def export_vault(
    file: Path = typer.Argument(..., help="Destination file"),
) -> None:
    """Write an encrypted export of all entries."""
    with unlocked_vault() as (service, session):
        blob = service.export_encrypted(session)
    file.write_text(blob, encoding="utf-8")
    file.chmod(0o600)
    format_success(f"Exported to {file}")


@app.command("import")
@command_wrapper
def import_vault(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Export file"),
) -> None:
    """Merge an encrypted export of this vault."""
    blob = file.read_text(encoding="utf-8")
    with unlocked_vault() as (service, session):
        result = service.import_encrypted(session, blob)
    format_success(
        f"Imported {result.imported}, updated {result.updated}, "
        f"skipped {result.skipped}, failed {len(result.failures)}"
    )


@app.command("doctor")
@command_wrapper
def doctor() -> None:
    """Report ciphertext formats and unreadable entries."""
    with unlocked_vault() as (service, session):
        census = service.format_census(session)
        corrupted = service.corrupted_ids(session)
        lines = [
            f"Entries: {service.count()}",
            f"KDF iterations: {session.meta.iterations}",
            "Field formats: "
            + (", ".join(f"{name}={n}" for name, n in sorted(census.items())) or "none"),
        ]
        if corrupted:
            lines.append(f"[red]Unreadable entries: {', '.join(corrupted)}[/red]")
        else:
            lines.append("[green]All entries readable[/green]")
        console.print(Panel("\n".join(lines), title="Vault health", border_style="cyan"))
