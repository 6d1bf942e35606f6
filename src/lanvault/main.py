"""Main entry point for the lanvault CLI."""

import typer

from lanvault import __version__
from lanvault.commands import config_command, sync_command, vault_command
from lanvault.utils.ui.formatters import get_console

app = typer.Typer(
    name="lanvault",
    help="Local-first encrypted credential vault with LAN sync",
    no_args_is_help=True,
)

app.add_typer(vault_command.app, name="vault", help="Vault management commands")
app.add_typer(sync_command.app, name="sync", help="Sync with a device on the local network")
app.add_typer(config_command.app, name="config", help="Configuration management")


@app.command()
def version() -> None:
    """Show version information"""
    get_console(highlight=False).print(__version__)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
