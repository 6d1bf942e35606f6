"""LAN sync commands."""

import json
import socket
from typing import Optional

import typer
from rich.panel import Panel

from lanvault.commands.decorators import command_wrapper
from lanvault.commands.utils import get_vault_service, read_password, unlocked_vault
from lanvault.models.exceptions import WrongPassword
from lanvault.models.sync import SyncEvent, parse_pairing_payload
from lanvault.services.config_service import get_config_service
from lanvault.services.sync_server import SyncServer
from lanvault.services.sync_service import SyncEngine
from lanvault.services.sync_state import SyncState
from lanvault.utils.ui.formatters import (
    console,
    format_dict_table,
    format_info,
    format_success,
    format_timestamp,
    format_warning,
)

app = typer.Typer(help="Sync with another device on the local network")


def _local_ip() -> str:
    """Address other LAN devices can reach us on (no packet is sent)."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        try:
            s.connect(("10.255.255.255", 1))
            return s.getsockname()[0]
        except OSError:
            return "127.0.0.1"


def _print_event(event: SyncEvent) -> None:
    if event.kind == "sync-request-received":
        format_info(f"Sync requested by {event.data.get('address', 'peer')}")
    elif event.kind == "status-changed" and event.data.get("status") == "connected":
        format_info(f"Peer connected from {event.data.get('address')}")
    elif event.kind == "disconnected":
        format_info(f"Peer {event.data.get('address', '')} disconnected")
    elif event.kind == "error":
        format_warning(event.data.get("message", "sync error"))


@app.command("serve")
@command_wrapper
async def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on"),
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind"),
) -> None:
    """Unlock the vault and answer sync requests until interrupted."""
    config = get_config_service().config
    service = get_vault_service()
    session = None
    try:
        session = await service.open_async(read_password())
        if session is None:
            raise WrongPassword("Incorrect master password")

        server = SyncServer(
            config.sync.device_id,
            config.sync.device_name,
            host=host or config.sync.host,
            port=config.sync.port if port is None else port,
            entry_source=service.entry_source(session),
        )
        async with server:
            pairing = json.dumps(
                {
                    "ip": _local_ip(),
                    "port": server.bound_port,
                    "deviceId": config.sync.device_id,
                    "name": config.sync.device_name,
                }
            )
            console.print(
                Panel(pairing, title="Pairing code", subtitle="Ctrl+C to stop", border_style="cyan")
            )
            while True:
                _print_event(await server.events.get())
    finally:
        if session is not None:
            service.lock(session)
        service.close()


@app.command("pull")
@command_wrapper
async def pull(
    pairing: str = typer.Argument(..., help="Pairing code: JSON or ip:port"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Request timeout in seconds"),
) -> None:
    """Fetch entries from a peer and merge them into the local vault."""
    config_svc = get_config_service()
    config = config_svc.config
    info = parse_pairing_payload(pairing)

    with unlocked_vault() as (service, session):
        engine = SyncEngine(
            config.sync.device_id,
            config.sync.device_name,
            connect_timeout=config.sync.connect_timeout,
            request_timeout=timeout or config.sync.request_timeout,
            entry_source=service.entry_source(session),
        )
        async with engine:
            await engine.connect(info)
            format_info(f"Connected to {engine.peer_name or info.ip}")
            response = await engine.request_sync()

        if response.peer_locked:
            format_warning("Peer vault is locked; nothing to import")
            return

        result = service.import_entries(session, response.entries)

    peer_id = engine.peer_id or f"{info.ip}:{info.port}"
    SyncState(config_svc.sync_state_path).record_sync(
        peer_id, result, peer_name=engine.peer_name, address=f"{info.ip}:{info.port}"
    )
    format_success(
        f"Imported {result.imported}, updated {result.updated}, "
        f"skipped {result.skipped}, failed {len(result.failures)}"
    )
    for failure in result.failures:
        format_warning(f"{failure.entry_id}: {failure.reason}")


@app.command("status")
@command_wrapper
def status() -> None:
    """Show when each peer was last synced."""
    peers = SyncState(get_config_service().sync_state_path).all_peers()
    if not peers:
        format_info("Never synced")
        return
    format_dict_table(
        [
            {
                "peer": p.peer_name or p.peer_id,
                "address": p.address,
                "last_sync": format_timestamp(p.last_sync),
                "imported": p.imported,
                "updated": p.updated,
                "skipped": p.skipped,
                "failed": p.failed,
            }
            for p in peers
        ]
    )
