# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.cli",
#   "purpose": "Operator CLI running single archive, restore, and remove actions outside the coordinator",
#   "sections": [
#     {"id": "setup", "name": "Setup & Helpers", "anchor": "SET", "kind": "infra"},
#     {"id": "commands", "name": "CLI Commands", "anchor": "CMDS", "kind": "commands"}
#   ]
# }
# === /NAVMAP ===

"""``lhsm-az-core``: run one mover action by hand.

Useful for verifying credentials and container layout before the mover is
registered with a coordinator.  Every command reads the same YAML file the
mover uses and exits with status 1 when the action fails.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, NoReturn, Optional, Tuple

import typer

from LemurHSM.dmplugin.cancellation import ActionCancelled

from .archive import ArchiveRequest
from .archive import archive as archive_file
from .errors import AzureCoreError
from .logging_config import setup_logging
from .mover import build_client
from .network.blob import BlobServiceClient
from .remove import remove as remove_object
from .restore import restore as restore_file
from .settings import AzureCoreSettings, TransferConfiguration, load_config

# ============================================================================
# SETUP (SET)
# ============================================================================

app = typer.Typer(help="Archive, restore, and remove files in Azure blob storage")
logger = logging.getLogger(__name__)

ConfigOption = typer.Option(
    Path("/etc/lhsmd/lhsm-plugin-az-core.yaml"),
    "--config",
    "-c",
    envvar="LHSM_AZ_CONFIG",
    help="Mover configuration file (YAML)",
)
ArchiveIdOption = typer.Option(
    None, "--archive-id", "-a", help="Archive id to use; defaults to the first configured"
)


def _fail(message: str) -> NoReturn:
    typer.echo(f"error: {message}", err=True)
    raise typer.Exit(code=1)


def _load(config_path: Path) -> AzureCoreSettings:
    try:
        settings = load_config(config_path)
    except AzureCoreError as exc:
        _fail(str(exc))
    setup_logging(settings.logging)
    return settings


@contextmanager
def _engine(
    config_path: Path, archive_id: Optional[int]
) -> Iterator[Tuple[TransferConfiguration, BlobServiceClient]]:
    settings = _load(config_path)
    if archive_id is None:
        archive_id = settings.archives[0].id
    client = build_client(settings)
    try:
        config = settings.transfer_configuration(archive_id, pacer=client.pacer)
    except AzureCoreError as exc:
        client.close()
        _fail(str(exc))
    try:
        yield config, client
    except (AzureCoreError, ActionCancelled) as exc:
        _fail(str(exc))
    finally:
        client.close()


# ============================================================================
# CLI COMMANDS (CMDS)
# ============================================================================


@app.command("archive")
def archive_command(
    name: str = typer.Argument(..., help="Path relative to the mount root"),
    source: Optional[Path] = typer.Option(
        None, "--source", help="Read data from this file instead of <mount_root>/NAME"
    ),
    config_path: Path = ConfigOption,
    archive_id: Optional[int] = ArchiveIdOption,
) -> None:
    """Archive NAME: replicate its directories and upload it."""
    with _engine(config_path, archive_id) as (config, client):
        outcome = archive_file(config, client, ArchiveRequest(name=name, source=source))
        typer.echo(f"archived {outcome.key} ({outcome.bytes_transferred} bytes)")
        if outcome.acl_error:
            typer.echo(f"warning: {outcome.acl_error}", err=True)


@app.command("restore")
def restore_command(
    name: str = typer.Argument(..., help="Path relative to the mount root"),
    destination: Path = typer.Argument(..., help="File to write"),
    config_path: Path = ConfigOption,
    archive_id: Optional[int] = ArchiveIdOption,
) -> None:
    """Restore NAME into DEST."""
    with _engine(config_path, archive_id) as (config, client):
        outcome = restore_file(config, client, name, destination)
        typer.echo(f"restored {outcome.key} ({outcome.bytes_transferred} bytes)")


@app.command("remove")
def remove_command(
    name: str = typer.Argument(..., help="Path relative to the mount root"),
    config_path: Path = ConfigOption,
    archive_id: Optional[int] = ArchiveIdOption,
) -> None:
    """Delete the archived copy of NAME and its snapshots."""
    with _engine(config_path, archive_id) as (config, client):
        key = remove_object(config, client, name)
        typer.echo(f"removed {key}")


@app.command("check-config")
def check_config(
    config_path: Path = ConfigOption,
    archive_id: Optional[int] = ArchiveIdOption,
) -> None:
    """Validate the configuration and print the effective settings."""
    settings = _load(config_path)
    archives = settings.archives
    if archive_id is not None:
        try:
            archives = [settings.archive(archive_id)]
        except AzureCoreError as exc:
            _fail(str(exc))
    summary = {
        "account_name": settings.account_name,
        "sas_token": "***masked***" if settings.sas_token else "",
        "mount_root": str(settings.mount_root),
        "parallelism": settings.parallelism,
        "block_size": settings.block_size,
        "bandwidth": settings.bandwidth,
        "hns_enabled": settings.hns_enabled,
        "archives": [
            {
                "id": archive.id,
                "name": archive.mover_name,
                "container": archive.container,
                "prefix": archive.prefix,
                "url": f"https://{settings.account_name}.{settings.blob_service_suffix}/{archive.container}",
            }
            for archive in archives
        ],
    }
    typer.echo(json.dumps(summary, indent=2))


def main() -> None:
    app()


__all__ = ["app", "main"]
