"""Restore an archived object into a local file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from LemurHSM.dmplugin.cancellation import CancellationToken
from LemurHSM.dmplugin.mover import ProgressCallback

from .errors import MetadataUnavailable, StoreError
from .network.blob import BlobServiceClient
from .paths import ObjectAddress
from .settings import TransferConfiguration
from .transfer import download_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreOutcome:
    bytes_transferred: int
    key: str


def restore(
    config: TransferConfiguration,
    client: BlobServiceClient,
    name: str,
    destination: Union[str, Path],
    *,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressCallback] = None,
    log: Optional[logging.Logger] = None,
) -> RestoreOutcome:
    """Download ``name`` into ``destination``.

    Ownership, mode, and ACLs stored with the object are not applied; the
    destination keeps its own.
    """
    log = log or logger
    address = ObjectAddress.for_config(config, name)
    context = {"object_name": name, "key": address.key, "destination": str(destination)}
    log.info("Restoring %s", address, extra=context)
    try:
        transferred = download_file(
            client,
            address.blob_url,
            destination,
            config.block_size,
            config.parallelism,
            token=token,
            progress=progress,
        )
    except (MetadataUnavailable, StoreError) as exc:
        log.error("Restoring %s: failed to download blob: %s", name, exc, extra=context)
        raise
    log.info("Restored %s", address, extra={**context, "bytes": transferred})
    return RestoreOutcome(bytes_transferred=transferred, key=address.key)


__all__ = ["RestoreOutcome", "restore"]
