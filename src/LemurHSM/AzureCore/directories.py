# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.directories",
#   "purpose": "Replicate a file's ancestor directories as zero-byte placeholder objects",
#   "sections": [
#     {"id": "directoryplaceholder", "name": "DirectoryPlaceholder", "anchor": "class-directoryplaceholder", "kind": "class"},
#     {"id": "replicate-directories", "name": "replicate_directories", "anchor": "function-replicate-directories", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Ancestor directory replication.

Before a file is uploaded, every directory between the mount root and the file
is written as a zero-byte object tagged ``hdi_isfolder=true``.  Placeholders
are created shallowest first, one at a time, and are simply overwritten on a
later archive of a sibling; they are never deleted by this package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from LemurHSM.dmplugin.cancellation import CancellationToken

from .errors import MetadataUnavailable, StoreError
from .metadata import FilesystemMetadata, extract_metadata, strategy_for
from .network.blob import BlobServiceClient
from .paths import ObjectAddress, ancestor_segments
from .settings import TransferConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryPlaceholder:
    """One directory replicated into the store."""

    segment: str
    local_path: Path
    address: ObjectAddress
    metadata: Dict[str, str]
    acl: Optional[str] = None

    @property
    def key(self) -> str:
        return self.address.key


def replicate_directories(
    config: TransferConfiguration,
    client: BlobServiceClient,
    mount_root: Path,
    name: str,
    token: Optional[CancellationToken] = None,
    log: Optional[logging.Logger] = None,
) -> List[DirectoryPlaceholder]:
    """Create placeholders for every ancestor of ``name``.

    Args:
        config: Transfer configuration of the archive being written.
        client: Paced object-store client.
        mount_root: Filesystem root ``name`` is relative to.
        name: Object name of the file being archived (``a/b/file.txt``).
        token: Checked before each directory; already written placeholders
            stay in place when it fires.
        log: Logger for failures; defaults to this module's logger.

    Returns:
        Placeholders in the order they were written (shallowest first).

    Raises:
        MetadataUnavailable: A directory could not be stat'ed.
        BackendUnavailable: The store rejected a placeholder or ACL call.
        ActionCancelled: ``token`` fired between directories.
    """
    log = log or logger
    strategy = strategy_for(config.hns_enabled)
    created: List[DirectoryPlaceholder] = []

    for segment in ancestor_segments(name):
        if token is not None:
            token.raise_if_cancelled(f"replicating directories of {name}")

        local_path = Path(mount_root) / segment
        address = ObjectAddress.for_config(config, segment)
        try:
            record: FilesystemMetadata = extract_metadata(local_path)
            record = strategy.resolve(client, address, record, token)
            metadata = strategy.directory_metadata(record)
            client.put_blob(address.blob_url, b"", metadata=metadata, token=token)
            strategy.apply(client, address, record, token)
        except (MetadataUnavailable, StoreError) as exc:
            log.error(
                "Archiving %s: failed to replicate directory %s: %s",
                name,
                address,
                exc,
                extra={"object_name": name, "directory": segment, "key": address.key},
            )
            raise

        log.debug("Directory placeholder written", extra={"key": address.key})
        created.append(
            DirectoryPlaceholder(
                segment=segment,
                local_path=local_path,
                address=address,
                metadata=metadata,
                acl=record.acl,
            )
        )

    return created


__all__ = ["DirectoryPlaceholder", "replicate_directories"]
