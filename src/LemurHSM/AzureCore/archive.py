# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.archive",
#   "purpose": "Archive one file: replicate its directories, upload it, and preserve its permission state",
#   "sections": [
#     {"id": "archiverequest", "name": "ArchiveRequest", "anchor": "class-archiverequest", "kind": "class"},
#     {"id": "archiveoutcome", "name": "ArchiveOutcome", "anchor": "class-archiveoutcome", "kind": "class"},
#     {"id": "archive", "name": "archive", "anchor": "function-archive", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Archive a file into the object store.

The steps run in a fixed order and every one but the last is fatal:

1. write a placeholder for each ancestor directory;
2. stat the file;
3. in hierarchical-namespace mode, read the ACL the store already holds for
   the path (a missing path is fine, the ACL is then derived from the mode);
4. upload the file with ``Owner``/``Group``/``Permissions``/``ModTime``
   metadata;
5. in hierarchical-namespace mode, write the ACL back.  A failure here is
   logged and returned as :attr:`ArchiveOutcome.acl_error`; the data is
   already durable, so this step also ignores the action token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from LemurHSM.dmplugin.cancellation import CancellationToken
from LemurHSM.dmplugin.mover import ProgressCallback

from .directories import DirectoryPlaceholder, replicate_directories
from .errors import MetadataUnavailable, StoreError
from .metadata import extract_metadata, strategy_for
from .network.blob import BlobServiceClient
from .paths import ObjectAddress
from .settings import TransferConfiguration
from .transfer import upload_file

logger = logging.getLogger(__name__)


@dataclass
class ArchiveRequest:
    """What to archive.

    Attributes:
        name: Object name relative to the mount root (``a/b/file.txt``).
        source: File to read; defaults to ``mount_root / name``.
        token: Cancellation signal for the action.
        progress: Called with ``(bytes_done, bytes_total)`` during the upload.
    """

    name: str
    source: Optional[Path] = None
    token: CancellationToken = field(default_factory=CancellationToken)
    progress: Optional[ProgressCallback] = None


@dataclass(frozen=True)
class ArchiveOutcome:
    bytes_transferred: int
    key: str
    placeholders: Tuple[DirectoryPlaceholder, ...] = ()
    acl_error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.acl_error is not None


def archive(
    config: TransferConfiguration,
    client: BlobServiceClient,
    request: ArchiveRequest,
    *,
    log: Optional[logging.Logger] = None,
) -> ArchiveOutcome:
    """Archive ``request.name`` under ``config``'s container and export prefix.

    Raises:
        MetadataUnavailable: A directory or the file could not be stat'ed.
        BackendUnavailable: A placeholder, the ACL pre-fetch, or the upload failed.
        ActionCancelled: The request's token fired before the upload committed.
    """
    log = log or logger
    address = ObjectAddress.for_config(config, request.name)
    source = Path(request.source) if request.source is not None else config.mount_root / request.name
    token = request.token
    strategy = strategy_for(config.hns_enabled)
    context = {"object_name": request.name, "key": address.key, "hns": config.hns_enabled}

    log.info("Archiving %s", address, extra=context)

    placeholders = replicate_directories(
        config, client, config.mount_root, request.name, token, log
    )

    try:
        record = extract_metadata(source)
    except MetadataUnavailable as exc:
        log.error("Archiving %s: failed to read file metadata: %s", request.name, exc, extra=context)
        raise

    try:
        record = strategy.resolve(client, address, record, token)
    except StoreError as exc:
        log.error("Archiving %s: failed to get access control: %s", request.name, exc, extra=context)
        raise

    try:
        transferred = upload_file(
            client,
            address.blob_url,
            source,
            record.size,
            config.block_size,
            config.parallelism,
            metadata=strategy.file_metadata(record),
            token=token,
            progress=request.progress,
        )
    except (MetadataUnavailable, StoreError) as exc:
        log.error("Archiving %s: failed to upload blob: %s", request.name, exc, extra=context)
        raise

    # The content is committed from here on; a late cancellation no longer applies.
    acl_error = None
    try:
        strategy.apply(client, address, record, None)
    except StoreError as exc:
        acl_error = f"failed to set access control on {address}: {exc}"
        log.error("Archiving %s: %s", request.name, acl_error, extra=context)

    log.info(
        "Archived %s",
        address,
        extra={**context, "bytes": transferred, "placeholders": len(placeholders)},
    )
    return ArchiveOutcome(
        bytes_transferred=transferred,
        key=address.key,
        placeholders=tuple(placeholders),
        acl_error=acl_error,
    )


__all__ = ["ArchiveOutcome", "ArchiveRequest", "archive"]
