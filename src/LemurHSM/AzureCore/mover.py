# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.mover",
#   "purpose": "Mover backed by the Azure archive engine plus factories building it from settings",
#   "sections": [
#     {"id": "azuremover", "name": "AzureMover", "anchor": "class-azuremover", "kind": "class"},
#     {"id": "build-client", "name": "build_client", "anchor": "function-build-client", "kind": "function"},
#     {"id": "build-movers", "name": "build_movers", "anchor": "function-build-movers", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Azure data mover.

One :class:`AzureMover` serves one archive id.  All movers of a process share
a single :class:`BlobServiceClient` and therefore a single pacer, so the
bandwidth budget covers every archive at once.  The key an archive writes is
returned as the action's file id; restore and remove accept it back and map it
onto the object name again.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import httpx

from LemurHSM.dmplugin.mover import (
    ActionRequest,
    ActionResult,
    ActionStatus,
    BaseMover,
    MoverIdentity,
    ProgressCallback,
)

from .archive import ArchiveRequest
from .archive import archive as archive_file
from .errors import AzureCoreError
from .network.blob import BlobServiceClient
from .network.client import create_http_client
from .paths import check_object_name, join_key
from .remove import remove as remove_object
from .restore import restore as restore_file
from .settings import AzureCoreSettings, TransferConfiguration

logger = logging.getLogger(__name__)


class AzureMover(BaseMover):
    """Archive, restore, and remove files for one archive backend."""

    def __init__(
        self,
        identity: MoverIdentity,
        config: TransferConfiguration,
        client: BlobServiceClient,
        *,
        log: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(identity, log=log or logger)
        self._config = config
        self._client = client

    @property
    def config(self) -> TransferConfiguration:
        return self._config

    @property
    def client(self) -> BlobServiceClient:
        return self._client

    def object_name(self, path: str) -> str:
        """Map a request path onto an object name relative to the mount root.

        Absolute paths must lie under the mount root and no path may climb out
        of it through a ``..`` segment.
        """
        if os.path.isabs(path):
            root = os.path.abspath(self._config.mount_root)
            relative = os.path.relpath(os.path.abspath(path), root)
            if relative == os.curdir or relative.startswith(os.pardir):
                raise AzureCoreError(f"{path} is not under mount root {root}")
            path = relative
        return check_object_name(path)

    def name_from_file_id(self, file_id: str) -> str:
        """Strip ``container/prefix/`` from a key recorded by :meth:`archive`."""
        prefix = join_key(self._config.container, self._config.export_prefix) + "/"
        key = join_key(file_id)
        if not key.startswith(prefix) or key == prefix.rstrip("/"):
            raise AzureCoreError(f"file id {file_id!r} does not belong to {prefix.rstrip('/')}")
        return check_object_name(key[len(prefix):])

    def _resolve_name(self, request: ActionRequest) -> str:
        if request.file_id:
            return self.name_from_file_id(request.file_id)
        return self.object_name(request.primary_path)

    def archive(self, request: ActionRequest, progress: ProgressCallback) -> ActionResult:
        name = self.object_name(request.primary_path)
        outcome = archive_file(
            self._config,
            self._client,
            ArchiveRequest(name=name, token=request.token, progress=progress),
            log=self._log,
        )
        return ActionResult(
            request.action_id,
            request.kind,
            ActionStatus.SUCCEEDED,
            bytes_transferred=outcome.bytes_transferred,
            file_id=outcome.key,
            degradation=outcome.acl_error,
        )

    def restore(self, request: ActionRequest, progress: ProgressCallback) -> ActionResult:
        name = self._resolve_name(request)
        destination = request.write_path or str(Path(self._config.mount_root) / name)
        outcome = restore_file(
            self._config,
            self._client,
            name,
            destination,
            token=request.token,
            progress=progress,
            log=self._log,
        )
        return ActionResult(
            request.action_id,
            request.kind,
            ActionStatus.SUCCEEDED,
            bytes_transferred=outcome.bytes_transferred,
            file_id=outcome.key,
        )

    def remove(self, request: ActionRequest) -> ActionResult:
        name = self._resolve_name(request)
        key = remove_object(self._config, self._client, name, token=request.token, log=self._log)
        return ActionResult(request.action_id, request.kind, ActionStatus.SUCCEEDED, file_id=key)


def build_client(
    settings: AzureCoreSettings,
    *,
    transport: Optional[httpx.BaseTransport] = None,
    log: Optional[logging.Logger] = None,
) -> BlobServiceClient:
    """Create the process-wide object-store client for ``settings``."""

    http = create_http_client(settings.http, parallelism=settings.parallelism, transport=transport)
    return BlobServiceClient(
        http, settings.build_pacer(), api_version=settings.api_version, log=log
    )


def build_movers(
    settings: AzureCoreSettings,
    client: BlobServiceClient,
    *,
    log: Optional[logging.Logger] = None,
) -> List[AzureMover]:
    """Return one mover per configured archive, all sharing ``client``."""

    movers = []
    for archive_settings in settings.archives:
        config = settings.transfer_configuration(archive_settings.id, pacer=client.pacer)
        identity = MoverIdentity(fs_name=archive_settings.mover_name, archive_id=archive_settings.id)
        movers.append(AzureMover(identity, config, client, log=log))
    return movers


__all__ = ["AzureMover", "build_client", "build_movers"]
