# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.metadata",
#   "purpose": "Read POSIX ownership, mode, mtime and ACLs and choose how they are preserved in the store",
#   "sections": [
#     {"id": "filesystemmetadata", "name": "FilesystemMetadata", "anchor": "class-filesystemmetadata", "kind": "class"},
#     {"id": "extract-metadata", "name": "extract_metadata", "anchor": "function-extract-metadata", "kind": "function"},
#     {"id": "acl", "name": "ACL helpers", "anchor": "ACL", "kind": "helpers"},
#     {"id": "strategies", "name": "Metadata strategies", "anchor": "STR", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Filesystem metadata and its two preservation strategies.

The object store knows nothing about owners, groups, or mode bits.  In a flat
container they travel as generic blob metadata (``Owner``, ``Group``,
``Permissions``, ``ModTime``); in a hierarchical-namespace container the
directory placeholders carry none of those keys and the permission state is
written as a native ACL through the dfs endpoint instead.  The choice is made
once, from configuration, by :func:`strategy_for`.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional, Union

from LemurHSM.dmplugin.cancellation import CancellationToken

from .errors import MetadataUnavailable, ObjectNotFound
from .network.blob import BlobServiceClient
from .paths import ObjectAddress

logger = logging.getLogger(__name__)

FOLDER_KEY = "hdi_isfolder"
MOD_TIME_FORMAT = "%Y-%m-%d %H:%M:%S %z"


@dataclass(frozen=True)
class FilesystemMetadata:
    """Ownership and permission state of one filesystem entry."""

    owner: int
    group: int
    mode: int
    mtime: float
    acl: Optional[str] = None
    size: int = 0

    @property
    def permissions(self) -> str:
        return format(self.mode, "o")

    @property
    def mod_time(self) -> str:
        """Modification time in the local zone, e.g. ``2024-05-01 12:00:00 +0200``."""
        return datetime.fromtimestamp(self.mtime, tz=timezone.utc).astimezone().strftime(
            MOD_TIME_FORMAT
        )

    def as_blob_metadata(self) -> Dict[str, str]:
        return {
            "Permissions": self.permissions,
            "ModTime": self.mod_time,
            "Owner": str(self.owner),
            "Group": str(self.group),
        }

    def with_acl(self, acl: str) -> "FilesystemMetadata":
        return replace(self, acl=acl)


def extract_metadata(path: Union[str, os.PathLike]) -> FilesystemMetadata:
    """Stat ``path`` (file or directory).

    Raises:
        MetadataUnavailable: If the entry cannot be stat'ed.
    """
    try:
        st = os.stat(path)
    except OSError as exc:
        raise MetadataUnavailable(
            f"cannot read metadata of {os.fspath(path)}: {exc.strerror or exc}",
            path=os.fspath(path),
        ) from exc
    return FilesystemMetadata(
        owner=st.st_uid,
        group=st.st_gid,
        mode=stat.S_IMODE(st.st_mode),
        mtime=st.st_mtime,
        size=st.st_size,
    )


def _triplet(bits: int) -> str:
    return (
        ("r" if bits & 4 else "-")
        + ("w" if bits & 2 else "-")
        + ("x" if bits & 1 else "-")
    )


def acl_from_mode(mode: int) -> str:
    """Short-form POSIX ACL equivalent to ``mode``.

    >>> acl_from_mode(0o750)
    'user::rwx,group::r-x,other::---'
    """
    return f"user::{_triplet(mode >> 6)},group::{_triplet(mode >> 3)},other::{_triplet(mode)}"


def fetch_acl(
    client: BlobServiceClient,
    address: ObjectAddress,
    token: Optional[CancellationToken] = None,
) -> Optional[str]:
    """Return the store's ACL for ``address`` or ``None`` if the path does not exist yet.

    Raises:
        BackendUnavailable: For any failure other than "not found".
    """
    try:
        return client.get_access_control(address.dfs_url, token=token)
    except ObjectNotFound:
        logger.debug("No ACL yet for %s", address, extra={"key": address.key})
        return None


class GenericMetadata:
    """Flat containers: permission state travels as blob metadata."""

    name = "generic"
    uses_acl = False

    def directory_metadata(self, record: FilesystemMetadata) -> Dict[str, str]:
        return {FOLDER_KEY: "true", **record.as_blob_metadata()}

    def file_metadata(self, record: FilesystemMetadata) -> Dict[str, str]:
        return record.as_blob_metadata()

    def resolve(
        self,
        client: BlobServiceClient,
        address: ObjectAddress,
        record: FilesystemMetadata,
        token: Optional[CancellationToken] = None,
    ) -> FilesystemMetadata:
        return record

    def apply(
        self,
        client: BlobServiceClient,
        address: ObjectAddress,
        record: FilesystemMetadata,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Nothing to write after the upload in flat mode."""


class NativeAcl:
    """Hierarchical-namespace containers: permission state is a native ACL."""

    name = "native-acl"
    uses_acl = True

    def directory_metadata(self, record: FilesystemMetadata) -> Dict[str, str]:
        return {FOLDER_KEY: "true"}

    def file_metadata(self, record: FilesystemMetadata) -> Dict[str, str]:
        return record.as_blob_metadata()

    def resolve(
        self,
        client: BlobServiceClient,
        address: ObjectAddress,
        record: FilesystemMetadata,
        token: Optional[CancellationToken] = None,
    ) -> FilesystemMetadata:
        """Attach the ACL the store already holds, or one derived from the mode bits."""
        acl = fetch_acl(client, address, token)
        return record.with_acl(acl or acl_from_mode(record.mode))

    def apply(
        self,
        client: BlobServiceClient,
        address: ObjectAddress,
        record: FilesystemMetadata,
        token: Optional[CancellationToken] = None,
    ) -> None:
        acl = record.acl or acl_from_mode(record.mode)
        client.set_access_control(address.dfs_url, acl, token=token)


MetadataStrategy = Union[GenericMetadata, NativeAcl]


def strategy_for(hns_enabled: bool) -> MetadataStrategy:
    return NativeAcl() if hns_enabled else GenericMetadata()


__all__ = [
    "FOLDER_KEY",
    "FilesystemMetadata",
    "GenericMetadata",
    "MetadataStrategy",
    "NativeAcl",
    "acl_from_mode",
    "extract_metadata",
    "fetch_acl",
    "strategy_for",
]
