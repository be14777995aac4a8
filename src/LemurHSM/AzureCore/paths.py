# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.paths",
#   "purpose": "Map filesystem-relative object names onto flat blob and hierarchical-namespace addresses",
#   "sections": [
#     {"id": "join-key", "name": "join_key", "anchor": "function-join-key", "kind": "function"},
#     {"id": "ancestor-segments", "name": "ancestor_segments", "anchor": "function-ancestor-segments", "kind": "function"},
#     {"id": "objectaddress", "name": "ObjectAddress", "anchor": "class-objectaddress", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Object-store addressing.

An archived file is one logical object reachable through two protocol views:
the flat blob endpoint (``https://<account>.blob.core.windows.net``) and the
hierarchical-namespace endpoint (``https://<account>.dfs.core.windows.net``).
Both views address ``<container>/<export prefix>/<object name>`` and carry the
shared-access token as their query string.

Example:
    >>> address = ObjectAddress("acct", "archive", "a/b/file.txt", export_prefix="export1")
    >>> address.key
    'archive/export1/a/b/file.txt'
    >>> address.blob_url
    'https://acct.blob.core.windows.net/archive/export1/a/b/file.txt'
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import List
from urllib.parse import quote

from .errors import AzureCoreError

_SEPARATORS = re.compile(r"[/\\]" if os.sep == "\\" else r"/")
_SAS_QUERY = re.compile(r"\?.*$")


def _segments(part: str) -> List[str]:
    return [segment for segment in _SEPARATORS.split(part) if segment not in ("", ".")]


def join_key(*parts: str) -> str:
    """Join path components into a ``/``-separated object key.

    Empty components and ``.`` segments are dropped, so joining is
    idempotent: ``join_key(join_key(*parts)) == join_key(*parts)``.
    """

    segments: List[str] = []
    for part in parts:
        if part:
            segments.extend(_segments(str(part)))
    return "/".join(segments)


def ancestor_segments(name: str) -> List[str]:
    """Return the cumulative ancestor directories of ``name``, shallowest first.

    >>> ancestor_segments("a/b/file.txt")
    ['a', 'a/b']
    >>> ancestor_segments("file.txt")
    []
    """

    segments = _segments(name)
    return ["/".join(segments[: index + 1]) for index in range(len(segments) - 1)]


def check_object_name(name: str) -> str:
    """Return ``name`` as a key fragment, rejecting names that leave their root.

    Raises:
        AzureCoreError: ``name`` is empty or has a ``..`` segment.
    """
    segments = _segments(str(name))
    if not segments:
        raise AzureCoreError("object name is empty")
    if ".." in segments:
        raise AzureCoreError(f"object name {name!r} escapes its root")
    return "/".join(segments)


def normalize_sas(token: str) -> str:
    token = (token or "").strip()
    if token and not token.startswith("?"):
        return "?" + token
    return token


def redact_url(url: str) -> str:
    """Strip the shared-access query string from ``url`` for logging."""
    return _SAS_QUERY.sub("", url)


@dataclass(frozen=True)
class ObjectAddress:
    """Flat and hierarchical-namespace views of one stored object."""

    account_name: str
    container: str
    name: str
    export_prefix: str = ""
    sas_token: str = field(default="", repr=False)
    blob_service_suffix: str = "blob.core.windows.net"
    dfs_service_suffix: str = "dfs.core.windows.net"

    def __post_init__(self) -> None:
        check_object_name(self.name)

    @classmethod
    def for_config(cls, config, name: str) -> "ObjectAddress":
        """Build the address of ``name`` under a :class:`TransferConfiguration`."""
        return cls(
            account_name=config.account_name,
            container=config.container,
            name=name,
            export_prefix=config.export_prefix,
            sas_token=config.sas_token,
            blob_service_suffix=config.blob_service_suffix,
            dfs_service_suffix=config.dfs_service_suffix,
        )

    @property
    def key(self) -> str:
        """``container/prefix/name`` with normalised separators."""
        return join_key(self.container, self.export_prefix, self.name)

    @property
    def blob_name(self) -> str:
        """The key inside the container (``prefix/name``)."""
        return join_key(self.export_prefix, self.name)

    def _url(self, suffix: str) -> str:
        path = quote(self.key, safe="/")
        return f"https://{self.account_name}.{suffix}/{path}{normalize_sas(self.sas_token)}"

    @property
    def blob_url(self) -> str:
        return self._url(self.blob_service_suffix)

    @property
    def dfs_url(self) -> str:
        return self._url(self.dfs_service_suffix)

    def redacted(self) -> str:
        return redact_url(self.blob_url)

    def __str__(self) -> str:
        return self.redacted()


__all__ = [
    "ObjectAddress",
    "ancestor_segments",
    "check_object_name",
    "join_key",
    "normalize_sas",
    "redact_url",
]
