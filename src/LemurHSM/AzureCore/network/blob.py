# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.network.blob",
#   "purpose": "Paced REST calls against the blob and hierarchical-namespace endpoints",
#   "sections": [
#     {"id": "blobproperties", "name": "BlobProperties", "anchor": "class-blobproperties", "kind": "class"},
#     {"id": "blobserviceclient", "name": "BlobServiceClient", "anchor": "class-blobserviceclient", "kind": "class"},
#     {"id": "block-id", "name": "make_block_id", "anchor": "function-make-block-id", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Object-store REST operations.

Every request is authorised by the SAS token already embedded in its URL,
carries ``x-ms-version``, and first takes its share of bandwidth from the
:class:`~LemurHSM.AzureCore.pacer.Pacer`.  Responses are mapped onto the
engine's error taxonomy: ``404`` raises :class:`ObjectNotFound`; any other
failure status or transport error raises :class:`BackendUnavailable`.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Dict, Iterable, Mapping, Optional, Sequence
from xml.etree import ElementTree

import httpx

from LemurHSM.dmplugin.cancellation import CancellationToken

from ..errors import BackendUnavailable, ObjectNotFound
from ..pacer import Pacer
from ..paths import redact_url
from ..settings import DEFAULT_API_VERSION

logger = logging.getLogger(__name__)

META_PREFIX = "x-ms-meta-"


def make_block_id(upload_id: str, index: int) -> str:
    """Return a base64 block id; ids of one upload all have the same length."""
    return base64.b64encode(f"{upload_id}-{index:08d}".encode("ascii")).decode("ascii")


def _block_list_xml(block_ids: Iterable[str]) -> bytes:
    root = ElementTree.Element("BlockList")
    for block_id in block_ids:
        ElementTree.SubElement(root, "Latest").text = block_id
    return ElementTree.tostring(root, encoding="utf-8", xml_declaration=True)


@dataclass(frozen=True)
class BlobProperties:
    size: int
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


class BlobServiceClient:
    """Thin, paced wrapper over the blob and dfs REST APIs."""

    def __init__(
        self,
        http: httpx.Client,
        pacer: Optional[Pacer] = None,
        *,
        api_version: str = DEFAULT_API_VERSION,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._http = http
        self._pacer = pacer or Pacer.unlimited()
        self._api_version = api_version
        self._log = log or logger

    @property
    def pacer(self) -> Pacer:
        return self._pacer

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Blob endpoint
    # ------------------------------------------------------------------

    def put_blob(
        self,
        url: str,
        data: bytes = b"",
        *,
        metadata: Optional[Mapping[str, str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Create or overwrite a block blob in a single request."""
        headers = {"x-ms-blob-type": "BlockBlob", **self._metadata_headers(metadata)}
        self._request("PUT", url, token=token, headers=headers, content=data)

    def put_block(
        self,
        url: str,
        block_id: str,
        data: bytes,
        *,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Stage one uncommitted block."""
        self._request(
            "PUT",
            url,
            token=token,
            params={"comp": "block", "blockid": block_id},
            content=data,
        )

    def put_block_list(
        self,
        url: str,
        block_ids: Sequence[str],
        *,
        metadata: Optional[Mapping[str, str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Commit staged blocks, in order, as the blob's content."""
        headers = {"Content-Type": "application/xml", **self._metadata_headers(metadata)}
        self._request(
            "PUT",
            url,
            token=token,
            params={"comp": "blocklist"},
            headers=headers,
            content=_block_list_xml(block_ids),
        )

    def delete_blob(
        self,
        url: str,
        *,
        include_snapshots: bool = True,
        token: Optional[CancellationToken] = None,
    ) -> None:
        headers = {"x-ms-delete-snapshots": "include"} if include_snapshots else {}
        self._request("DELETE", url, token=token, headers=headers)

    def get_properties(
        self, url: str, *, token: Optional[CancellationToken] = None
    ) -> BlobProperties:
        response = self._request("HEAD", url, token=token)
        metadata = {}
        for raw_key, raw_value in response.headers.raw:
            key = raw_key.decode("latin-1")
            if key.lower().startswith(META_PREFIX):
                metadata[key[len(META_PREFIX):]] = raw_value.decode("latin-1")
        return BlobProperties(
            size=int(response.headers.get("Content-Length", "0")),
            etag=response.headers.get("ETag"),
            metadata=metadata,
        )

    def get_range(
        self,
        url: str,
        offset: int,
        length: int,
        *,
        token: Optional[CancellationToken] = None,
    ) -> bytes:
        """Read ``length`` bytes starting at ``offset``."""
        headers = {"x-ms-range": f"bytes={offset}-{offset + length - 1}"}
        response = self._request("GET", url, token=token, headers=headers, weight=length)
        return response.content

    # ------------------------------------------------------------------
    # Hierarchical-namespace endpoint
    # ------------------------------------------------------------------

    def get_access_control(
        self, dfs_url: str, *, token: Optional[CancellationToken] = None
    ) -> Optional[str]:
        """Return the ``x-ms-acl`` of a path.

        Raises:
            ObjectNotFound: When the path does not exist yet.
        """
        response = self._request(
            "HEAD", dfs_url, token=token, params={"action": "getAccessControl", "upn": "false"}
        )
        return response.headers.get("x-ms-acl")

    def set_access_control(
        self, dfs_url: str, acl: str, *, token: Optional[CancellationToken] = None
    ) -> None:
        self._request(
            "PATCH",
            dfs_url,
            token=token,
            params={"action": "setAccessControl"},
            headers={"x-ms-acl": acl},
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @staticmethod
    def _metadata_headers(metadata: Optional[Mapping[str, str]]) -> Dict[str, str]:
        return {f"{META_PREFIX}{key}": str(value) for key, value in (metadata or {}).items()}

    def _request(
        self,
        method: str,
        url: str,
        *,
        token: Optional[CancellationToken],
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        content: Optional[bytes] = None,
        weight: Optional[int] = None,
    ) -> httpx.Response:
        self._pacer.acquire(weight if weight is not None else len(content or b""), token)

        request_headers = {
            "x-ms-version": self._api_version,
            "x-ms-date": formatdate(usegmt=True),
            **(headers or {}),
        }
        if content is not None:
            request_headers["Content-Length"] = str(len(content))

        try:
            response = self._http.request(
                method, url, params=params, headers=request_headers, content=content
            )
        except httpx.HTTPError as exc:
            raise BackendUnavailable(f"{method} {redact_url(url)} failed: {exc}") from exc

        if response.status_code < 300:
            return response

        error_code = response.headers.get("x-ms-error-code")
        message = f"{method} {redact_url(url)} returned {response.status_code}"
        if error_code:
            message = f"{message} ({error_code})"
        self._log.debug(
            "Object-store request failed",
            extra={
                "method": method,
                "url": redact_url(url),
                "status_code": response.status_code,
                "error_code": error_code,
            },
        )
        if response.status_code == 404:
            raise ObjectNotFound(message, status_code=404, error_code=error_code)
        raise BackendUnavailable(message, status_code=response.status_code, error_code=error_code)


__all__ = ["BlobProperties", "BlobServiceClient", "META_PREFIX", "make_block_id"]
