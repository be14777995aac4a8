# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.testing",
#   "purpose": "In-memory blob and hierarchical-namespace service served through httpx.MockTransport",
#   "sections": [
#     {"id": "storedblob", "name": "StoredBlob", "anchor": "class-storedblob", "kind": "class"},
#     {"id": "recordedrequest", "name": "RecordedRequest", "anchor": "class-recordedrequest", "kind": "class"},
#     {"id": "fakeblobstore", "name": "FakeBlobStore", "anchor": "class-fakeblobstore", "kind": "class"},
#     {"id": "make-client", "name": "make_client", "anchor": "function-make-client", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Test doubles for the object store.

:class:`FakeBlobStore` answers the subset of the blob and dfs REST APIs the
engine uses (Put Blob, Put Block, Put Block List, Delete Blob, Get Blob
Properties, ranged Get Blob, get/setAccessControl) from memory.  It records
every request, keeps staged blocks apart from committed blobs, and can be told
to fail particular calls::

    store = FakeBlobStore()
    store.fail("PUT", comp="blocklist", status=503)
    client = make_client(store)
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from xml.etree import ElementTree

import httpx

from ..network.blob import META_PREFIX, BlobServiceClient
from ..network.client import create_http_client
from ..pacer import Pacer

DEFAULT_ACL = "user::rwx,group::r-x,other::---"


@dataclass
class StoredBlob:
    data: bytes
    metadata: Dict[str, str] = field(default_factory=dict)
    snapshots: int = 0

    @property
    def etag(self) -> str:
        return '"0x' + hashlib.md5(self.data).hexdigest()[:16].upper() + '"'


@dataclass(frozen=True)
class RecordedRequest:
    method: str
    endpoint: str
    key: str
    params: Dict[str, str]
    headers: Tuple[Tuple[str, str], ...]
    body_size: int

    @property
    def comp(self) -> Optional[str]:
        return self.params.get("comp")

    @property
    def action(self) -> Optional[str]:
        return self.params.get("action")

    def header(self, name: str) -> Optional[str]:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None


@dataclass
class _Failure:
    method: str
    key: Optional[str]
    comp: Optional[str]
    action: Optional[str]
    status: int
    error_code: str
    remaining: Optional[int]
    exception: Optional[Exception]

    def matches(self, request: RecordedRequest) -> bool:
        if self.method != request.method:
            return False
        if self.key is not None and self.key != request.key:
            return False
        if self.comp is not None and self.comp != request.comp:
            return False
        if self.action is not None and self.action != request.action:
            return False
        return self.remaining is None or self.remaining > 0


class FakeBlobStore:
    """In-memory account exposing both the blob and the dfs endpoint."""

    def __init__(
        self,
        account_name: str = "acct",
        *,
        blob_service_suffix: str = "blob.core.windows.net",
        dfs_service_suffix: str = "dfs.core.windows.net",
    ) -> None:
        self.account_name = account_name
        self._blob_host = f"{account_name}.{blob_service_suffix}"
        self._dfs_host = f"{account_name}.{dfs_service_suffix}"
        self.blobs: Dict[str, StoredBlob] = {}
        self.staged: Dict[str, Dict[str, bytes]] = {}
        self.acls: Dict[str, str] = {}
        self.requests: List[RecordedRequest] = []
        self.on_request: Optional[Callable[[RecordedRequest], None]] = None
        self._failures: List[_Failure] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def fail(
        self,
        method: str,
        *,
        key: Optional[str] = None,
        comp: Optional[str] = None,
        action: Optional[str] = None,
        status: int = 503,
        error_code: str = "ServerBusy",
        times: Optional[int] = 1,
        exception: Optional[Exception] = None,
    ) -> None:
        """Make matching requests fail ``times`` times (``None``: always)."""
        with self._lock:
            self._failures.append(
                _Failure(method.upper(), key, comp, action, status, error_code, times, exception)
            )

    def put(self, key: str, data: bytes, metadata: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self.blobs[key] = StoredBlob(data, dict(metadata or {}))

    def add_snapshot(self, key: str) -> None:
        with self._lock:
            self.blobs[key].snapshots += 1

    def get(self, key: str) -> Optional[StoredBlob]:
        with self._lock:
            return self.blobs.get(key)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self.blobs)

    def calls(
        self,
        method: Optional[str] = None,
        *,
        comp: Optional[str] = None,
        action: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> List[RecordedRequest]:
        with self._lock:
            return [
                request
                for request in self.requests
                if (method is None or request.method == method)
                and (comp is None or request.comp == comp)
                and (action is None or request.action == action)
                and (endpoint is None or request.endpoint == endpoint)
            ]

    # ------------------------------------------------------------------
    # Transport handler
    # ------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == self._blob_host:
            endpoint = "blob"
        elif host == self._dfs_host:
            endpoint = "dfs"
        else:
            return self._error(400, "InvalidUri")

        body = request.read()
        recorded = RecordedRequest(
            method=request.method,
            endpoint=endpoint,
            key=request.url.path.lstrip("/"),
            params=dict(request.url.params),
            headers=tuple(
                (key.decode("latin-1"), value.decode("latin-1"))
                for key, value in request.headers.raw
            ),
            body_size=len(body),
        )

        with self._lock:
            self.requests.append(recorded)
            hook = self.on_request
        if hook is not None:
            hook(recorded)

        with self._lock:
            for failure in self._failures:
                if failure.matches(recorded):
                    if failure.remaining is not None:
                        failure.remaining -= 1
                    if failure.exception is not None:
                        raise failure.exception
                    return self._error(failure.status, failure.error_code)

            if endpoint == "dfs":
                return self._handle_dfs(recorded)
            return self._handle_blob(recorded, body)

    def _handle_blob(self, request: RecordedRequest, body: bytes) -> httpx.Response:
        key = request.key
        if request.method == "PUT" and request.comp == "block":
            block_id = request.params.get("blockid")
            if not block_id:
                return self._error(400, "InvalidQueryParameterValue")
            self.staged.setdefault(key, {})[block_id] = body
            return httpx.Response(201)

        if request.method == "PUT" and request.comp == "blocklist":
            staged = self.staged.get(key, {})
            try:
                ids = [element.text or "" for element in ElementTree.fromstring(body)]
            except ElementTree.ParseError:
                return self._error(400, "InvalidXmlDocument")
            if any(block_id not in staged for block_id in ids):
                return self._error(400, "InvalidBlockList")
            data = b"".join(staged[block_id] for block_id in ids)
            self.blobs[key] = StoredBlob(data, self._metadata(request))
            self.staged.pop(key, None)
            return httpx.Response(201, headers={"ETag": self.blobs[key].etag})

        if request.method == "PUT":
            if request.header("x-ms-blob-type") != "BlockBlob":
                return self._error(400, "MissingRequiredHeader")
            self.blobs[key] = StoredBlob(body, self._metadata(request))
            self.staged.pop(key, None)
            return httpx.Response(201, headers={"ETag": self.blobs[key].etag})

        blob = self.blobs.get(key)
        if blob is None:
            return self._error(404, "BlobNotFound")

        if request.method == "DELETE":
            if blob.snapshots and request.header("x-ms-delete-snapshots") != "include":
                return self._error(409, "SnapshotsPresent")
            del self.blobs[key]
            self.acls.pop(key, None)
            return httpx.Response(202)

        if request.method == "HEAD":
            headers = [("Content-Length", str(len(blob.data))), ("ETag", blob.etag)]
            headers.extend((META_PREFIX + name, value) for name, value in blob.metadata.items())
            return httpx.Response(200, headers=headers)

        if request.method == "GET":
            range_header = request.header("x-ms-range")
            if range_header is None:
                return httpx.Response(200, content=blob.data)
            start_text, _, end_text = range_header.replace("bytes=", "").partition("-")
            start, end = int(start_text), int(end_text)
            if start >= len(blob.data):
                return self._error(416, "InvalidRange")
            return httpx.Response(206, content=blob.data[start : end + 1])

        return self._error(405, "UnsupportedHttpVerb")

    def _handle_dfs(self, request: RecordedRequest) -> httpx.Response:
        key = request.key
        if key not in self.blobs:
            return self._error(404, "PathNotFound")
        if request.method == "HEAD" and request.action == "getAccessControl":
            return httpx.Response(200, headers={"x-ms-acl": self.acls.get(key, DEFAULT_ACL)})
        if request.method == "PATCH" and request.action == "setAccessControl":
            acl = request.header("x-ms-acl")
            if not acl:
                return self._error(400, "MissingRequiredHeader")
            self.acls[key] = acl
            return httpx.Response(200)
        return self._error(400, "UnsupportedRestVersion")

    @staticmethod
    def _metadata(request: RecordedRequest) -> Dict[str, str]:
        return {
            key[len(META_PREFIX):]: value
            for key, value in request.headers
            if key.lower().startswith(META_PREFIX)
        }

    @staticmethod
    def _error(status: int, error_code: str) -> httpx.Response:
        return httpx.Response(status, headers={"x-ms-error-code": error_code})


def make_client(store: FakeBlobStore, pacer: Optional[Pacer] = None) -> BlobServiceClient:
    """Return a :class:`BlobServiceClient` talking to ``store``."""

    http = create_http_client(parallelism=8, transport=store.transport())
    return BlobServiceClient(http, pacer)


__all__ = ["DEFAULT_ACL", "FakeBlobStore", "RecordedRequest", "StoredBlob", "make_client"]
