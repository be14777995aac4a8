# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.transfer",
#   "purpose": "Parallel block upload and ranged download of single files",
#   "sections": [
#     {"id": "progress", "name": "_Progress", "anchor": "class-progress", "kind": "class"},
#     {"id": "run-blocks", "name": "_run_blocks", "anchor": "function-run-blocks", "kind": "function"},
#     {"id": "upload-file", "name": "upload_file", "anchor": "function-upload-file", "kind": "function"},
#     {"id": "download-file", "name": "download_file", "anchor": "function-download-file", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Chunked transfer of one file to or from the store.

Uploads up to one block in size are sent as a single Put Blob.  Larger files
are cut into fixed-size blocks which a bounded pool of worker threads stages in
any order; only when every block has been staged is the ordered block list
committed, together with the object's metadata.  A failure or cancellation
before that point leaves nothing visible under the object's name.

Downloads read the object's length first and then fetch fixed-size ranges on
the same kind of pool, writing each at its offset with ``os.pwrite``.
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, List, Mapping, Optional, Tuple, Union

from LemurHSM.dmplugin.cancellation import CancellationToken
from LemurHSM.dmplugin.mover import ProgressCallback

from .errors import MetadataUnavailable
from .network.blob import BlobServiceClient, make_block_id

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class _Progress:
    """Thread-safe byte counter forwarding totals to an optional callback."""

    def __init__(self, total: int, callback: Optional[ProgressCallback]) -> None:
        self._total = total
        self._done = 0
        self._callback = callback
        self._lock = threading.Lock()

    def add(self, nbytes: int) -> None:
        with self._lock:
            self._done += nbytes
            done = self._done
            if self._callback is not None:
                self._callback(done, self._total)

    @property
    def done(self) -> int:
        return self._done


def _block_ranges(size: int, block_size: int) -> List[Tuple[int, int]]:
    return [(offset, min(block_size, size - offset)) for offset in range(0, size, block_size)]


def _run_blocks(
    ranges: List[Tuple[int, int]],
    work: Callable[[int, int, int, CancellationToken], None],
    parallelism: int,
    token: CancellationToken,
) -> None:
    """Run ``work(index, offset, length, token)`` for every range on a bounded pool.

    The first failure cancels ``token`` so the remaining workers stop at their
    next check, then the failure is re-raised once the pool has drained.
    """
    workers = max(1, min(parallelism, len(ranges)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lhsm-az-block") as pool:
        futures = [
            pool.submit(work, index, offset, length, token)
            for index, (offset, length) in enumerate(ranges)
        ]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        failed = next((f for f in futures if f in done and f.exception() is not None), None)
        if failed is not None:
            token.cancel()
            for future in futures:
                future.cancel()

    if failed is not None:
        raise failed.exception()


def _open_for_read(source: PathLike) -> int:
    try:
        return os.open(source, os.O_RDONLY)
    except OSError as exc:
        raise MetadataUnavailable(
            f"cannot open {os.fspath(source)}: {exc.strerror or exc}", path=os.fspath(source)
        ) from exc


def _read_exact(fd: int, offset: int, length: int, source: PathLike) -> bytes:
    chunks = []
    remaining = length
    position = offset
    try:
        while remaining > 0:
            chunk = os.pread(fd, remaining, position)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
            position += len(chunk)
    except OSError as exc:
        raise MetadataUnavailable(
            f"cannot read {os.fspath(source)}: {exc.strerror or exc}", path=os.fspath(source)
        ) from exc
    data = b"".join(chunks)
    if len(data) != length:
        raise MetadataUnavailable(
            f"{os.fspath(source)} shrank during transfer (expected {length} bytes at {offset})",
            path=os.fspath(source),
        )
    return data


def upload_file(
    client: BlobServiceClient,
    url: str,
    source: PathLike,
    size: int,
    block_size: int,
    parallelism: int,
    metadata: Optional[Mapping[str, str]] = None,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressCallback] = None,
) -> int:
    """Upload ``size`` bytes of ``source`` to ``url``.

    Args:
        client: Paced object-store client.
        url: Blob URL of the target object, including the SAS token.
        source: Local file to read.
        size: Number of bytes to upload (the file's size when it was stat'ed).
        block_size: Bytes per staged block; files no larger than this go up
            in one request.
        parallelism: Maximum number of blocks in flight.
        metadata: Object metadata written with the blob or the block list.
        token: Action cancellation token.
        progress: Called with ``(bytes_done, size)`` after every block.

    Returns:
        The number of bytes uploaded.

    Raises:
        MetadataUnavailable: ``source`` could not be read.
        BackendUnavailable: A block or the commit failed.
        ActionCancelled: ``token`` fired before the commit.
    """
    token = token or CancellationToken()
    tracker = _Progress(size, progress)
    fd = _open_for_read(source)
    try:
        if size <= block_size:
            data = _read_exact(fd, 0, size, source)
            client.put_blob(url, data, metadata=metadata, token=token)
            tracker.add(size)
            return size

        upload_id = uuid.uuid4().hex
        ranges = _block_ranges(size, block_size)
        block_ids = [make_block_id(upload_id, index) for index in range(len(ranges))]

        def stage(index: int, offset: int, length: int, block_token: CancellationToken) -> None:
            block_token.raise_if_cancelled("block upload")
            data = _read_exact(fd, offset, length, source)
            client.put_block(url, block_ids[index], data, token=block_token)
            tracker.add(length)

        _run_blocks(ranges, stage, parallelism, token.child())

        token.raise_if_cancelled("upload")
        client.put_block_list(url, block_ids, metadata=metadata, token=token)
        logger.debug(
            "Committed block list",
            extra={"blocks": len(block_ids), "bytes": size, "upload_id": upload_id},
        )
        return size
    finally:
        os.close(fd)


def download_file(
    client: BlobServiceClient,
    url: str,
    destination: PathLike,
    block_size: int,
    parallelism: int,
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressCallback] = None,
) -> int:
    """Download the object at ``url`` into ``destination``.

    The destination is created if needed and truncated to the object's length.

    Returns:
        The number of bytes written.

    Raises:
        ObjectNotFound: The object does not exist.
        MetadataUnavailable: ``destination`` could not be opened or written.
        BackendUnavailable: A range request failed.
        ActionCancelled: ``token`` fired before every range was written.
    """
    token = token or CancellationToken()
    properties = client.get_properties(url, token=token)
    size = properties.size
    tracker = _Progress(size, progress)

    try:
        fd = os.open(destination, os.O_WRONLY | os.O_CREAT, 0o600)
    except OSError as exc:
        raise MetadataUnavailable(
            f"cannot open {os.fspath(destination)}: {exc.strerror or exc}",
            path=os.fspath(destination),
        ) from exc

    def fetch(index: int, offset: int, length: int, block_token: CancellationToken) -> None:
        block_token.raise_if_cancelled("range download")
        data = client.get_range(url, offset, length, token=block_token)
        try:
            written = 0
            while written < len(data):
                written += os.pwrite(fd, data[written:], offset + written)
        except OSError as exc:
            raise MetadataUnavailable(
                f"cannot write {os.fspath(destination)}: {exc.strerror or exc}",
                path=os.fspath(destination),
            ) from exc
        tracker.add(len(data))

    try:
        try:
            os.ftruncate(fd, size)
        except OSError as exc:
            raise MetadataUnavailable(
                f"cannot resize {os.fspath(destination)}: {exc.strerror or exc}",
                path=os.fspath(destination),
            ) from exc
        if size > 0:
            _run_blocks(_block_ranges(size, block_size), fetch, parallelism, token.child())
        token.raise_if_cancelled("download")
    finally:
        os.close(fd)
    return tracker.done


__all__ = ["download_file", "upload_file"]
