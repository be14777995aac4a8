"""Remove an archived object from the store."""

from __future__ import annotations

import logging
from typing import Optional

from LemurHSM.dmplugin.cancellation import CancellationToken

from .errors import StoreError
from .network.blob import BlobServiceClient
from .paths import ObjectAddress
from .settings import TransferConfiguration

logger = logging.getLogger(__name__)


def remove(
    config: TransferConfiguration,
    client: BlobServiceClient,
    name: str,
    *,
    token: Optional[CancellationToken] = None,
    log: Optional[logging.Logger] = None,
) -> str:
    """Delete ``name`` and its snapshots; return the key that was removed.

    There is no existence check: a missing object surfaces as
    :class:`ObjectNotFound` from the delete itself.  Directory placeholders
    are left in place.
    """
    log = log or logger
    address = ObjectAddress.for_config(config, name)
    log.info("Removing %s", address, extra={"object_name": name, "key": address.key})
    try:
        client.delete_blob(address.blob_url, include_snapshots=True, token=token)
    except StoreError as exc:
        log.error(
            "Removing %s: failed to delete blob: %s",
            name,
            exc,
            extra={"object_name": name, "key": address.key},
        )
        raise
    return address.key


__all__ = ["remove"]
