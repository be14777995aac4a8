"""Exception hierarchy for the Azure archive engine.

Failures fall into three groups: the local filesystem could not describe an
entry (:class:`MetadataUnavailable`), the store refused or failed a request
(:class:`BackendUnavailable`), or the store reported that the addressed object
does not exist (:class:`ObjectNotFound`).  The last one is deliberately not a
``BackendUnavailable`` so callers that tolerate missing objects can catch it
alone.
"""

from __future__ import annotations

from typing import Optional

from LemurHSM.dmplugin.mover import MoverError

__all__ = [
    "AzureCoreError",
    "ConfigurationError",
    "MetadataUnavailable",
    "StoreError",
    "BackendUnavailable",
    "ObjectNotFound",
]


class AzureCoreError(MoverError):
    """Base exception for archive, restore, and remove failures."""


class ConfigurationError(AzureCoreError):
    """Raised when configuration files or environment overrides are invalid."""


class MetadataUnavailable(AzureCoreError):
    """Raised when a filesystem entry cannot be opened or stat'ed."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class StoreError(AzureCoreError):
    """Raised when an object-store request does not succeed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class BackendUnavailable(StoreError):
    """Raised for transport failures and any non-404 error response."""


class ObjectNotFound(StoreError):
    """Raised when the store answers 404 for the addressed object."""
