# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore",
#   "purpose": "Azure blob / hierarchical-namespace archive engine and its mover",
#   "sections": []
# }
# === /NAVMAP ===

"""Azure archive engine.

Modules:
- paths: object names to blob and dfs addresses
- metadata: POSIX ownership, mode, and ACLs, and how the store preserves them
- directories: ancestor directory placeholders
- transfer: parallel block upload and ranged download
- archive / restore / remove: the three data-moving actions
- pacer: process-wide bandwidth budget
- mover: the ``AzureMover`` registered with a coordinator
- settings, logging_config, cli: configuration, logging, and the operator CLI
- testing: in-memory store for tests
"""

from .archive import ArchiveOutcome, ArchiveRequest
from .directories import DirectoryPlaceholder, replicate_directories
from .errors import (
    AzureCoreError,
    BackendUnavailable,
    ConfigurationError,
    MetadataUnavailable,
    ObjectNotFound,
    StoreError,
)
from .metadata import FilesystemMetadata, GenericMetadata, NativeAcl, extract_metadata
from .mover import AzureMover, build_client, build_movers
from .pacer import Pacer
from .paths import ObjectAddress, ancestor_segments, join_key
from .restore import RestoreOutcome
from .settings import AzureCoreSettings, TransferConfiguration, load_config
from .transfer import download_file, upload_file

__all__ = [
    "ArchiveOutcome",
    "ArchiveRequest",
    "AzureCoreError",
    "AzureCoreSettings",
    "AzureMover",
    "BackendUnavailable",
    "ConfigurationError",
    "DirectoryPlaceholder",
    "FilesystemMetadata",
    "GenericMetadata",
    "MetadataUnavailable",
    "NativeAcl",
    "ObjectAddress",
    "ObjectNotFound",
    "Pacer",
    "RestoreOutcome",
    "StoreError",
    "TransferConfiguration",
    "ancestor_segments",
    "build_client",
    "build_movers",
    "download_file",
    "extract_metadata",
    "join_key",
    "load_config",
    "replicate_directories",
    "upload_file",
]
