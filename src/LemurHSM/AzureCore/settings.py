# === NAVMAP v1 ===
# {
#   "module": "LemurHSM.AzureCore.settings",
#   "purpose": "Define configuration models, environment overrides, YAML loading, and the immutable transfer configuration",
#   "sections": [
#     {"id": "loggingconfiguration", "name": "LoggingConfiguration", "anchor": "class-loggingconfiguration", "kind": "class"},
#     {"id": "httpsettings", "name": "HttpSettings", "anchor": "class-httpsettings", "kind": "class"},
#     {"id": "archivesettings", "name": "ArchiveSettings", "anchor": "class-archivesettings", "kind": "class"},
#     {"id": "azurecoresettings", "name": "AzureCoreSettings", "anchor": "class-azurecoresettings", "kind": "class"},
#     {"id": "transferconfiguration", "name": "TransferConfiguration", "anchor": "class-transferconfiguration", "kind": "class"},
#     {"id": "environmentoverrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "build-settings", "name": "build_settings", "anchor": "function-build-settings", "kind": "function"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration for the Azure archive mover.

Settings are read from a YAML file, overlaid with ``LHSM_AZ_*`` environment
variables, and validated with pydantic.  Key names from the original plugin
configuration (``az_storage_account``, ``az_storage_sas``, ``num_threads``,
``upload_part_size``) are accepted as aliases.  Each configured archive yields
one :class:`TransferConfiguration`, the read-only object every engine call
receives for the lifetime of the process.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .pacer import Pacer, parse_rate_string

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

_ACCOUNT_PATTERN = re.compile(r"^[a-z0-9]{3,24}$")

DEFAULT_API_VERSION = "2021-08-06"


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for the mover process."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_dir: Optional[Path] = Field(default=None, description="Directory for JSONL log files")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class HttpSettings(BaseModel):
    """HTTP client timeouts and pooling."""

    model_config = ConfigDict(frozen=True)

    connect_timeout_sec: float = Field(default=10.0, gt=0.0, le=120.0)
    read_timeout_sec: float = Field(default=120.0, gt=0.0, le=3600.0)
    write_timeout_sec: float = Field(default=120.0, gt=0.0, le=3600.0)
    pool_timeout_sec: float = Field(default=30.0, gt=0.0, le=600.0)
    max_connections: int = Field(default=64, ge=1, le=1024)
    keepalive_expiry_sec: float = Field(default=30.0, ge=0.0)
    verify_tls: bool = Field(default=True, description="Verify TLS certificates (certifi bundle)")


class ArchiveSettings(BaseModel):
    """One archive backend: a container and an optional export prefix."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(ge=0, description="Archive backend id the coordinator routes on")
    container: str = Field(min_length=3, max_length=63)
    prefix: str = Field(default="", description="Export prefix under which objects live")
    name: Optional[str] = Field(default=None, description="Mover name reported to the coordinator")

    @field_validator("prefix")
    @classmethod
    def strip_prefix(cls, value: str) -> str:
        return value.strip("/")

    @property
    def mover_name(self) -> str:
        return self.name or f"az-core-{self.id}"


class AzureCoreSettings(BaseModel):
    """Validated mover configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    account_name: str = Field(validation_alias=AliasChoices("account_name", "az_storage_account"))
    sas_token: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices("sas_token", "az_storage_sas"),
    )
    mount_root: Path = Field(description="Root of the filesystem namespace being tiered")
    parallelism: int = Field(
        default=4, ge=1, le=64, validation_alias=AliasChoices("parallelism", "num_threads")
    )
    block_size_mb: int = Field(
        default=8, ge=1, le=4000, validation_alias=AliasChoices("block_size_mb", "upload_part_size")
    )
    bandwidth: Optional[str] = Field(
        default=None, description="Throughput budget in MiB per window, e.g. '100/second'"
    )
    hns_enabled: bool = False
    blob_service_suffix: str = "blob.core.windows.net"
    dfs_service_suffix: str = "dfs.core.windows.net"
    api_version: str = DEFAULT_API_VERSION
    http: HttpSettings = Field(default_factory=HttpSettings)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    archives: List[ArchiveSettings] = Field(min_length=1)

    @field_validator("account_name")
    @classmethod
    def validate_account(cls, value: str) -> str:
        if not _ACCOUNT_PATTERN.match(value):
            raise ValueError("account_name must be 3-24 lowercase letters or digits")
        return value

    @field_validator("sas_token")
    @classmethod
    def normalise_sas(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith("?"):
            value = "?" + value
        return value

    @field_validator("bandwidth")
    @classmethod
    def validate_bandwidth(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        parse_rate_string(value)
        return value.strip()

    @model_validator(mode="after")
    def validate_archive_ids(self) -> "AzureCoreSettings":
        ids = [archive.id for archive in self.archives]
        duplicates = sorted({value for value in ids if ids.count(value) > 1})
        if duplicates:
            raise ValueError(f"archive ids must be unique; duplicated: {duplicates}")
        return self

    @property
    def block_size(self) -> int:
        return self.block_size_mb * MIB

    def archive(self, archive_id: int) -> ArchiveSettings:
        for archive in self.archives:
            if archive.id == archive_id:
                return archive
        raise ConfigurationError(f"archive id {archive_id} is not configured")

    def build_pacer(self) -> Pacer:
        """Return the process-wide pacer for these settings."""
        if self.bandwidth is None:
            return Pacer.unlimited()
        return Pacer.from_rate_string(self.bandwidth)

    def transfer_configuration(
        self, archive_id: int, pacer: Optional[Pacer] = None
    ) -> "TransferConfiguration":
        archive = self.archive(archive_id)
        return TransferConfiguration(
            account_name=self.account_name,
            container=archive.container,
            sas_token=self.sas_token,
            export_prefix=archive.prefix,
            mount_root=self.mount_root,
            parallelism=self.parallelism,
            block_size=self.block_size,
            pacer=pacer if pacer is not None else self.build_pacer(),
            hns_enabled=self.hns_enabled,
            blob_service_suffix=self.blob_service_suffix,
            dfs_service_suffix=self.dfs_service_suffix,
        )


@dataclass(frozen=True)
class TransferConfiguration:
    """Immutable per-archive transfer settings shared by every action."""

    account_name: str
    container: str
    sas_token: str
    export_prefix: str
    mount_root: Path
    parallelism: int
    block_size: int
    pacer: Pacer
    hns_enabled: bool = False
    blob_service_suffix: str = "blob.core.windows.net"
    dfs_service_suffix: str = "dfs.core.windows.net"

    def __post_init__(self) -> None:
        if self.parallelism < 1:
            raise ConfigurationError(f"parallelism must be positive, got {self.parallelism}")
        if self.block_size < 1:
            raise ConfigurationError(f"block_size must be positive, got {self.block_size}")


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    account_name: Optional[str] = Field(default=None, alias="LHSM_AZ_ACCOUNT_NAME")
    sas_token: Optional[str] = Field(default=None, alias="LHSM_AZ_SAS_TOKEN")
    mount_root: Optional[Path] = Field(default=None, alias="LHSM_AZ_MOUNT_ROOT")
    parallelism: Optional[int] = Field(default=None, alias="LHSM_AZ_PARALLELISM")
    bandwidth: Optional[str] = Field(default=None, alias="LHSM_AZ_BANDWIDTH")
    log_level: Optional[str] = Field(default=None, alias="LHSM_AZ_LOG_LEVEL")

    model_config = SettingsConfigDict(env_prefix="LHSM_AZ_", case_sensitive=False, extra="ignore")


_ALIAS_TARGETS = {
    "az_storage_account": "account_name",
    "az_storage_sas": "sas_token",
    "num_threads": "parallelism",
}


def _apply_env_overrides(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``raw`` with ``LHSM_AZ_*`` environment values applied."""

    merged: Dict[str, Any] = dict(raw)
    env = EnvironmentOverrides().model_dump(exclude_none=True)
    log_level = env.pop("log_level", None)
    for key, value in env.items():
        # the environment wins over both spellings of the key
        for alias, target in _ALIAS_TARGETS.items():
            if target == key:
                merged.pop(alias, None)
        merged[key] = value
        logger.debug("Applied environment override", extra={"setting": key})
    if log_level is not None:
        logging_section = dict(merged.get("logging") or {})
        logging_section["level"] = log_level
        merged["logging"] = logging_section
    return merged


def _format_validation_error(exc: PydanticValidationError) -> str:
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        lines.append(f"{location}: {error.get('msg')}")
    return "Configuration validation failed:\n- " + "\n- ".join(lines)


def build_settings(raw: Mapping[str, Any]) -> AzureCoreSettings:
    """Validate ``raw`` (after environment overrides) into settings."""

    try:
        return AzureCoreSettings.model_validate(_apply_env_overrides(raw))
    except PydanticValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc


def normalize_config_path(config_path: Path) -> Path:
    """Return a user-supplied configuration path with ``~`` and symlinks resolved."""

    expanded = Path(config_path).expanduser()
    try:
        return expanded.resolve(strict=False)
    except (OSError, RuntimeError):  # pragma: no cover - only triggered on rare filesystems
        return expanded


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    normalized_path = normalize_config_path(config_path)

    if not normalized_path.exists():
        raise ConfigurationError(f"Configuration file not found: {normalized_path}")

    try:
        with normalized_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Configuration file '{normalized_path}' contains invalid YAML"
        ) from exc

    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration file must contain a mapping at the root")
    return data


def load_config(config_path: Path) -> AzureCoreSettings:
    """Load, override, and validate configuration suitable for execution."""

    return build_settings(load_raw_yaml(config_path))


__all__ = [
    "ArchiveSettings",
    "AzureCoreSettings",
    "EnvironmentOverrides",
    "HttpSettings",
    "LoggingConfiguration",
    "MIB",
    "TransferConfiguration",
    "build_settings",
    "load_config",
    "load_raw_yaml",
]
