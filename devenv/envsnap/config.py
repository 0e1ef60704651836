"""
Configuration management for envsnap.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - The bucket is chosen per call; S3_BUCKET only provides the CLI default
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from .archive.presets import Preset

logger = logging.getLogger(__name__)


class TransportEncoding(Enum):
    """How object bodies come back from the object store."""

    RAW = "raw"
    BASE64 = "base64"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for snapshot storage.

    Attributes:
        bucket: Default S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        snapshot_prefix: Key namespace for snapshots
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
        transport_encoding: Encoding of downloaded bodies (raw or base64)
    """

    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    snapshot_prefix: str = "snapshots"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    transport_encoding: TransportEncoding = TransportEncoding.RAW

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        encoding_str = os.getenv("S3_TRANSPORT_ENCODING", "raw").lower()
        try:
            encoding = TransportEncoding(encoding_str)
        except ValueError:
            raise ValueError(
                f"Invalid S3_TRANSPORT_ENCODING '{encoding_str}'. Must be one of: raw, base64"
            )

        return cls(
            bucket=os.getenv("S3_BUCKET", ""),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            snapshot_prefix=os.getenv("S3_SNAPSHOT_PREFIX", "snapshots"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            transport_encoding=encoding,
        )


@dataclass(frozen=True)
class SnapshotConfig:
    """Snapshot lifecycle configuration.

    Attributes:
        default_preset: Preset used when create() is not given one
        default_paths: Repository paths used when create() is not given any
        package_manager: Tool whose version is recorded in the environment identity
        verify_checksum: Verify downloaded archives against the stored checksum
        reject_empty: Fail create() when no repository was archived
        work_dir: Parent directory for temporary working directories
        max_concurrent: Maximum concurrent repository inspections
        git_timeout_seconds: Timeout for a single git command
    """

    default_preset: Preset = Preset.MEDIUM
    default_paths: tuple[str, ...] = ()
    package_manager: str = "pnpm"
    verify_checksum: bool = True
    reject_empty: bool = False
    work_dir: str | None = None
    max_concurrent: int = 8
    git_timeout_seconds: int = 30

    @classmethod
    def from_env(cls) -> SnapshotConfig:
        """Load configuration from environment variables."""
        preset_str = os.getenv("SNAPSHOT_DEFAULT_PRESET", "medium").lower()
        try:
            preset = Preset(preset_str)
        except ValueError:
            raise ValueError(
                f"Invalid SNAPSHOT_DEFAULT_PRESET '{preset_str}'. Must be one of: light, medium, heavy"
            )

        raw_paths = os.getenv("SNAPSHOT_DEFAULT_PATHS", "")
        default_paths = tuple(p for p in raw_paths.split(os.pathsep) if p)

        return cls(
            default_preset=preset,
            default_paths=default_paths,
            package_manager=os.getenv("SNAPSHOT_PACKAGE_MANAGER", "pnpm"),
            verify_checksum=_env_bool("SNAPSHOT_VERIFY_CHECKSUM", "true"),
            reject_empty=_env_bool("SNAPSHOT_REJECT_EMPTY", "false"),
            work_dir=os.getenv("SNAPSHOT_WORK_DIR"),
            max_concurrent=int(os.getenv("SNAPSHOT_MAX_CONCURRENT", "8")),
            git_timeout_seconds=int(os.getenv("GIT_TIMEOUT_SECONDS", "30")),
        )

    def temp_root(self) -> str | None:
        """Parent for temporary working directories (None = system default)."""
        if self.work_dir and os.path.isdir(self.work_dir):
            return self.work_dir
        return None


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class EnvSnapConfig:
    """Complete envsnap configuration.

    Attributes:
        s3: S3 configuration
        snapshot: Snapshot lifecycle configuration
        observability: Logging configuration
    """

    s3: S3Config = field(default_factory=S3Config)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> EnvSnapConfig:
        """Load complete configuration from environment variables.

        Returns:
            EnvSnapConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            s3=S3Config.from_env(),
            snapshot=SnapshotConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.s3.snapshot_prefix or self.s3.snapshot_prefix.strip("/") != self.s3.snapshot_prefix:
            raise ValueError(
                f"S3_SNAPSHOT_PREFIX must be non-empty without leading/trailing '/': "
                f"{self.s3.snapshot_prefix!r}"
            )

        if self.snapshot.max_concurrent < 1:
            raise ValueError("SNAPSHOT_MAX_CONCURRENT must be at least 1")

        if self.snapshot.git_timeout_seconds < 1:
            raise ValueError("GIT_TIMEOUT_SECONDS must be at least 1")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.snapshot.work_dir and not os.path.isdir(self.snapshot.work_dir):
            logger.warning(
                f"Work directory does not exist: {self.snapshot.work_dir}. "
                "Falling back to the system temp directory."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "envsnap configuration loaded",
            extra={
                "s3_bucket": self.s3.bucket or None,
                "s3_region": self.s3.region,
                "s3_endpoint": self.s3.endpoint_url,
                "snapshot_prefix": self.s3.snapshot_prefix,
                "default_preset": self.snapshot.default_preset.value,
                "verify_checksum": self.snapshot.verify_checksum,
                "log_level": self.observability.log_level,
            },
        )
