"""
Configuration management for debstow.

This module provides Pydantic models for configuration validation and
YAML-based configuration loading with include support.
"""

from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

# Visibility names accepted on the command line, mapped to S3 canned ACLs
VISIBILITY_ACLS = {
    "public": "public-read",
    "private": "private",
    "authenticated": "authenticated-read",
    "bucket_owner": "bucket-owner-full-control",
}


class ProxyConfig(BaseModel):
    """HTTP proxy configuration."""

    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    no_proxy: Optional[str] = None


class SSLConfig(BaseModel):
    """SSL/TLS configuration for HTTPS connections."""

    # Path to CA bundle file (PEM format)
    ca_bundle: Optional[str] = None

    # Disable SSL verification (not recommended for production)
    verify: bool = True

    # Client certificate for mTLS
    client_cert: Optional[str] = None
    client_key: Optional[str] = None


class StorageConfig(BaseModel):
    """Object store configuration.

    The ``s3`` backend talks to an S3-compatible service through boto3, the
    ``local`` backend keeps the repository in a directory (useful for
    ``file://`` repositories and tests).
    """

    backend: Literal["s3", "local"] = "s3"

    # S3 settings
    bucket: Optional[str] = None
    prefix: Optional[str] = None
    region: str = "us-east-1"
    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    force_path_style: bool = False
    proxy_uri: Optional[str] = None
    visibility: str = "public"
    encryption: bool = False
    retry_attempts: int = 5

    # Local settings
    local_path: Optional[str] = None

    @field_validator("visibility")
    @classmethod
    def validate_visibility(cls, v: str) -> str:
        """Validate visibility setting."""
        if v not in VISIBILITY_ACLS:
            raise ValueError(
                f"Invalid visibility setting: {v}. "
                f"Must be one of {list(VISIBILITY_ACLS)}"
            )
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Validate retry attempts."""
        if v < 1:
            raise ValueError("retry_attempts must be at least 1")
        if v > 20:
            raise ValueError("retry_attempts cannot exceed 20")
        return v

    @model_validator(mode="after")
    def validate_credentials(self) -> "StorageConfig":
        """Access key and secret key must be given together."""
        if (self.access_key_id is None) != (self.secret_access_key is None):
            raise ValueError(
                "If you specify one of access_key_id or secret_access_key, "
                "you must specify the other."
            )
        return self

    @property
    def acl(self) -> str:
        """Canned ACL for uploaded objects."""
        return VISIBILITY_ACLS[self.visibility]

    def get_local_path(self) -> Path:
        """Get local repository root (local backend)."""
        if not self.local_path:
            raise ValueError("storage.local_path is required for the local backend")
        return Path(self.local_path)


class SigningConfig(BaseModel):
    """GPG signing configuration for the Release file."""

    key: Optional[str] = None  # GPG key ID, None disables signing
    gpg_options: str = ""  # Extra command line options passed to gpg
    gpg_binary: str = "gpg"

    @property
    def enabled(self) -> bool:
        return bool(self.key)


class LockConfig(BaseModel):
    """Repository lock polling policy.

    The lock is advisory: these settings only control how long a publisher
    waits for another one to finish.
    """

    enabled: bool = False
    interval: float = 10.0  # Seconds between polls
    backoff: float = 1.0  # Interval multiplier after each poll
    max_interval: float = 60.0
    max_attempts: Optional[int] = 60  # None waits forever
    status_every: int = 6  # Log the holder every N polls

    @field_validator("interval", "max_interval")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        """Validate polling interval."""
        if v < 0:
            raise ValueError("interval cannot be negative")
        return v

    @field_validator("backoff")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        """Validate backoff multiplier."""
        if v < 1.0:
            raise ValueError("backoff must be at least 1.0")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: Optional[int]) -> Optional[int]:
        """Validate max attempts."""
        if v is not None and v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v

    @field_validator("status_every")
    @classmethod
    def validate_status_every(cls, v: int) -> int:
        if v < 1:
            raise ValueError("status_every must be at least 1")
        return v


class DownloadConfig(BaseModel):
    """Download configuration for mirroring upstream repositories."""

    timeout: int = 300  # Download timeout in seconds
    retry_attempts: int = 3  # Number of retry attempts on failure
    retry_backoff: float = 1.0  # Seconds, doubled after every failed attempt
    verify_checksum: bool = True  # Verify checksums after download
    cache_dir: Optional[str] = None  # Defaults to a temporary directory

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout value."""
        if v < 1:
            raise ValueError("timeout must be at least 1 second")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Validate retry attempts."""
        if v < 0:
            raise ValueError("retry_attempts cannot be negative")
        if v > 10:
            raise ValueError("retry_attempts cannot exceed 10")
        return v


class RepositoryConfig(BaseModel):
    """Target repository (codename/component) and publish policy."""

    codename: str = "stable"
    component: str = "main"
    origin: Optional[str] = None
    suite: Optional[str] = None
    cache_control: Optional[str] = None

    # Whether to keep other versions of a package when adding one
    preserve_versions: bool = False
    # Refuse to replace packages or pool files that differ in content
    fail_if_exists: bool = False
    # Do not upload .deb files (they are hosted elsewhere)
    skip_package_upload: bool = False
    # Index generations kept below by-hash/, the current one included
    by_hash_keep: int = Field(3, ge=1)

    @field_validator("codename", "component")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Codename and component become path segments."""
        if not v or "/" in v or v.strip() != v:
            raise ValueError(f"Invalid repository path segment: {v!r}")
        return v


class GlobalConfig(BaseModel):
    """Global debstow configuration."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    proxy: Optional[ProxyConfig] = None
    ssl: Optional[SSLConfig] = None

    # Include pattern for additional config files
    include: Optional[str] = None


class ConfigLoader:
    """Configuration file loader with include support."""

    def __init__(self, config_path: Path):
        """Initialize config loader.

        Args:
            config_path: Path to main configuration file
        """
        self.config_path = config_path

    def load(self) -> GlobalConfig:
        """Load configuration from YAML file.

        Returns:
            GlobalConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        config_data = self._read_yaml(self.config_path)

        # Included files are merged section by section, later files win
        if "include" in config_data:
            for included in self._load_includes(config_data["include"]):
                config_data = _merge_sections(config_data, included)

        try:
            return GlobalConfig(**config_data)
        except Exception as e:
            raise ValueError(f"Configuration validation error in {self.config_path}:\n{e}")

    def _read_yaml(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"YAML syntax error in {path}:\n{e}")
        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {path} must be a mapping")
        return data

    def _load_includes(self, include_pattern: str) -> list[Dict[str, Any]]:
        """Load included configuration files.

        Args:
            include_pattern: Glob pattern for include files (e.g., "conf.d/*.yaml")

        Returns:
            List of parsed configuration mappings, in file name order
        """
        config_dir = self.config_path.parent

        if "*" in include_pattern:
            pattern_parts = Path(include_pattern).parts
            if len(pattern_parts) > 1:
                search_dir = config_dir / Path(*pattern_parts[:-1])
                pattern = pattern_parts[-1]
            else:
                search_dir = config_dir
                pattern = include_pattern

            config_files = sorted(search_dir.glob(pattern)) if search_dir.exists() else []
        else:
            include_path = config_dir / include_pattern
            config_files = [include_path] if include_path.exists() else []

        return [
            self._read_yaml(config_file)
            for config_file in config_files
            if config_file.suffix in [".yaml", ".yml"]
        ]


def _merge_sections(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key == "include":
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Path] = None) -> GlobalConfig:
    """Load configuration from file.

    Priority:
    1. Explicit config_path parameter (--config CLI flag)
    2. DEBSTOW_CONFIG environment variable
    3. Default locations (/etc/debstow/config.yaml, ~/.config/debstow/config.yaml, ./config.yaml)

    Args:
        config_path: Path to config file. If None, tries DEBSTOW_CONFIG env or default locations.

    Returns:
        GlobalConfig instance

    Raises:
        FileNotFoundError: If an explicitly requested config file is missing
    """
    import os

    default_paths = [
        Path("/etc/debstow/config.yaml"),
        Path.home() / ".config" / "debstow" / "config.yaml",
        Path("config.yaml"),
    ]

    if config_path:
        paths_to_try = [config_path]
    elif os.environ.get("DEBSTOW_CONFIG"):
        paths_to_try = [Path(os.environ["DEBSTOW_CONFIG"])]
    else:
        paths_to_try = default_paths

    for path in paths_to_try:
        if path.exists():
            return ConfigLoader(path).load()

    if config_path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    elif os.environ.get("DEBSTOW_CONFIG"):
        raise FileNotFoundError(
            f"Configuration file not found: {os.environ['DEBSTOW_CONFIG']} (from DEBSTOW_CONFIG)"
        )
    else:
        return GlobalConfig()
