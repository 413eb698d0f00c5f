"""Propagator configuration.

Configuration is read from a YAML file. Credentials never live in the file;
they are taken from environment variables when drivers are built.

Example::

    staging_dir: /var/lib/blob-propagator/staging
    catalog_path: /var/lib/blob-propagator/catalog.db
    backends:
      - storage: object-store
        provider: azure
        container: blobs
        prefix: mainnet
      - storage: relational
        path: /var/lib/blob-propagator/blob-data.db
      - storage: swarm
        url: http://localhost:1633
    required_backends: [object-store, relational]
    retry:
      max_attempts: 5
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .constants import (
    CONFIG_ENV_VAR,
    DEFAULT_CATALOG_FILE,
    DEFAULT_CONFIG_FILE,
    DEFAULT_STAGING_DIR,
)
from .errors import ConfigError
from .policy import CleanupPolicy, RetryPolicy
from .storage_models import BlobStorage

logger = logging.getLogger(__name__)


class BackendSettings(BaseModel):
    """Settings for one configured backend."""
    storage: BlobStorage
    provider: str = ""              # object-store only: "azure" | "fs"
    container: str = ""             # Azure container name
    prefix: str = ""                # Optional key prefix for organization
    path: str = ""                  # Directory (fs) or database file (relational)
    url: str = ""                   # Swarm/Bee node API URL
    postage_batch_id: str = ""      # Swarm postage stamp batch
    timeout: float = 30.0           # Network timeout in seconds

    @field_validator("storage", mode="before")
    @classmethod
    def parse_storage(cls, v):
        if isinstance(v, str):
            return BlobStorage.parse(v)
        return v

    @model_validator(mode='after')
    def default_provider(self):
        """Object store defaults to Azure."""
        if self.storage == BlobStorage.OBJECT_STORE and not self.provider:
            self.provider = "azure"
        return self


class PropagatorConfig(BaseModel):
    """Top-level propagator configuration."""
    staging_dir: Path = Path(DEFAULT_STAGING_DIR)
    catalog_path: Path = Path(DEFAULT_CATALOG_FILE)
    backends: List[BackendSettings] = Field(default_factory=list)
    required_backends: Optional[List[BlobStorage]] = None  # None = all configured
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    cleanup: CleanupPolicy = Field(default_factory=CleanupPolicy)
    max_workers: int = Field(default=4, ge=1)

    @field_validator("required_backends", mode="before")
    @classmethod
    def parse_required(cls, v):
        if v is None:
            return v
        return [BlobStorage.parse(s) if isinstance(s, str) else s for s in v]

    @model_validator(mode='after')
    def validate_backends(self):
        """Reject duplicate backends and required backends that aren't configured."""
        seen = set()
        for backend in self.backends:
            if backend.storage in seen:
                raise ValueError(f"Backend {backend.storage.value} configured more than once")
            seen.add(backend.storage)

        for storage in self.required_backends or []:
            if storage not in seen:
                raise ValueError(
                    f"Required backend {storage.value} is not configured"
                )
        return self

    @property
    def storages(self) -> List[BlobStorage]:
        """Configured backends, in configuration order."""
        return [b.storage for b in self.backends]

    @property
    def required(self) -> List[BlobStorage]:
        """Backends that must all succeed before a staged file is removed."""
        if self.required_backends is None:
            return self.storages
        return list(self.required_backends)

    def backend(self, storage: BlobStorage) -> Optional[BackendSettings]:
        for b in self.backends:
            if b.storage == storage:
                return b
        return None


def resolve_config_path(path: Optional[Path] = None) -> Path:
    """Resolve config path: explicit > $BLOB_PROPAGATOR_CONFIG > ./blob-propagator.yaml."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_config(path: Optional[Path] = None) -> PropagatorConfig:
    """
    Load propagator configuration from YAML.

    Relative staging, catalog and backend paths are resolved against the
    config file's directory.

    Args:
        path: Config file path (see resolve_config_path)

    Returns:
        Parsed configuration

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        raise ConfigError(f"Config file not found: {cfg_path}")

    try:
        data = yaml.safe_load(cfg_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {cfg_path} must contain a mapping")

    try:
        config = PropagatorConfig(**data)
    except (ValidationError, ValueError) as e:
        raise ConfigError(f"Invalid configuration in {cfg_path}:\n{e}") from e

    base = cfg_path.parent
    if not config.staging_dir.is_absolute():
        config.staging_dir = base / config.staging_dir
    if not config.catalog_path.is_absolute():
        config.catalog_path = base / config.catalog_path
    for backend in config.backends:
        if backend.path and not Path(backend.path).is_absolute():
            backend.path = str(base / backend.path)

    logger.debug(
        "Loaded config from %s with backends: %s",
        cfg_path, ", ".join(s.value for s in config.storages) or "(none)",
    )
    return config
