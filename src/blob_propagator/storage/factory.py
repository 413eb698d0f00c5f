"""Factory for creating backend drivers from configuration.

Drivers are looked up in a registry keyed by backend identifier. Adding a
backend means registering a builder here, not editing dispatch logic.
"""

import os
from pathlib import Path
from typing import Callable, Dict

from ..config import BackendSettings
from ..constants import AZURE_CONNECTION_STRING_ENV_VAR, SWARM_POSTAGE_BATCH_ID_ENV_VAR
from ..errors import ConfigError, MissingCredentialsError
from ..storage_models import BlobStorage
from .azure import AzureBlobStore
from .base import BlobStore
from .fs import FilesystemBlobStore
from .relational import SqliteBlobStore
from .swarm import SwarmBlobStore

StoreBuilder = Callable[[BackendSettings], BlobStore]

_BUILDERS: Dict[BlobStorage, StoreBuilder] = {}


def register_store(storage: BlobStorage) -> Callable[[StoreBuilder], StoreBuilder]:
    """Register a driver builder for a backend."""
    def decorator(builder: StoreBuilder) -> StoreBuilder:
        _BUILDERS[storage] = builder
        return builder
    return decorator


def validate_azure_config(settings: BackendSettings) -> None:
    """
    Early validation of Azure configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    if not settings.container:
        raise ConfigError("container required for Azure blob storage")

    if AZURE_CONNECTION_STRING_ENV_VAR not in os.environ:
        raise MissingCredentialsError(settings.storage.value, AZURE_CONNECTION_STRING_ENV_VAR)


@register_store(BlobStorage.OBJECT_STORE)
def _build_object_store(settings: BackendSettings) -> BlobStore:
    if settings.provider == "azure":
        validate_azure_config(settings)
        conn_str = os.environ[AZURE_CONNECTION_STRING_ENV_VAR]
        return AzureBlobStore.from_connection_string(conn_str, settings.container, settings.prefix)

    elif settings.provider == "fs":
        if not settings.path:
            raise ConfigError("path (directory) required for filesystem object storage")
        return FilesystemBlobStore(Path(settings.path), storage=BlobStorage.OBJECT_STORE)

    raise ConfigError(f"Object store provider {settings.provider!r} not supported")


@register_store(BlobStorage.FILESYSTEM)
def _build_filesystem(settings: BackendSettings) -> BlobStore:
    if not settings.path:
        raise ConfigError("path (directory) required for filesystem storage")
    return FilesystemBlobStore(Path(settings.path))


@register_store(BlobStorage.RELATIONAL)
def _build_relational(settings: BackendSettings) -> BlobStore:
    if not settings.path:
        raise ConfigError("path (database file) required for relational storage")
    return SqliteBlobStore(Path(settings.path), timeout=settings.timeout)


@register_store(BlobStorage.SWARM)
def _build_swarm(settings: BackendSettings) -> BlobStore:
    if not settings.url:
        raise ConfigError("url (Bee node API) required for swarm storage")
    batch_id = settings.postage_batch_id or os.environ.get(SWARM_POSTAGE_BATCH_ID_ENV_VAR, "")
    if not batch_id:
        raise MissingCredentialsError(settings.storage.value, SWARM_POSTAGE_BATCH_ID_ENV_VAR)
    return SwarmBlobStore(settings.url, batch_id, timeout=settings.timeout)


def make_blob_store(settings: BackendSettings) -> BlobStore:
    """
    Create a driver for one configured backend.

    Args:
        settings: Backend settings

    Returns:
        Driver instance

    Raises:
        ConfigError: If configuration is invalid or credentials are missing
    """
    builder = _BUILDERS.get(settings.storage)
    if builder is None:
        raise ConfigError(f"No driver available for {settings.storage.value} storage")
    return builder(settings)
