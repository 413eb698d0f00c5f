"""Shared test fixtures and utilities."""

from pathlib import Path

import pytest

from blob_propagator.catalog import BlobCatalog
from blob_propagator.config import BackendSettings, PropagatorConfig
from blob_propagator.manager import BlobStorageManager
from blob_propagator.policy import RetryPolicy
from blob_propagator.service import PropagatorDeps, PropagatorService
from blob_propagator.staging import BlobFileManager
from blob_propagator.storage.fs import FilesystemBlobStore
from blob_propagator.storage.relational import SqliteBlobStore
from blob_propagator.storage.swarm import SwarmBlobStore
from blob_propagator.storage_models import BlobStorage
from tests.fixtures.backends import FakeBeeSession


@pytest.fixture
def staging(tmp_path):
    """Staging file store in a temp directory."""
    return BlobFileManager(tmp_path / "staging")


@pytest.fixture
def catalog(tmp_path):
    """Reference catalog in a temp database."""
    return BlobCatalog(tmp_path / "catalog.db")


@pytest.fixture
def bee_session():
    return FakeBeeSession()


@pytest.fixture
def stores(tmp_path, bee_session):
    """One driver per backend, all local."""
    return {
        BlobStorage.OBJECT_STORE: FilesystemBlobStore(
            tmp_path / "object-store", storage=BlobStorage.OBJECT_STORE
        ),
        BlobStorage.RELATIONAL: SqliteBlobStore(tmp_path / "blob-data.db"),
        BlobStorage.SWARM: SwarmBlobStore(
            "http://bee.test:1633", "batch-id", session=bee_session
        ),
        BlobStorage.FILESYSTEM: FilesystemBlobStore(tmp_path / "fs-store"),
    }


@pytest.fixture
def manager(stores):
    return BlobStorageManager(stores)


@pytest.fixture
def config(tmp_path):
    """Config naming every local backend, with instant retries."""
    return PropagatorConfig(
        staging_dir=tmp_path / "staging",
        catalog_path=tmp_path / "catalog.db",
        backends=[
            BackendSettings(storage=BlobStorage.OBJECT_STORE, provider="fs", path=str(tmp_path / "object-store")),
            BackendSettings(storage=BlobStorage.RELATIONAL, path=str(tmp_path / "blob-data.db")),
            BackendSettings(storage=BlobStorage.SWARM, url="http://bee.test:1633", postage_batch_id="batch-id"),
            BackendSettings(storage=BlobStorage.FILESYSTEM, path=str(tmp_path / "fs-store")),
        ],
        retry=RetryPolicy(max_attempts=3, backoff_seconds=0, max_backoff_seconds=0, attempt_timeout=5),
    )


@pytest.fixture
def sleeps():
    """Records backoff delays instead of sleeping."""
    return []


@pytest.fixture
def make_service(config, staging, catalog, manager, sleeps):
    """Factory for a service over the local fixtures."""
    services = []

    def _make(**overrides) -> PropagatorService:
        cfg = config.model_copy(update=overrides.pop("config_update", {}))
        deps = PropagatorDeps(
            config=cfg,
            staging=overrides.pop("staging", staging),
            catalog=overrides.pop("catalog", catalog),
            manager=overrides.pop("manager", manager),
            sleep=sleeps.append,
        )
        service = PropagatorService(deps)
        services.append(service)
        return service

    yield _make

    for service in services:
        service.dispatcher.close()


@pytest.fixture
def write_blob_file(tmp_path):
    """Factory fixture to write blob bytes to a file."""
    def _write(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write
