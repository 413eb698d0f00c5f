"""High-level service wiring the propagation engine together."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .catalog import BlobCatalog
from .config import PropagatorConfig, load_config
from .coordinator import PropagationCoordinator
from .dispatcher import JobDispatcher
from .errors import ReferenceNotFoundError, UnknownBackendError
from .manager import BlobStorageManager
from .service_types import JobOutcome, PropagationJob, SweepReport
from .staging import BlobFileManager
from .storage_models import (
    BlobDataStorageReference,
    BlobReference,
    BlobStorage,
    StoreBlobResult,
)
from .workers import StorageWorker, make_workers

logger = logging.getLogger(__name__)


@dataclass
class PropagatorDeps:
    """Dependency injection container for testability."""
    config: PropagatorConfig
    staging: BlobFileManager
    catalog: BlobCatalog
    manager: BlobStorageManager
    sleep: Callable[[float], None] = time.sleep
    workers: Dict[BlobStorage, StorageWorker] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: PropagatorConfig) -> "PropagatorDeps":
        """Build staging, catalog and drivers from configuration.

        Raises:
            ConfigError: If any backend is misconfigured
        """
        return cls(
            config=config,
            staging=BlobFileManager(config.staging_dir),
            catalog=BlobCatalog(config.catalog_path),
            manager=BlobStorageManager.from_config(config),
        )


class PropagatorService:
    """Propagation engine with explicit init/teardown.

    Use as a context manager so drivers and worker pools are released:

        with PropagatorService.from_config_file() as service:
            service.stage(versioned_hash, data)
            service.propagate(versioned_hash)
    """

    def __init__(self, deps: PropagatorDeps):
        self.deps = deps
        if not deps.workers:
            deps.workers = make_workers(deps.manager, deps.staging)
        self.coordinator = PropagationCoordinator(
            deps.catalog,
            deps.staging,
            required=deps.config.required,
            cleanup=deps.config.cleanup,
        )
        self.dispatcher = JobDispatcher(
            deps.workers,
            self.coordinator,
            retry=deps.config.retry,
            max_workers=deps.config.max_workers,
            sleep=deps.sleep,
        )

    @classmethod
    def from_config(cls, config: PropagatorConfig) -> "PropagatorService":
        return cls(PropagatorDeps.from_config(config))

    @classmethod
    def from_config_file(cls, path: Optional[Path] = None) -> "PropagatorService":
        return cls.from_config(load_config(path))

    def __enter__(self) -> "PropagatorService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Shut down worker pools and close every driver."""
        self.dispatcher.close()
        self.deps.manager.close()

    # Core properties
    @property
    def staging(self) -> BlobFileManager:
        return self.deps.staging

    @property
    def catalog(self) -> BlobCatalog:
        return self.deps.catalog

    @property
    def manager(self) -> BlobStorageManager:
        return self.deps.manager

    # === Write path ===

    def stage(self, versioned_hash: str, data: bytes) -> Path:
        """Stage blob bytes ahead of propagation."""
        return self.staging.create(versioned_hash, data)

    def propagate(
        self, versioned_hash: str, storages: Optional[Iterable[BlobStorage]] = None
    ) -> List[JobOutcome]:
        """Propagate a staged blob to its target backends through the dispatcher."""
        return self.dispatcher.propagate_blob(versioned_hash, storages)

    def run_job(self, job: PropagationJob) -> JobOutcome:
        """Run one job to a terminal state in the caller's thread."""
        return self.dispatcher.run(job)

    def store_now(self, versioned_hash: str, data: bytes) -> StoreBlobResult:
        """
        Synchronous store across all backends, bypassing the dispatcher.

        Successful references are recorded in the catalog; failed backends
        are left for asynchronous propagation.
        """
        result = self.manager.store_blob(versioned_hash, data)
        for reference in result.references:
            self.coordinator.record(versioned_hash, reference)
        logger.info(
            "Stored blob %s synchronously in %d of %d backends",
            versioned_hash, len(result.references), len(self.manager.storages),
        )
        return result

    def sweep(self, grace_seconds: Optional[float] = None) -> SweepReport:
        return self.coordinator.sweep(grace_seconds)

    # === Read path ===

    def references(self, versioned_hash: str) -> List[BlobDataStorageReference]:
        return self.catalog.list_references(versioned_hash)

    def read(self, versioned_hash: str, storage: Optional[BlobStorage] = None) -> bytes:
        """
        Read a blob back using its catalog references.

        Args:
            versioned_hash: Blob versioned hash
            storage: Backend to read from; any recorded backend if None

        Raises:
            UnknownBackendError: If no driver is configured for the backend
            ReferenceNotFoundError: If the catalog has no usable reference
        """
        if storage is not None and storage not in self.manager.storages:
            raise UnknownBackendError(storage.value)

        rows = self.references(versioned_hash)
        if storage is not None:
            rows = [row for row in rows if row.blob_storage == storage]
        refs: List[BlobReference] = [
            row.to_reference() for row in rows if row.blob_storage in self.manager.storages
        ]
        if not refs:
            target = storage.value if storage is not None else "any configured"
            raise ReferenceNotFoundError(target, versioned_hash)
        return self.manager.get_blob_any(refs)
