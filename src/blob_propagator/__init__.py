"""Propagate staged blobs to durable storage backends."""

from .catalog import BlobCatalog
from .config import BackendSettings, PropagatorConfig, load_config
from .constants import PROPAGATOR_VERSION
from .coordinator import PropagationCoordinator
from .dispatcher import JobDispatcher
from .errors import (
    BackendUnavailableError,
    ErrorKind,
    PropagatorError,
    ReferenceConflictError,
    ReferenceNotFoundError,
    StagingFileMissingError,
    UnknownBackendError,
)
from .manager import BlobStorageManager
from .service import PropagatorDeps, PropagatorService
from .service_types import JobOutcome, JobState, PropagationJob
from .staging import BlobFileManager
from .storage_models import BlobReference, BlobStorage, StoreBlobResult
from .workers import StorageWorker, make_workers

__version__ = PROPAGATOR_VERSION

__all__ = [
    "BackendSettings",
    "BackendUnavailableError",
    "BlobCatalog",
    "BlobFileManager",
    "BlobReference",
    "BlobStorage",
    "BlobStorageManager",
    "ErrorKind",
    "JobDispatcher",
    "JobOutcome",
    "JobState",
    "PropagationCoordinator",
    "PropagationJob",
    "PropagatorConfig",
    "PropagatorDeps",
    "PropagatorError",
    "PropagatorService",
    "ReferenceConflictError",
    "ReferenceNotFoundError",
    "StagingFileMissingError",
    "StorageWorker",
    "StoreBlobResult",
    "UnknownBackendError",
    "load_config",
    "make_workers",
]
