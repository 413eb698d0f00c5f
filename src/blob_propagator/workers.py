"""Worker processors: one per backend.

A worker executes a single propagation job against its backend driver and
returns the resulting reference. Workers never write to the catalog; that is
the coordinator's job, so a catalog write can be retried without repeating a
potentially expensive backend call.
"""

import logging
from typing import Dict

from .manager import BlobStorageManager
from .staging import BlobFileManager
from .storage import BlobStore
from .storage_models import BlobReference, BlobStorage
from .service_types import PropagationJob

logger = logging.getLogger(__name__)


class StorageWorker:
    """Propagates staged blobs to one backend."""

    def __init__(self, storage: BlobStorage, store: BlobStore, staging: BlobFileManager):
        self.storage = storage
        self.store = store
        self.staging = staging

    def __call__(self, job: PropagationJob) -> BlobReference:
        return self.process(job)

    def process(self, job: PropagationJob) -> BlobReference:
        """
        Store a staged blob in this worker's backend.

        Args:
            job: Job carrying the blob's versioned hash

        Returns:
            Reference to the stored copy

        Raises:
            StagingFileMissingError: If the blob was never staged (or was
                already cleaned up); not worth retrying
            BackendError: Driver errors, propagated unchanged
        """
        versioned_hash = job.versioned_hash
        data = self.staging.read(versioned_hash)

        reference = self.store.store(versioned_hash, data)
        logger.debug(
            "Stored blob %s in %s storage: %s", versioned_hash, self.storage.value, reference
        )
        return BlobReference(storage=self.storage, reference=reference)


def make_workers(
    manager: BlobStorageManager, staging: BlobFileManager
) -> Dict[BlobStorage, StorageWorker]:
    """Build one worker per configured backend."""
    return {
        storage: StorageWorker(storage, manager.get_store(storage), staging)
        for storage in manager.storages
    }
