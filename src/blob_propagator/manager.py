"""Storage manager: the configured roster of backend drivers.

Single entry point for reading blobs back, and the synchronous write path used
when asynchronous propagation is unnecessary or unavailable.
"""

import logging
from typing import Dict, Iterable, List, Optional

from .config import PropagatorConfig
from .errors import PropagatorError, UnknownBackendError
from .storage import BlobStore, make_blob_store
from .storage_models import BlobReference, BlobStorage, StoreBlobResult

logger = logging.getLogger(__name__)


class BlobStorageManager:
    """Registry mapping each backend identifier to its driver."""

    def __init__(self, stores: Optional[Dict[BlobStorage, BlobStore]] = None):
        """
        Initialize with drivers keyed by backend.

        Args:
            stores: Backend -> driver mapping; order is preserved for store_blob
        """
        self._stores: Dict[BlobStorage, BlobStore] = dict(stores or {})

    @classmethod
    def from_config(cls, config: PropagatorConfig) -> "BlobStorageManager":
        """Build drivers for every configured backend.

        Raises:
            ConfigError: If any backend is misconfigured
        """
        manager = cls()
        try:
            for settings in config.backends:
                manager.register(settings.storage, make_blob_store(settings))
        except Exception:
            manager.close()
            raise
        return manager

    def register(self, storage: BlobStorage, store: BlobStore) -> None:
        """Add or replace the driver for a backend."""
        self._stores[storage] = store
        logger.debug("Registered %s driver: %s", storage.value, type(store).__name__)

    @property
    def storages(self) -> List[BlobStorage]:
        return list(self._stores)

    def get_store(self, storage: BlobStorage) -> BlobStore:
        """
        Look up the driver for a backend.

        Raises:
            UnknownBackendError: If no driver is configured for the backend
        """
        try:
            return self._stores[storage]
        except KeyError:
            raise UnknownBackendError(BlobStorage(storage).value) from None

    def get_blob(self, reference: BlobReference) -> bytes:
        """
        Read a blob back from the backend that owns the reference.

        Raises:
            UnknownBackendError: If no driver is configured for the backend
            BackendUnavailableError: On transient backend failures
            ReferenceNotFoundError: If the reference is invalid or missing
        """
        store = self.get_store(reference.storage)
        return store.retrieve(reference.reference)

    def get_blob_any(self, references: Iterable[BlobReference]) -> bytes:
        """
        Read a blob from the first backend that can serve it.

        Args:
            references: Candidate references, tried in order

        Raises:
            PropagatorError: The last backend error if no reference could be read
            ValueError: If no references were given
        """
        last_error: Optional[PropagatorError] = None
        for ref in references:
            try:
                return self.get_blob(ref)
            except PropagatorError as e:
                logger.warning("Failed to read blob from %s storage: %s", ref.storage.value, e)
                last_error = e
        if last_error is None:
            raise ValueError("No blob references given")
        raise last_error

    def store_blob(self, versioned_hash: str, data: bytes) -> StoreBlobResult:
        """
        Store a blob in every configured backend.

        Each backend's outcome is recorded independently; a failing backend
        never prevents or undoes the others.

        Args:
            versioned_hash: Blob versioned hash
            data: Raw blob bytes

        Returns:
            StoreBlobResult with one reference per successful backend and one
            failure message per failed backend
        """
        result = StoreBlobResult(versioned_hash=versioned_hash)
        for storage, store in self._stores.items():
            try:
                reference = store.store(versioned_hash, data)
            except Exception as e:
                logger.warning(
                    "Failed to store blob %s in %s storage: %s",
                    versioned_hash, storage.value, e,
                )
                result.failures[storage] = str(e) or type(e).__name__
                continue
            result.references.append(BlobReference(storage=storage, reference=reference))

        if result.partial:
            logger.warning(
                "Blob %s stored partially: %d succeeded, %d failed",
                versioned_hash, len(result.references), len(result.failures),
            )
        return result

    def close(self) -> None:
        """Close every driver."""
        for storage, store in self._stores.items():
            try:
                store.close()
            except Exception as e:
                logger.warning("Failed to close %s driver: %s", storage.value, e)
