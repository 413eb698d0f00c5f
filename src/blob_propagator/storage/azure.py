"""Azure blob storage backend (object store)."""

import logging
from typing import Optional

from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.storage.blob import BlobServiceClient

from ..errors import BackendError, BackendUnavailableError, ReferenceNotFoundError
from ..hashing import validate_hash_key
from ..storage_models import BlobStorage

logger = logging.getLogger(__name__)

# HTTP statuses worth re-attempting
_TRANSIENT_STATUSES = {408, 429}


class AzureBlobStore:
    """
    Azure Blob Storage implementation.

    Blobs are stored under a stable key: prefix/<versioned_hash>.bin.
    The key is the reference, so repeated stores return the same reference.
    """

    storage = BlobStorage.OBJECT_STORE

    def __init__(self, client: BlobServiceClient, container: str, prefix: str = ""):
        """
        Initialize Azure blob store.

        Args:
            client: Blob service client (owned by this store)
            container: Container name
            prefix: Optional key prefix
        """
        self.client = client
        self.container = container
        self.prefix = prefix.strip("/") if prefix else ""

        # Ensure container exists
        container_client = self.client.get_container_client(container)
        try:
            if not container_client.exists():
                container_client.create_container()
        except ResourceExistsError:
            # Created concurrently by another process
            pass
        except AzureError as e:
            raise BackendUnavailableError(self.storage.value, str(e)) from e

    @classmethod
    def from_connection_string(
        cls, connection_string: str, container: str, prefix: str = ""
    ) -> "AzureBlobStore":
        """Build a store from an Azure Storage connection string."""
        client = BlobServiceClient.from_connection_string(connection_string)
        return cls(client, container, prefix)

    def key_for(self, versioned_hash: str) -> str:
        validate_hash_key(versioned_hash)
        name = f"{versioned_hash}.bin"
        return f"{self.prefix}/{name}" if self.prefix else name

    def store(self, versioned_hash: str, data: bytes) -> str:
        """
        Upload blob bytes, overwriting any previous upload of the same key.

        Returns:
            Blob key within the container
        """
        key = self.key_for(versioned_hash)
        blob_client = self.client.get_blob_client(container=self.container, blob=key)
        try:
            blob_client.upload_blob(data, overwrite=True)
        except AzureError as e:
            raise self._translate(e, key) from e

        logger.debug("Uploaded blob %s to azure://%s/%s", versioned_hash, self.container, key)
        return key

    def retrieve(self, reference: str) -> bytes:
        """Download blob bytes by key."""
        if not reference:
            raise ReferenceNotFoundError(self.storage.value, reference)

        blob_client = self.client.get_blob_client(container=self.container, blob=reference)
        try:
            return blob_client.download_blob().readall()
        except AzureError as e:
            raise self._translate(e, reference) from e

    def close(self) -> None:
        self.client.close()

    def _translate(self, error: AzureError, key: Optional[str]) -> BackendError:
        """Map an Azure SDK error onto the propagation error taxonomy."""
        if isinstance(error, ResourceNotFoundError):
            return ReferenceNotFoundError(self.storage.value, key or "")
        if isinstance(error, HttpResponseError):
            status = error.status_code or 0
            if status >= 500 or status in _TRANSIENT_STATUSES:
                return BackendUnavailableError(self.storage.value, str(error))
            return BackendError(self.storage.value, f"Azure request failed for {key}: {error}")
        # Connection errors, timeouts, response decoding failures
        return BackendUnavailableError(self.storage.value, str(error))
