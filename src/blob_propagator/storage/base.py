"""Base protocol for blob storage backends."""

from typing import Protocol

from ..storage_models import BlobStorage


class BlobStore(Protocol):
    """
    Protocol for backend drivers.

    Each driver owns its connection and credential state; drivers never
    share mutable state with each other.
    """

    storage: BlobStorage

    def store(self, versioned_hash: str, data: bytes) -> str:
        """
        Persist blob bytes to the backend.

        Calling twice with identical arguments is safe and yields the same
        reference, so a timed-out then retried job converges.

        Args:
            versioned_hash: Blob versioned hash
            data: Raw blob bytes

        Returns:
            Opaque reference sufficient to retrieve the bytes later

        Raises:
            BackendUnavailableError: On transient backend failures
        """
        ...

    def retrieve(self, reference: str) -> bytes:
        """
        Fetch previously stored bytes.

        Args:
            reference: Reference returned by store()

        Returns:
            Blob bytes

        Raises:
            BackendUnavailableError: On transient backend failures
            ReferenceNotFoundError: If the reference is invalid or missing
        """
        ...

    def close(self) -> None:
        """Release connections held by the driver."""
        ...
