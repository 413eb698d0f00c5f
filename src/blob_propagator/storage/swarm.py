"""Swarm blob storage backend (peer-to-peer content network).

Talks to a Bee node's HTTP API. Swarm is content-addressed: uploading the
same bytes twice yields the same reference.
"""

import logging
import re
from typing import Optional

import requests

from ..errors import BackendError, BackendUnavailableError, ReferenceNotFoundError
from ..storage_models import BlobStorage

logger = logging.getLogger(__name__)

_SWARM_REFERENCE = re.compile(r"^[0-9a-fA-F]{64}([0-9a-fA-F]{64})?$")


class SwarmBlobStore:
    """Swarm storage via a Bee node."""

    storage = BlobStorage.SWARM

    def __init__(
        self,
        url: str,
        postage_batch_id: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Swarm store.

        Args:
            url: Bee node API URL (e.g. http://localhost:1633)
            postage_batch_id: Postage stamp batch paying for uploads
            timeout: Request timeout in seconds
            session: HTTP session (owned by this store)
        """
        self.url = url.rstrip("/")
        self.postage_batch_id = postage_batch_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def store(self, versioned_hash: str, data: bytes) -> str:
        """Upload blob bytes. Returns the Swarm reference."""
        try:
            response = self.session.post(
                f"{self.url}/bytes",
                data=data,
                headers={
                    "Content-Type": "application/octet-stream",
                    "swarm-postage-batch-id": self.postage_batch_id,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BackendUnavailableError(self.storage.value, str(e)) from e

        self._raise_for_status(response, versioned_hash)
        try:
            reference = response.json()["reference"]
        except (ValueError, KeyError, TypeError) as e:
            raise BackendError(
                self.storage.value,
                f"Unexpected upload response for blob {versioned_hash}: {response.text[:200]}",
            ) from e
        if not isinstance(reference, str) or not _SWARM_REFERENCE.fullmatch(reference):
            raise BackendError(
                self.storage.value,
                f"Malformed swarm reference for blob {versioned_hash}: {reference!r}",
            )

        logger.debug("Uploaded blob %s to swarm: %s", versioned_hash, reference)
        return reference

    def retrieve(self, reference: str) -> bytes:
        """Download blob bytes by Swarm reference."""
        if not _SWARM_REFERENCE.fullmatch(reference or ""):
            raise ReferenceNotFoundError(self.storage.value, reference)

        try:
            response = self.session.get(f"{self.url}/bytes/{reference}", timeout=self.timeout)
        except requests.RequestException as e:
            raise BackendUnavailableError(self.storage.value, str(e)) from e

        if response.status_code in (400, 404):
            raise ReferenceNotFoundError(self.storage.value, reference)
        self._raise_for_status(response, reference)
        return response.content

    def close(self) -> None:
        self.session.close()

    def _raise_for_status(self, response: requests.Response, subject: str) -> None:
        """Map HTTP failures onto the propagation error taxonomy."""
        status = response.status_code
        if status < 400:
            return
        if status >= 500 or status in (408, 429):
            raise BackendUnavailableError(self.storage.value, f"HTTP {status} for {subject}")
        raise BackendError(
            self.storage.value,
            f"Swarm request for {subject} failed with HTTP {status}: {response.text[:200]}",
        )
