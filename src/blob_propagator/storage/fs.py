"""Filesystem blob storage backend."""

import contextlib
import logging
import os
import tempfile
from pathlib import Path

from ..errors import BackendUnavailableError, ReferenceNotFoundError
from ..hashing import validate_hash_key
from ..storage_models import BlobStorage

logger = logging.getLogger(__name__)


class FilesystemBlobStore:
    """
    Local directory store, for single-host deployments and tests.

    Files are stored with sharding: base_dir/ab/cd/<versioned_hash>.
    References are paths relative to base_dir.
    """

    def __init__(self, base_dir: Path, storage: BlobStorage = BlobStorage.FILESYSTEM):
        """
        Initialize filesystem store.

        Args:
            base_dir: Base directory for blob storage
            storage: Backend this store serves (also usable as object store)
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.storage = storage

    def _key_for(self, versioned_hash: str) -> str:
        validate_hash_key(versioned_hash)
        clean = versioned_hash[2:] if versioned_hash.startswith("0x") else versioned_hash
        shard = (clean + "0000")[:4]
        return f"{shard[:2]}/{shard[2:4]}/{versioned_hash}"

    def store(self, versioned_hash: str, data: bytes) -> str:
        """
        Write blob bytes with sharding.

        Overwrites atomically, so a repeated store yields the same reference.
        """
        key = self._key_for(versioned_hash)
        dest = self.base_dir / key

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                prefix=".fs-", dir=str(dest.parent), delete=False
            ) as tmp:
                tmp.write(data)
                tmppath = Path(tmp.name)
        except OSError as e:
            raise BackendUnavailableError(self.storage.value, str(e)) from e

        try:
            os.replace(str(tmppath), str(dest))
        except OSError as e:
            with contextlib.suppress(OSError):
                tmppath.unlink()
            raise BackendUnavailableError(self.storage.value, str(e)) from e

        logger.debug("Stored blob %s at %s", versioned_hash, dest)
        return key

    def retrieve(self, reference: str) -> bytes:
        """Read blob bytes by relative reference."""
        path = self._resolve(reference)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise ReferenceNotFoundError(self.storage.value, reference) from None
        except IsADirectoryError:
            raise ReferenceNotFoundError(self.storage.value, reference) from None
        except OSError as e:
            raise BackendUnavailableError(self.storage.value, str(e)) from e

    def close(self) -> None:
        pass

    def _resolve(self, reference: str) -> Path:
        """
        Resolve a reference and ensure it stays under base_dir.

        Raises:
            ReferenceNotFoundError: If the reference points outside the store
        """
        root = self.base_dir.resolve()
        candidate = (self.base_dir / reference).resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            raise ReferenceNotFoundError(self.storage.value, reference) from None
        return candidate
