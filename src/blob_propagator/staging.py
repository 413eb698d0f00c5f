"""Staging file store for blob payloads awaiting propagation.

Discovery writes a blob's bytes here before enqueuing propagation jobs; the
per-backend workers read them back. Files are keyed purely by versioned hash.

Key Features:
- Atomic writes (temp file + fsync + rename) so readers never see a
  partially written payload
- Per-hash cross-process locking via portalocker for concurrent writers
- Idempotent removal, safe to race between coordinator and sweep

Directory Structure:
    <staging_dir>/<versioned_hash>.bin
"""

import contextlib
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import List, Union

import portalocker

from .constants import STAGED_FILE_SUFFIX
from .errors import InvalidHashError, StagingFileMissingError
from .hashing import validate_hash_key

logger = logging.getLogger(__name__)

_LOCK_SUFFIX = ".lock"


def _fsync_file(path: Path) -> None:
    """Fsync a file to ensure durability."""
    with open(path, "r+b") as f:
        os.fsync(f.fileno())


def _fsync_dir(path: Path) -> None:
    """Fsync a directory so the rename is durable.

    Best effort: not every platform supports directory fsync.
    """
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY

        fd = os.open(str(path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path)


class BlobFileManager:
    """Content-addressed staging area for blob payloads.

    Attributes:
        root: Staging directory

    Thread Safety:
        Writers for the same hash are serialized with a per-hash lock file.
        Reads need no lock since a staged file is never modified in place.
    """

    def __init__(self, root: Union[str, Path], lock_timeout: float = 30.0):
        """Initialize the staging store, creating the directory if needed.

        Args:
            root: Staging directory
            lock_timeout: Seconds to wait for a per-hash write lock
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.lock_timeout = lock_timeout

    def path_for(self, versioned_hash: str) -> Path:
        """Get staging path for a hash.

        Raises:
            InvalidHashError: If the hash could escape the staging directory
        """
        validate_hash_key(versioned_hash)
        return self.root / f"{versioned_hash}{STAGED_FILE_SUFFIX}"

    def _lock_path(self, path: Path) -> Path:
        # Per-hash lock file; persists after the payload is removed
        return path.with_suffix(_LOCK_SUFFIX)

    def create(self, versioned_hash: str, data: bytes) -> Path:
        """Write a blob payload, overwriting any prior file for the hash.

        Args:
            versioned_hash: Blob versioned hash
            data: Raw blob bytes

        Returns:
            Path of the staged file
        """
        dst = self.path_for(versioned_hash)

        with portalocker.Lock(str(self._lock_path(dst)), "w", timeout=self.lock_timeout):
            with tempfile.NamedTemporaryFile(
                prefix=".staging-",
                dir=str(self.root),
                delete=False
            ) as tmp:
                tmp.write(data)
                tmppath = Path(tmp.name)

            try:
                _fsync_file(tmppath)
                os.replace(str(tmppath), str(dst))
                _fsync_dir(self.root)
            except Exception:
                with contextlib.suppress(OSError):
                    tmppath.unlink()
                raise

        logger.debug("Staged blob %s (%d bytes)", versioned_hash, len(data))
        return dst

    def read(self, versioned_hash: str) -> bytes:
        """Read a staged payload.

        Raises:
            StagingFileMissingError: If nothing is staged for the hash
        """
        path = self.path_for(versioned_hash)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise StagingFileMissingError(versioned_hash) from None

    def exists(self, versioned_hash: str) -> bool:
        return self.path_for(versioned_hash).exists()

    def remove(self, versioned_hash: str) -> bool:
        """Delete a staged payload.

        Serialized with writers of the same hash. The lock file stays.

        Returns:
            True if a file was removed, False if it was already gone
        """
        path = self.path_for(versioned_hash)
        with portalocker.Lock(str(self._lock_path(path)), "w", timeout=self.lock_timeout):
            try:
                path.unlink()
            except FileNotFoundError:
                return False
        logger.debug("Removed staged blob %s", versioned_hash)
        return True

    def list_hashes(self) -> List[str]:
        """List hashes with a staged payload, sorted."""
        hashes = []
        for p in self.root.glob(f"*{STAGED_FILE_SUFFIX}"):
            name = p.name[: -len(STAGED_FILE_SUFFIX)]
            try:
                hashes.append(validate_hash_key(name))
            except InvalidHashError:
                logger.debug("Ignoring unexpected staging file %s", p)
        return sorted(hashes)

    def age_seconds(self, versioned_hash: str) -> float:
        """Seconds since the staged payload was last written.

        Raises:
            StagingFileMissingError: If nothing is staged for the hash
        """
        try:
            mtime = self.path_for(versioned_hash).stat().st_mtime
        except FileNotFoundError:
            raise StagingFileMissingError(versioned_hash) from None
        return max(time.time() - mtime, 0.0)
