"""Relational blob storage backend.

Blob bytes are kept in a BLOB column keyed by versioned hash. The hash is the
reference, so re-storing a blob is an idempotent overwrite.
"""

import logging
import sqlite3
import threading
from pathlib import Path

from ..errors import BackendUnavailableError, ReferenceNotFoundError
from ..hashing import validate_hash_key
from ..storage_models import BlobStorage

logger = logging.getLogger(__name__)


class SqliteBlobStore:
    """Store blob data in a SQLite table.

    Thread-safe with proper locking; one connection per operation.
    """

    storage = BlobStorage.RELATIONAL

    def __init__(self, db_path: Path, timeout: float = 30.0):
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._lock = threading.Lock()
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=self.timeout)

    def _init_database(self):
        """Initialize SQLite schema."""
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS blob_data (
                        versioned_hash TEXT PRIMARY KEY,
                        data BLOB NOT NULL
                    )
                """)
                conn.commit()
            finally:
                conn.close()

    def store(self, versioned_hash: str, data: bytes) -> str:
        """Insert or replace blob bytes. Returns the versioned hash."""
        validate_hash_key(versioned_hash)
        with self._lock:
            try:
                conn = self._connect()
                try:
                    conn.execute(
                        "INSERT OR REPLACE INTO blob_data (versioned_hash, data) VALUES (?, ?)",
                        (versioned_hash, sqlite3.Binary(data)),
                    )
                    conn.commit()
                finally:
                    conn.close()
            except sqlite3.OperationalError as e:
                raise BackendUnavailableError(self.storage.value, str(e)) from e

        logger.debug("Stored blob %s in %s", versioned_hash, self.db_path)
        return versioned_hash

    def retrieve(self, reference: str) -> bytes:
        """Read blob bytes by versioned hash."""
        with self._lock:
            try:
                conn = self._connect()
                try:
                    row = conn.execute(
                        "SELECT data FROM blob_data WHERE versioned_hash = ?",
                        (reference,),
                    ).fetchone()
                finally:
                    conn.close()
            except sqlite3.OperationalError as e:
                raise BackendUnavailableError(self.storage.value, str(e)) from e

        if row is None:
            raise ReferenceNotFoundError(self.storage.value, reference)
        return bytes(row[0])

    def close(self) -> None:
        pass
