"""Reference catalog: durable mapping of (blob hash, backend) to reference.

Uses SQLite with a uniqueness constraint on (blob_hash, blob_storage). The
catalog is passed explicitly to whatever needs it; there is no process-wide
client.
"""

import contextlib
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .errors import CatalogUnavailableError, ReferenceConflictError
from .hashing import validate_hash_key
from .storage_models import Blob, BlobDataStorageReference, BlobStorage

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BlobCatalog:
    """Blob and blob data storage reference tables.

    Thread-safe with proper locking. Writes run in ``BEGIN IMMEDIATE``
    transactions so concurrent processes sharing the file also serialize.
    """

    def __init__(self, db_path: Path, timeout: float = 30.0):
        """Initialize catalog with database path.

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
        # Autocommit mode; transactions are opened explicitly
        return sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)

    @contextlib.contextmanager
    def _read_connection(self) -> Iterator[sqlite3.Connection]:
        """Locked connection for a read; a locked or unreachable database
        raises CatalogUnavailableError."""
        with self._lock:
            try:
                conn = self._connect()
                try:
                    yield conn
                finally:
                    conn.close()
            except sqlite3.OperationalError as e:
                raise CatalogUnavailableError(str(e)) from e

    def _init_database(self):
        """Initialize SQLite schema."""
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS blob (
                        versioned_hash TEXT PRIMARY KEY,
                        commitment TEXT NOT NULL,
                        size INTEGER NOT NULL,
                        first_block_number INTEGER,
                        inserted_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS blob_data_storage_reference (
                        blob_hash TEXT NOT NULL,
                        blob_storage TEXT NOT NULL,
                        data_reference TEXT NOT NULL,
                        PRIMARY KEY (blob_hash, blob_storage)
                    )
                """)
            finally:
                conn.close()

    # === Blobs ===

    def insert_blob(
        self,
        versioned_hash: str,
        commitment: str,
        size: int,
        first_block_number: Optional[int] = None,
    ) -> Blob:
        """Insert a blob row if absent.

        An existing row is never re-created; a block number is attached to it
        when one is given and none was known yet.

        Returns:
            The stored blob row
        """
        validate_hash_key(versioned_hash)
        now = _now()
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                conn.execute(
                    """
                    INSERT OR IGNORE INTO blob
                        (versioned_hash, commitment, size, first_block_number, inserted_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (versioned_hash, commitment, size, first_block_number, now, now),
                )
                if first_block_number is not None:
                    conn.execute(
                        """
                        UPDATE blob SET first_block_number = ?, updated_at = ?
                        WHERE versioned_hash = ? AND first_block_number IS NULL
                        """,
                        (first_block_number, now, versioned_hash),
                    )
                conn.execute("COMMIT")
                return self._select_blob(conn, versioned_hash)
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
            finally:
                conn.close()

    def attach_block_number(self, versioned_hash: str, block_number: int) -> bool:
        """Record the first block a blob was seen in.

        Returns:
            True if the blob row was updated, False if it already had one
            or does not exist
        """
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    """
                    UPDATE blob SET first_block_number = ?, updated_at = ?
                    WHERE versioned_hash = ? AND first_block_number IS NULL
                    """,
                    (block_number, _now(), versioned_hash),
                )
                return cursor.rowcount > 0
            finally:
                conn.close()

    def get_blob(self, versioned_hash: str) -> Optional[Blob]:
        with self._read_connection() as conn:
            return self._select_blob(conn, versioned_hash)

    def delete_blob(self, versioned_hash: str) -> bool:
        """Delete a blob row together with its storage references.

        Returns:
            True if anything was deleted
        """
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                refs = conn.execute(
                    "DELETE FROM blob_data_storage_reference WHERE blob_hash = ?",
                    (versioned_hash,),
                ).rowcount
                blobs = conn.execute(
                    "DELETE FROM blob WHERE versioned_hash = ?",
                    (versioned_hash,),
                ).rowcount
                conn.execute("COMMIT")
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
            finally:
                conn.close()

        if refs or blobs:
            logger.info("Deleted blob %s and %d storage reference(s)", versioned_hash, refs)
        return bool(refs or blobs)

    def _select_blob(self, conn: sqlite3.Connection, versioned_hash: str) -> Optional[Blob]:
        row = conn.execute(
            """
            SELECT versioned_hash, commitment, size, first_block_number, inserted_at, updated_at
            FROM blob WHERE versioned_hash = ?
            """,
            (versioned_hash,),
        ).fetchone()
        if row is None:
            return None
        return Blob(
            versioned_hash=row[0],
            commitment=row[1],
            size=row[2],
            first_block_number=row[3],
            inserted_at=datetime.fromisoformat(row[4]),
            updated_at=datetime.fromisoformat(row[5]),
        )

    # === Storage references ===

    def upsert_reference(
        self, versioned_hash: str, storage: BlobStorage, reference: str
    ) -> Tuple[BlobDataStorageReference, bool]:
        """Insert a storage reference, or verify the recorded one matches.

        Args:
            versioned_hash: Blob versioned hash
            storage: Backend the reference belongs to
            reference: Backend-specific reference

        Returns:
            Tuple of (row, created) where created is False when an identical
            row already existed

        Raises:
            ReferenceConflictError: If a different reference is already
                recorded for (hash, storage). The existing row is kept.
        """
        validate_hash_key(versioned_hash)
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    """
                    INSERT INTO blob_data_storage_reference (blob_hash, blob_storage, data_reference)
                    VALUES (?, ?, ?)
                    ON CONFLICT (blob_hash, blob_storage) DO NOTHING
                    """,
                    (versioned_hash, storage.value, reference),
                )
                created = cursor.rowcount > 0
                existing = conn.execute(
                    """
                    SELECT data_reference FROM blob_data_storage_reference
                    WHERE blob_hash = ? AND blob_storage = ?
                    """,
                    (versioned_hash, storage.value),
                ).fetchone()[0]
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                if conn.in_transaction:
                    conn.rollback()
                raise CatalogUnavailableError(str(e)) from e
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
            finally:
                conn.close()

        if existing != reference:
            raise ReferenceConflictError(versioned_hash, storage.value, existing, reference)

        row = BlobDataStorageReference(
            blob_hash=versioned_hash, blob_storage=storage, data_reference=existing
        )
        return row, created

    def get_reference(
        self, versioned_hash: str, storage: BlobStorage
    ) -> Optional[BlobDataStorageReference]:
        with self._read_connection() as conn:
            row = conn.execute(
                """
                SELECT data_reference FROM blob_data_storage_reference
                WHERE blob_hash = ? AND blob_storage = ?
                """,
                (versioned_hash, storage.value),
            ).fetchone()

        if row is None:
            return None
        return BlobDataStorageReference(
            blob_hash=versioned_hash, blob_storage=storage, data_reference=row[0]
        )

    def list_references(self, versioned_hash: str) -> List[BlobDataStorageReference]:
        """All storage references recorded for a blob, ordered by backend."""
        with self._read_connection() as conn:
            rows = conn.execute(
                """
                SELECT blob_storage, data_reference FROM blob_data_storage_reference
                WHERE blob_hash = ? ORDER BY blob_storage
                """,
                (versioned_hash,),
            ).fetchall()

        return [
            BlobDataStorageReference(
                blob_hash=versioned_hash,
                blob_storage=BlobStorage(storage),
                data_reference=reference,
            )
            for storage, reference in rows
        ]

    def count_references(self, versioned_hash: str, storage: BlobStorage) -> int:
        """Number of rows for (hash, storage): 0 or 1 by construction."""
        with self._read_connection() as conn:
            return conn.execute(
                """
                SELECT COUNT(*) FROM blob_data_storage_reference
                WHERE blob_hash = ? AND blob_storage = ?
                """,
                (versioned_hash, storage.value),
            ).fetchone()[0]
