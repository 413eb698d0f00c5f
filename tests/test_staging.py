"""Test staging file store."""

import os
import threading
import time

import portalocker
import pytest

from blob_propagator.errors import ErrorKind, InvalidHashError, StagingFileMissingError
from blob_propagator.staging import BlobFileManager


class TestStagingBasic:
    """Test basic staging operations."""

    def test_init_creates_directory(self, tmp_path):
        root = tmp_path / "a" / "staging"
        BlobFileManager(root)
        assert root.is_dir()

    def test_create_then_read(self, staging):
        staging.create("0xabc", b"hello-blob")
        assert staging.read("0xabc") == b"hello-blob"

    def test_create_overwrites(self, staging):
        staging.create("0xabc", b"first")
        staging.create("0xabc", b"second")
        assert staging.read("0xabc") == b"second"

    def test_create_leaves_no_temp_files(self, staging):
        staging.create("0xabc", b"data")
        leftovers = [p.name for p in staging.root.iterdir() if p.name.startswith(".staging-")]
        assert leftovers == []

    def test_read_missing(self, staging):
        """Missing file fails with the hash in the message."""
        with pytest.raises(StagingFileMissingError) as exc_info:
            staging.read("0xmissing")

        err = exc_info.value
        assert err.kind == ErrorKind.STAGING_FILE_MISSING
        assert err.versioned_hash == "0xmissing"
        assert str(err) == "couldn't read blob 0xmissing data file: file is missing"

    def test_remove(self, staging):
        staging.create("0xabc", b"data")
        assert staging.remove("0xabc") is True
        assert not staging.exists("0xabc")

    def test_remove_keeps_lock_file(self, staging):
        staging.create("0xabc", b"data")
        staging.remove("0xabc")
        assert (staging.root / "0xabc.lock").exists()
        assert staging.list_hashes() == []

    def test_remove_is_idempotent(self, staging):
        assert staging.remove("0xabc") is False
        staging.create("0xabc", b"data")
        staging.remove("0xabc")
        assert staging.remove("0xabc") is False

    def test_list_hashes(self, staging):
        staging.create("0xb", b"2")
        staging.create("0xa", b"1")
        (staging.root / "not a hash.bin").write_bytes(b"junk")

        assert staging.list_hashes() == ["0xa", "0xb"]

    def test_age_seconds(self, staging):
        path = staging.create("0xabc", b"data")
        old = time.time() - 600
        os.utime(path, (old, old))

        assert staging.age_seconds("0xabc") >= 600

    def test_age_of_missing_file(self, staging):
        with pytest.raises(StagingFileMissingError):
            staging.age_seconds("0xgone")


class TestStagingSecurity:

    def test_path_traversal_rejected(self, staging, tmp_path):
        with pytest.raises(InvalidHashError):
            staging.create("../escape", b"data")
        assert not (tmp_path / "escape.bin").exists()

    def test_read_rejects_separators(self, staging):
        with pytest.raises(InvalidHashError):
            staging.read("a/b")


class TestStagingConcurrency:

    def test_concurrent_readers_see_full_payload(self, staging):
        """Readers of the same hash never observe partial writes."""
        payload = os.urandom(128 * 1024)
        staging.create("0xabc", payload)
        results = []

        def reader():
            for _ in range(20):
                results.append(staging.read("0xabc"))

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 80
        assert all(r == payload for r in results)

    def test_concurrent_writers_same_hash(self, staging):
        payloads = [bytes([i]) * 4096 for i in range(8)]
        threads = [
            threading.Thread(target=staging.create, args=("0xabc", p)) for p in payloads
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert staging.read("0xabc") in payloads

    def test_remove_waits_for_lock_holder(self, staging):
        """Removal is serialized with writers holding the hash's lock."""
        staging.create("0xabc", b"data")
        lock = portalocker.Lock(str(staging.root / "0xabc.lock"), "w", timeout=5)
        lock.acquire()
        remover = threading.Thread(target=staging.remove, args=("0xabc",))
        try:
            remover.start()
            time.sleep(0.2)
            assert staging.exists("0xabc")
        finally:
            lock.release()
        remover.join(5)

        assert not remover.is_alive()
        assert not staging.exists("0xabc")
