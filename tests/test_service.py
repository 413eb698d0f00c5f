"""End-to-end tests for the propagation service."""

import pytest
import yaml

from blob_propagator.errors import ConfigError, ReferenceNotFoundError, UnknownBackendError
from blob_propagator.manager import BlobStorageManager
from blob_propagator.service import PropagatorService
from blob_propagator.service_types import JobState, PropagationJob
from blob_propagator.storage_models import BlobStorage
from tests.fixtures.backends import FlakyStore


class TestPropagation:

    def test_stage_propagate_read(self, make_service):
        """Staged blob reaches every backend and the staged file is removed."""
        service = make_service()
        service.stage("0xabc", b"hello-blob")

        outcomes = service.propagate("0xabc")

        assert all(o.state == JobState.SUCCEEDED for o in outcomes)
        assert {r.blob_storage for r in service.references("0xabc")} == set(BlobStorage)
        assert not service.staging.exists("0xabc")
        for storage in BlobStorage:
            assert service.read("0xabc", storage) == b"hello-blob"
        assert service.read("0xabc") == b"hello-blob"

    def test_repeat_propagation_after_cleanup_is_noop(self, make_service):
        """A redelivered job for a recorded blob succeeds with the recorded reference."""
        service = make_service()
        service.stage("0xabc", b"data")
        service.propagate("0xabc")
        recorded = service.catalog.get_reference("0xabc", BlobStorage.SWARM).data_reference

        outcomes = service.propagate("0xabc", [BlobStorage.SWARM])

        assert outcomes[0].state == JobState.SUCCEEDED
        assert outcomes[0].reference.reference == recorded
        assert len(service.references("0xabc")) == 4

    def test_run_job(self, make_service):
        service = make_service()
        service.stage("0xabc", b"data")

        outcome = service.run_job(PropagationJob(versionedHash="0xabc", storage="relational"))

        assert outcome.succeeded
        assert outcome.reference.reference == "0xabc"

    def test_partial_failure_keeps_staged_file(self, make_service, stores, sleeps):
        stores[BlobStorage.SWARM] = FlakyStore(stores[BlobStorage.SWARM], failures=10)
        service = make_service(manager=BlobStorageManager(stores))
        service.stage("0xabc", b"data")

        outcomes = service.propagate("0xabc")

        dead = [o for o in outcomes if o.state == JobState.DEAD]
        assert [o.storage for o in dead] == [BlobStorage.SWARM]
        assert service.staging.exists("0xabc")
        assert service.sweep(grace_seconds=3600).retained_recent == ["0xabc"]
        assert service.sweep(grace_seconds=0).removed == ["0xabc"]


class TestStoreNow:

    def test_records_successful_backends(self, make_service, stores):
        stores[BlobStorage.RELATIONAL] = FlakyStore(stores[BlobStorage.RELATIONAL], failures=1)
        service = make_service(manager=BlobStorageManager(stores))

        result = service.store_now("0xabc", b"data")

        assert result.partial
        recorded = {r.blob_storage for r in service.references("0xabc")}
        assert recorded == set(BlobStorage) - {BlobStorage.RELATIONAL}


class TestRead:

    def test_unconfigured_backend(self, make_service, tmp_path):
        service = make_service(manager=BlobStorageManager({}))
        with pytest.raises(UnknownBackendError):
            service.read("0xabc", BlobStorage.SWARM)

    def test_no_reference(self, make_service):
        with pytest.raises(ReferenceNotFoundError):
            make_service().read("0xabc")

    def test_falls_back_to_other_backend(self, make_service, tmp_path):
        service = make_service()
        service.stage("0xabc", b"data")
        service.propagate("0xabc")
        # Lose the filesystem copy
        for path in (tmp_path / "fs-store").rglob("0xabc"):
            path.unlink()

        assert service.read("0xabc") == b"data"
        with pytest.raises(ReferenceNotFoundError):
            service.read("0xabc", BlobStorage.FILESYSTEM)


class TestFromConfigFile:

    def test_builds_from_yaml(self, tmp_path):
        cfg = tmp_path / "blob-propagator.yaml"
        cfg.write_text(yaml.safe_dump({
            "backends": [
                {"storage": "filesystem", "path": "fs"},
                {"storage": "relational", "path": "data.db"},
            ],
        }))

        with PropagatorService.from_config_file(cfg) as service:
            service.stage("0xabc", b"data")
            outcomes = service.propagate("0xabc")

        assert all(o.succeeded for o in outcomes)
        assert (tmp_path / "data.db").exists()

    def test_misconfigured_backend(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AZURE_STORAGE_CONNECTION_STRING", raising=False)
        cfg = tmp_path / "blob-propagator.yaml"
        cfg.write_text(yaml.safe_dump({"backends": [{"storage": "object-store", "container": "blobs"}]}))

        with pytest.raises(ConfigError):
            PropagatorService.from_config_file(cfg)
