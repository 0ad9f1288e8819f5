"""
Unit tests for ArtifactLifecycleManager.

Provider and blob store are in-memory fakes; metadata is real SQLite.
"""

from unittest.mock import patch

import pytest
from minio.error import ServerError

from libs.errors import ArtifactSyncError, RemoteTerminalError, RemoteTransientError, ValidationError
from libs.models import ArtifactRecord, ArtifactRef, ArtifactState
from services.assistant.artifact_sync.artifact_lifecycle import (
    ArtifactLifecycleManager,
    generate_placeholder_id,
)
from services.assistant.artifact_sync.resources import MinIOResource


# =============================================================================
# Test: create
# =============================================================================


class TestCreate:
    """Tests for the three-store create saga."""

    def test_happy_path_populates_all_stores(self, lifecycle, provider, blob_store, metadata):
        artifact = lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        assert artifact.blob_path == "threads/T1/a.txt"
        assert artifact.blob_url == "http://minio.test/test-artifacts/threads/T1/a.txt"
        assert artifact.byte_size == 2
        assert provider.files[artifact.external_file_id]["data"] == b"hi"
        assert blob_store.objects["threads/T1/a.txt"] == (b"hi", "text/plain")

        record = metadata.get_artifact(artifact.metadata_id)
        assert record.external_file_id == artifact.external_file_id
        assert record.blob_path == artifact.blob_path
        assert record.state == ArtifactState.COMMITTED

    def test_content_type_inferred(self, lifecycle, blob_store):
        lifecycle.create(b"a,b\n", "/mnt/data/report.csv", None, "T1")
        assert blob_store.objects["threads/T1/report.csv"][1] == "text/csv"

    def test_provider_failure_leaves_nothing(self, lifecycle, provider, blob_store, metadata, transient_error):
        provider.fail_upload = transient_error

        with pytest.raises(ArtifactSyncError) as exc_info:
            lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        assert exc_info.value.step == "provider_upload"
        assert blob_store.objects == {}
        assert metadata.find_artifact_by_thread_and_filename("T1", "a.txt") is None

    def test_blob_failure_removes_provider_file(self, lifecycle, provider, blob_store, metadata, transient_error):
        blob_store.fail_put = transient_error

        with pytest.raises(RemoteTransientError) as exc_info:
            lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        error = exc_info.value
        assert error.step == "blob_put"
        assert error.warnings == []
        assert provider.files == {}
        assert provider.deleted_files == ["file-1"]
        assert metadata.find_artifact_by_thread_and_filename("T1", "a.txt") is None

    def test_blob_server_error_removes_provider_file(self, provider, metadata):
        """A MinIO 502 is typed at the resource, so the provider upload is undone."""
        minio = MinIOResource(
            endpoint="minio.test", access_key="k", secret_key="s", bucket="test-artifacts"
        )
        manager = _manager(provider, minio, metadata)

        with patch("services.assistant.artifact_sync.resources.minio_resource.Minio") as mock_minio:
            mock_minio.return_value.put_object.side_effect = ServerError(
                "server failed with HTTP status code 502", 502
            )
            with pytest.raises(RemoteTransientError) as exc_info:
                manager.create(b"hi", "a.txt", "text/plain", "T1")

        assert exc_info.value.step == "blob_put"
        assert provider.files == {}
        assert metadata.find_artifact_by_thread_and_filename("T1", "a.txt") is None

    def test_blob_failure_with_failed_compensation_warns(self, lifecycle, provider, blob_store, transient_error):
        blob_store.fail_put = transient_error
        provider.fail_delete = RemoteTerminalError("provider unavailable")

        with pytest.raises(ArtifactSyncError) as exc_info:
            lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        error = exc_info.value
        assert error.step == "blob_put"
        assert [w.step for w in error.warnings] == ["compensate_provider_file"]
        assert error.warnings[0].identifier == "file-1"

    def test_metadata_failure_compensates_both_stores(self, provider, blob_store, transient_error):
        failing_metadata = FailingMetadata(transient_error)
        manager = _manager(provider, blob_store, failing_metadata)

        with pytest.raises(ArtifactSyncError) as exc_info:
            manager.create(b"hi", "a.txt", "text/plain", "T1")

        assert exc_info.value.step == "metadata_upsert"
        assert exc_info.value.warnings == []
        assert blob_store.objects == {}
        assert provider.files == {}

    def test_metadata_failure_runs_every_compensation(self, provider, blob_store, transient_error):
        """A failed blob compensation does not stop the provider compensation."""
        manager = _manager(provider, blob_store, FailingMetadata(transient_error))
        blob_store.fail_delete = RemoteTerminalError("blob store unavailable")

        with pytest.raises(ArtifactSyncError) as exc_info:
            manager.create(b"hi", "a.txt", "text/plain", "T1")

        warnings = exc_info.value.warnings
        assert [w.step for w in warnings] == ["compensate_blob"]
        assert warnings[0].identifier == "threads/T1/a.txt"
        assert provider.files == {}

    @pytest.mark.parametrize(
        "filename,thread_id",
        [("", "T1"), ("   ", "T1"), ("/mnt/data/", "T1"), ("a.txt", ""), ("a.txt", "T1/../T2")],
    )
    def test_invalid_input_rejected_before_any_store(self, lifecycle, provider, filename, thread_id):
        with pytest.raises(ValidationError):
            lifecycle.create(b"hi", filename, "text/plain", thread_id)
        assert provider.files == {}

    def test_oversize_upload_rejected(self, lifecycle, provider):
        with pytest.raises(ValidationError, match="limit is 1024 bytes"):
            lifecycle.create(b"x" * 1025, "big.bin", None, "T1")
        assert provider.files == {}

    def test_empty_file_allowed(self, lifecycle):
        artifact = lifecycle.create(b"", "empty.txt", None, "T1")
        assert artifact.byte_size == 0

    def test_same_filename_replaces_existing_artifact(self, lifecycle, provider, blob_store, metadata):
        first = lifecycle.create(b"v1", "a.txt", "text/plain", "T1")
        second = lifecycle.create(b"v2", "a.txt", "text/plain", "T1")

        assert second.metadata_id == first.metadata_id
        assert second.blob_path == first.blob_path
        assert blob_store.objects["threads/T1/a.txt"] == (b"v2", "text/plain")
        assert list(provider.files) == [second.external_file_id]
        assert first.external_file_id in provider.deleted_files
        stored = metadata.get_artifact(first.metadata_id)
        assert stored.external_file_id == second.external_file_id
        assert stored.byte_size == 2

    def test_delete_after_replacement_leaves_no_row_behind(self, lifecycle, provider, blob_store, metadata):
        first = lifecycle.create(b"v1", "a.txt", "text/plain", "T1")
        lifecycle.create(b"v2", "a.txt", "text/plain", "T1")

        lifecycle.delete(ArtifactRef(metadata_id=first.metadata_id))

        assert metadata.find_artifact_by_thread_and_filename("T1", "a.txt") is None
        assert blob_store.objects == {}
        assert provider.files == {}

    def test_create_over_placeholder_commits_it(self, lifecycle, metadata):
        placeholder = lifecycle.register_placeholder(
            "T1", "a.txt", "sandbox:/mnt/data/a.txt", external_file_id="file-gen"
        )

        artifact = lifecycle.create(b"hi", "a.txt", None, "T1")

        assert artifact.metadata_id == placeholder.id
        assert artifact.transient_locator == "sandbox:/mnt/data/a.txt"
        assert metadata.get_artifact(placeholder.id).state == ArtifactState.COMMITTED

    def test_metadata_failure_on_replacement_keeps_shared_blob(self, provider, blob_store, transient_error):
        existing = ArtifactRecord(
            id="m1", external_file_id="file-old", blob_path="threads/T1/a.txt",
            filename="a.txt", thread_id="T1",
        )
        manager = _manager(provider, blob_store, FailingMetadata(transient_error, existing=existing))

        with pytest.raises(RemoteTransientError):
            manager.create(b"v2", "a.txt", "text/plain", "T1")

        assert "threads/T1/a.txt" in blob_store.objects
        assert provider.files == {}

    def test_metadata_lookup_failure_touches_nothing(self, provider, blob_store, transient_error):
        class BrokenFind(FailingMetadata):
            def find_artifact_by_thread_and_filename(self, thread_id, filename):
                raise self.error

        manager = _manager(provider, blob_store, BrokenFind(transient_error))

        with pytest.raises(RemoteTransientError) as exc_info:
            manager.create(b"hi", "a.txt", "text/plain", "T1")

        assert exc_info.value.step == "metadata_lookup"
        assert provider.files == {}
        assert blob_store.objects == {}


class FailingMetadata:
    """Metadata store whose writes always fail."""

    def __init__(self, error, existing=None):
        self.error = error
        self.existing = existing

    def find_artifact_by_thread_and_filename(self, thread_id, filename):
        return self.existing

    def upsert_artifact(self, record):
        raise self.error


def _manager(provider, blob_store, metadata):
    return ArtifactLifecycleManager(provider, blob_store, metadata)


# =============================================================================
# Test: delete
# =============================================================================


class TestDelete:
    """Tests for delete ordering and idempotence."""

    def test_delete_removes_everything(self, lifecycle, provider, blob_store, metadata):
        artifact = lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        warnings = lifecycle.delete(ArtifactRef(metadata_id=artifact.metadata_id))

        assert warnings == []
        assert metadata.get_artifact(artifact.metadata_id) is None
        assert blob_store.objects == {}
        assert provider.files == {}

    def test_delete_by_external_file_id(self, lifecycle, provider, metadata):
        artifact = lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        lifecycle.delete(ArtifactRef(external_file_id=artifact.external_file_id))

        assert metadata.get_artifact(artifact.metadata_id) is None
        assert provider.files == {}

    def test_delete_by_blob_path_removes_metadata(self, lifecycle, provider, blob_store, metadata):
        artifact = lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        warnings = lifecycle.delete(ArtifactRef(blob_path=artifact.blob_path))

        assert warnings == []
        assert metadata.find_artifact_by_thread_and_filename("T1", "a.txt") is None
        assert blob_store.objects == {}
        assert provider.files == {}

    def test_unknown_metadata_id_falls_through_to_other_identifiers(self, lifecycle, provider, metadata):
        artifact = lifecycle.create(b"hi", "a.txt", "text/plain", "T1")

        lifecycle.delete(ArtifactRef(metadata_id="gone", blob_path=artifact.blob_path))

        assert metadata.get_artifact(artifact.metadata_id) is None
        assert provider.files == {}

    def test_delete_twice_is_a_no_op(self, lifecycle):
        artifact = lifecycle.create(b"hi", "a.txt", "text/plain", "T1")
        ref = ArtifactRef(metadata_id=artifact.metadata_id)

        lifecycle.delete(ref)
        assert lifecycle.delete(ref) == []

    def test_store_failures_become_warnings(self, lifecycle, provider, blob_store, metadata):
        """Metadata is removed even when the blob and provider deletes fail."""
        artifact = lifecycle.create(b"hi", "a.txt", "text/plain", "T1")
        blob_store.fail_delete = RemoteTerminalError("blob down")
        provider.fail_delete = RemoteTerminalError("provider down")

        warnings = lifecycle.delete(ArtifactRef(metadata_id=artifact.metadata_id))

        assert [(w.step, w.store) for w in warnings] == [
            ("delete_blob", "blob"),
            ("delete_provider_file", "provider"),
        ]
        assert metadata.get_artifact(artifact.metadata_id) is None

    def test_metadata_failure_raises_and_touches_nothing(self, provider, blob_store, transient_error):
        class BrokenLookup(FailingMetadata):
            def get_artifact(self, artifact_id):
                raise self.error

        manager = _manager(provider, blob_store, BrokenLookup(transient_error))
        blob_store.objects["threads/T1/a.txt"] = (b"hi", "text/plain")

        with pytest.raises(ArtifactSyncError) as exc_info:
            manager.delete(ArtifactRef(metadata_id="m1", blob_path="threads/T1/a.txt"))

        assert exc_info.value.step == "metadata_delete"
        assert "threads/T1/a.txt" in blob_store.objects

    def test_orphans_swept_without_metadata(self, lifecycle, provider, blob_store):
        provider.add_file("file-orphan", "a.txt", b"hi")
        blob_store.objects["threads/T1/a.txt"] = (b"hi", "text/plain")

        warnings = lifecycle.delete(
            ArtifactRef(external_file_id="file-orphan", blob_path="threads/T1/a.txt")
        )

        assert warnings == []
        assert blob_store.objects == {}
        assert provider.files == {}

    def test_blob_path_recovered_from_url(self, lifecycle, blob_store, metadata):
        blob_store.objects["threads/T1/legacy.txt"] = (b"x", "text/plain")
        metadata.upsert_artifact(
            ArtifactRecord(
                id="legacy",
                blob_url="http://minio.test/test-artifacts/threads/T1/legacy.txt",
                filename="legacy.txt",
                thread_id="T1",
            )
        )

        lifecycle.delete(ArtifactRef(metadata_id="legacy"))

        assert blob_store.deleted == ["threads/T1/legacy.txt"]


# =============================================================================
# Test: placeholders
# =============================================================================


class TestPlaceholders:
    """Tests for register_placeholder, get_record and mark_committed."""

    def test_placeholder_id_format(self):
        placeholder_id = generate_placeholder_id("thread_abcdefgh12345678")
        prefix, tail, suffix = placeholder_id.split("-")
        assert prefix == "gen"
        assert tail == "12345678"
        assert len(suffix) == 12

    def test_register_placeholder(self, lifecycle, metadata, provider, blob_store):
        record = lifecycle.register_placeholder(
            "T2", "/mnt/data/report.csv", "sandbox:/mnt/data/report.csv", message_id="msg_1"
        )

        assert record.state == ArtifactState.PENDING
        assert record.id.startswith("gen-T2-")
        assert record.durable_url(lifecycle.files_url_prefix) == f"/files/{record.id}"
        assert metadata.find_artifact_by_locator("T2", "sandbox:/mnt/data/report.csv").id == record.id
        # Only metadata is written
        assert provider.files == {}
        assert blob_store.objects == {}

    def test_register_placeholder_rejects_bad_filename(self, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.register_placeholder("T2", "/mnt/data/", "sandbox:/mnt/data/")

    def test_get_record_missing(self, lifecycle):
        with pytest.raises(RemoteTerminalError, match="not found"):
            lifecycle.get_record("nope")

    def test_mark_committed(self, lifecycle, metadata):
        record = lifecycle.register_placeholder("T2", "a.csv", None, external_file_id="file-9")

        lifecycle.mark_committed(
            record,
            blob_path=f"threads/T2/{record.id}/a.csv",
            blob_url=f"http://minio.test/test-artifacts/threads/T2/{record.id}/a.csv",
            byte_size=5,
        )

        stored = metadata.get_artifact(record.id)
        assert stored.state == ArtifactState.COMMITTED
        assert stored.byte_size == 5
        assert stored.blob_url.endswith(f"/{record.id}/a.csv")
        assert stored.durable_url() == f"/files/{record.id}"
