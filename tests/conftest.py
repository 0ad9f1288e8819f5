"""
Shared pytest fixtures.

Provides in-memory fakes for the provider and blob store, and a real
SQLite-backed MetadataResource, so lifecycle and resolver tests exercise
actual SQL.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from libs.errors import RemoteTerminalError, RemoteTransientError
from libs.models import OutputMessage, Run, RunOptions, RunStatus
from services.assistant.artifact_sync.artifact_lifecycle import ArtifactLifecycleManager
from services.assistant.artifact_sync.resources import MetadataResource


# =============================================================================
# Fakes
# =============================================================================


class FakeProvider:
    """In-memory stand-in for OpenAIResource."""

    def __init__(self):
        self.files: dict[str, dict] = {}
        self.conversations: list[str] = []
        self.inputs: list[tuple[str, str, tuple]] = []
        self.started: list[RunOptions] = []
        self.statuses: list[RunStatus] = [RunStatus.COMPLETED]
        self.last_error: Optional[str] = None
        self.messages: list[OutputMessage] = []
        self.run_created_at = datetime.now(timezone.utc)
        self.status_calls = 0
        self.fail_upload: Optional[Exception] = None
        self.fail_delete: Optional[Exception] = None
        self.fail_start: Optional[Exception] = None
        self.deleted_files: list[str] = []

    # Conversations / runs

    def create_conversation(self) -> str:
        conversation_id = f"thread_{len(self.conversations) + 1:08d}"
        self.conversations.append(conversation_id)
        return conversation_id

    def append_input(self, conversation_id, text, file_ids=()):
        self.inputs.append((conversation_id, text, tuple(file_ids)))
        return f"msg_user_{len(self.inputs)}"

    def start_run(self, conversation_id, options):
        if self.fail_start is not None:
            raise self.fail_start
        self.started.append(options)
        return Run(
            conversation_id=conversation_id,
            run_id="run_1",
            status=RunStatus.QUEUED,
            created_at=self.run_created_at,
            additional_instructions=options.additional_instructions,
        )

    def get_run_status(self, conversation_id, run_id):
        index = min(self.status_calls, len(self.statuses) - 1)
        self.status_calls += 1
        return Run(
            conversation_id=conversation_id,
            run_id=run_id,
            status=self.statuses[index],
            created_at=self.run_created_at,
            last_error=self.last_error,
        )

    def list_output(self, conversation_id, limit=20):
        return list(self.messages)

    def delete_conversation(self, conversation_id):
        if conversation_id in self.conversations:
            self.conversations.remove(conversation_id)

    # Files

    def upload_file(self, data, filename, content_type):
        if self.fail_upload is not None:
            raise self.fail_upload
        file_id = f"file-{len(self.files) + len(self.deleted_files) + 1}"
        self.files[file_id] = {"filename": filename, "data": data, "content_type": content_type}
        return file_id

    def add_file(self, file_id, filename, data):
        self.files[file_id] = {"filename": filename, "data": data, "content_type": None}

    def get_file(self, file_id):
        if file_id not in self.files:
            raise RemoteTerminalError(f"No such file {file_id}", status_code=404)
        entry = self.files[file_id]
        return {"id": file_id, "filename": entry["filename"], "bytes": len(entry["data"])}

    def get_file_content(self, file_id):
        if file_id not in self.files:
            raise RemoteTerminalError(f"No such file {file_id}", status_code=404)
        return self.files[file_id]["data"]

    def delete_file(self, file_id):
        if self.fail_delete is not None:
            raise self.fail_delete
        if self.files.pop(file_id, None) is not None:
            self.deleted_files.append(file_id)


class FakeBlobStore:
    """In-memory stand-in for MinIOResource."""

    bucket = "test-artifacts"

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_put: Optional[Exception] = None
        self.fail_delete: Optional[Exception] = None
        self.deleted: list[str] = []

    def put(self, path, data, content_type):
        if self.fail_put is not None:
            raise self.fail_put
        self.objects[path] = (data, content_type)
        return self.url_for(path)

    def get(self, path):
        if path not in self.objects:
            raise RemoteTerminalError(f"Object '{path}' not found")
        return self.objects[path][0]

    def delete(self, path):
        if self.fail_delete is not None:
            raise self.fail_delete
        if self.objects.pop(path, None) is not None:
            self.deleted.append(path)

    def head(self, path):
        if path not in self.objects:
            return None
        data, content_type = self.objects[path]
        return {"size": len(data), "content_type": content_type, "etag": "etag"}

    def list(self, prefix):
        return [key for key in self.objects if key.startswith(prefix)]

    def url_for(self, path):
        return f"http://minio.test/{self.bucket}/{path}"


def assistant_message(
    message_id: str,
    text: str,
    created_at: datetime,
    run_id: Optional[str] = "run_1",
    annotations: Optional[list[dict]] = None,
    extra_blocks: Optional[list[dict]] = None,
) -> OutputMessage:
    """Build an assistant OutputMessage the way the provider returns it."""
    content = [
        {
            "type": "text",
            "text": {"value": text, "annotations": annotations or []},
        }
    ]
    content.extend(extra_blocks or [])
    return OutputMessage.from_api(
        {
            "id": message_id,
            "role": "assistant",
            "created_at": int(created_at.timestamp()),
            "run_id": run_id,
            "content": content,
        }
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def provider():
    """Fresh in-memory provider."""
    return FakeProvider()


@pytest.fixture
def blob_store():
    """Fresh in-memory blob store."""
    return FakeBlobStore()


@pytest.fixture
def metadata(tmp_path):
    """MetadataResource on a throwaway SQLite database with the schema created."""
    resource = MetadataResource(connection_string=f"sqlite:///{tmp_path / 'metadata.db'}")
    resource.create_schema()
    return resource


@pytest.fixture
def transient_error():
    return RemoteTransientError("HTTP 503 from store", status_code=503)


@pytest.fixture
def make_assistant_message():
    """Factory for provider-shaped assistant messages."""
    return assistant_message


@pytest.fixture
def lifecycle(provider, blob_store, metadata):
    """ArtifactLifecycleManager over the fakes and the SQLite metadata store."""
    return ArtifactLifecycleManager(provider, blob_store, metadata, max_upload_bytes=1024)
