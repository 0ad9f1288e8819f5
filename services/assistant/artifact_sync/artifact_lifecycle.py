# =============================================================================
# Artifact Lifecycle - Create/Delete Across Three Stores
# =============================================================================
# Ordered saga over the provider file store, the blob store and the metadata
# store. Metadata is written last on create and removed first on delete, so
# a partially created artifact is never discoverable.
# =============================================================================

"""
Artifact lifecycle manager.

Create:  provider upload -> blob put -> metadata upsert
Delete:  metadata delete -> blob delete -> provider delete

Compensation failures never hide the primary outcome; they are logged and
attached as ConsistencyWarnings.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from libs.blob_paths import artifact_blob_path, key_from_url, normalize_filename
from libs.content_types import guess_content_type
from libs.errors import (
    ArtifactSyncError,
    ConsistencyWarning,
    RemoteTerminalError,
    ValidationError,
)
from libs.models import (
    PLACEHOLDER_ID_PREFIX,
    Artifact,
    ArtifactRecord,
    ArtifactRef,
    ArtifactState,
    files_url,
)

from .resources import MetadataResource, MinIOResource, OpenAIResource

__all__ = ["ArtifactLifecycleManager", "generate_placeholder_id", "DEFAULT_MAX_UPLOAD_BYTES"]

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024


def generate_placeholder_id(thread_id: str) -> str:
    """
    Locally generated id for an artifact discovered in run output.

    >>> generate_placeholder_id("thread_abc12345").startswith("gen-abc12345-")
    True
    """
    return f"{PLACEHOLDER_ID_PREFIX}{thread_id[-8:]}-{uuid.uuid4().hex[:12]}"


def _attempt(
    warnings: list[ConsistencyWarning],
    step: str,
    store: str,
    identifier: str,
    action: Callable[[], None],
) -> bool:
    """Run one best-effort cleanup action, recording a warning on failure."""
    try:
        action()
        return True
    except ArtifactSyncError as exc:
        warning = ConsistencyWarning(step, store, identifier, exc)
        logger.warning(f"Consistency warning: {warning.describe()}")
        warnings.append(warning)
        return False


class ArtifactLifecycleManager:
    """
    Creates and deletes artifacts across the provider, blob and metadata stores.

    Args:
        provider: Remote job client holding the provider copy of each file
        blob_store: Durable object storage for artifact bytes
        metadata: Relational metadata store (source of truth for existence)
        files_url_prefix: Prefix for /files/{id} durable references
        max_upload_bytes: Upload size ceiling
    """

    def __init__(
        self,
        provider: OpenAIResource,
        blob_store: MinIOResource,
        metadata: MetadataResource,
        files_url_prefix: str = "/files",
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._provider = provider
        self._blob_store = blob_store
        self._metadata = metadata
        self._files_url_prefix = files_url_prefix
        self._max_upload_bytes = max_upload_bytes

    @property
    def files_url_prefix(self) -> str:
        return self._files_url_prefix

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str],
        thread_id: str,
        *,
        message_id: Optional[str] = None,
        transient_locator: Optional[str] = None,
    ) -> Artifact:
        """
        Store an artifact in all three stores.

        Args:
            data: File bytes
            filename: File name (directories are stripped)
            content_type: MIME type; inferred from the filename when None
            thread_id: Owning conversation
            message_id: Message the file came from, if any
            transient_locator: Provider locator it was discovered under, if any

        Creating a filename that already exists in the thread replaces that
        artifact: its metadata id is reused, the blob is overwritten and the
        superseded provider file is removed.

        Returns:
            Artifact whose three identities are populated and consistent

        Raises:
            ValidationError: Empty filename/thread id or upload too large
            ArtifactSyncError: A store failed; ``step`` names which one and
                ``warnings`` lists failed compensations
        """
        name = self._validate(data, filename, thread_id)
        content_type = content_type or guess_content_type(name)
        try:
            blob_path = artifact_blob_path(thread_id, name)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        try:
            existing = self._metadata.find_artifact_by_thread_and_filename(thread_id, name)
        except ArtifactSyncError as exc:
            exc.step = "metadata_lookup"
            logger.error(f"Metadata lookup failed for {name}: {exc}")
            raise

        if existing is not None:
            logger.info(f"Replacing artifact {existing.id} ({name}) in thread {thread_id}")
        logger.info(f"Creating artifact {name} in thread {thread_id} ({len(data)} bytes)")

        # Step 1: provider upload
        try:
            external_file_id = self._provider.upload_file(data, name, content_type)
        except ArtifactSyncError as exc:
            exc.step = "provider_upload"
            logger.error(f"Provider upload failed for {name}: {exc}")
            raise
        logger.info(f"Artifact {name}: {ArtifactState.PROVIDER_STORED.value} as {external_file_id}")

        # Step 2: blob put
        try:
            blob_url = self._blob_store.put(blob_path, data, content_type)
        except ArtifactSyncError as exc:
            exc.step = "blob_put"
            logger.error(f"Blob put failed for {blob_path}: {exc}; removing provider file")
            _attempt(
                exc.warnings,
                "compensate_provider_file",
                "provider",
                external_file_id,
                lambda: self._provider.delete_file(external_file_id),
            )
            raise
        logger.info(f"Artifact {name}: {ArtifactState.BLOB_STORED.value} at {blob_path}")

        # Step 3: metadata upsert (makes the artifact discoverable)
        record = ArtifactRecord(
            id=existing.id if existing is not None else str(uuid.uuid4()),
            external_file_id=external_file_id,
            blob_path=blob_path,
            blob_url=blob_url,
            filename=name,
            content_type=content_type,
            byte_size=len(data),
            thread_id=thread_id,
            message_id=message_id or (existing.message_id if existing is not None else None),
            transient_locator=transient_locator
            or (existing.transient_locator if existing is not None else None),
            state=ArtifactState.COMMITTED,
        )
        try:
            record = self._metadata.upsert_artifact(record)
        except ArtifactSyncError as exc:
            exc.step = "metadata_upsert"
            logger.error(f"Metadata upsert failed for {name}: {exc}; removing blob and provider file")
            # Both compensations run regardless of each other's outcome
            if existing is not None and existing.blob_path == blob_path:
                # The blob was overwritten in place and the existing row still points at it
                logger.warning(
                    f"Keeping blob {blob_path}: artifact {existing.id} still references it"
                )
            else:
                _attempt(
                    exc.warnings,
                    "compensate_blob",
                    "blob",
                    blob_path,
                    lambda: self._blob_store.delete(blob_path),
                )
            _attempt(
                exc.warnings,
                "compensate_provider_file",
                "provider",
                external_file_id,
                lambda: self._provider.delete_file(external_file_id),
            )
            raise

        if existing is not None:
            self._remove_superseded(existing, record)
        logger.info(f"Artifact {record.id}: {ArtifactState.COMMITTED.value}")
        return Artifact.from_record(record)

    def _remove_superseded(self, previous: ArtifactRecord, current: ArtifactRecord) -> None:
        """Best-effort removal of store objects only the replaced row referenced."""
        warnings: list[ConsistencyWarning] = []
        if previous.blob_path and previous.blob_path != current.blob_path:
            _attempt(
                warnings, "delete_superseded_blob", "blob", previous.blob_path,
                lambda: self._blob_store.delete(previous.blob_path),
            )
        if previous.external_file_id and previous.external_file_id != current.external_file_id:
            _attempt(
                warnings, "delete_superseded_provider_file", "provider", previous.external_file_id,
                lambda: self._provider.delete_file(previous.external_file_id),
            )

    def _validate(self, data: bytes, filename: str, thread_id: str) -> str:
        if not thread_id or not thread_id.strip():
            raise ValidationError("thread_id must not be empty")
        try:
            name = normalize_filename(filename or "")
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if len(data) > self._max_upload_bytes:
            raise ValidationError(
                f"{name} is {len(data)} bytes; the limit is {self._max_upload_bytes} bytes"
            )
        return name

    # ------------------------------------------------------------------
    # Placeholders
    # ------------------------------------------------------------------

    def register_placeholder(
        self,
        thread_id: str,
        filename: str,
        locator: Optional[str],
        *,
        message_id: Optional[str] = None,
        external_file_id: Optional[str] = None,
    ) -> ArtifactRecord:
        """
        Record an artifact whose bytes are still only on the provider side.

        Only metadata is written. The record is PENDING and resolves to
        ``{files_url_prefix}/{id}`` until a transfer copies the bytes to the
        blob store under the same id.
        """
        if not thread_id or not thread_id.strip():
            raise ValidationError("thread_id must not be empty")
        try:
            name = normalize_filename(filename or "")
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        record = ArtifactRecord(
            id=generate_placeholder_id(thread_id),
            external_file_id=external_file_id,
            filename=name,
            content_type=guess_content_type(name),
            byte_size=0,
            thread_id=thread_id,
            message_id=message_id,
            transient_locator=locator,
            state=ArtifactState.PENDING,
        )
        try:
            record = self._metadata.upsert_artifact(record)
        except ArtifactSyncError as exc:
            exc.step = "metadata_upsert"
            raise
        logger.info(
            f"Registered placeholder {record.id} for {name} in thread {thread_id} "
            f"-> {files_url(self._files_url_prefix, record.id)}"
        )
        return record

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def _lookup(self, ref: ArtifactRef) -> Optional[ArtifactRecord]:
        # Each identifier is tried in turn until one matches a row
        if ref.metadata_id:
            record = self._metadata.get_artifact(ref.metadata_id)
            if record is not None:
                return record
        if ref.external_file_id:
            record = self._metadata.find_artifact_by_external_file_id(ref.external_file_id)
            if record is not None:
                return record
        if ref.blob_path:
            return self._metadata.find_artifact_by_blob_path(ref.blob_path)
        return None

    def delete(self, ref: ArtifactRef) -> list[ConsistencyWarning]:
        """
        Remove an artifact from all three stores.

        Metadata goes first, then the blob, then the provider file. Each step
        treats "already absent" as success. Only the metadata lookup and
        delete can raise; afterwards failures are returned as warnings.

        Returns:
            ConsistencyWarnings for store deletes that failed
        """
        try:
            record = self._lookup(ref)
            if record is not None:
                self._metadata.delete_artifact(record.id)
        except ArtifactSyncError as exc:
            exc.step = "metadata_delete"
            raise

        blob_path = ref.blob_path
        if record is not None:
            blob_path = record.blob_path or key_from_url(record.blob_url or "", self._blob_store.bucket) or blob_path
        external_file_id = (record.external_file_id if record else None) or ref.external_file_id

        if record is not None:
            logger.info(f"Artifact {record.id}: metadata removed")
        else:
            logger.info(f"No metadata for {ref.describe()}; sweeping remaining stores")

        warnings: list[ConsistencyWarning] = []
        if blob_path:
            logger.info(f"Artifact {ref.describe()}: {ArtifactState.BLOB_REMOVING.value}")
            _attempt(
                warnings, "delete_blob", "blob", blob_path,
                lambda: self._blob_store.delete(blob_path),
            )
        if external_file_id:
            logger.info(f"Artifact {ref.describe()}: {ArtifactState.PROVIDER_REMOVING.value}")
            _attempt(
                warnings, "delete_provider_file", "provider", external_file_id,
                lambda: self._provider.delete_file(external_file_id),
            )

        logger.info(
            f"Artifact {ref.describe()}: {ArtifactState.PURGED.value} "
            f"({len(warnings)} warnings)"
        )
        return warnings

    def get_record(self, artifact_id: str) -> ArtifactRecord:
        """
        Fetch a metadata record by id.

        Raises:
            RemoteTerminalError: If no such artifact exists
        """
        record = self._metadata.get_artifact(artifact_id)
        if record is None:
            raise RemoteTerminalError(f"Artifact {artifact_id} not found")
        return record

    def mark_committed(self, record: ArtifactRecord, *, blob_path: str, blob_url: str, byte_size: int) -> ArtifactRecord:
        """Persist a placeholder's transferred bytes location."""
        updated = record.model_copy(
            update={
                "blob_path": blob_path,
                "blob_url": blob_url,
                "byte_size": byte_size,
                "state": ArtifactState.COMMITTED,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        return self._metadata.upsert_artifact(updated)
