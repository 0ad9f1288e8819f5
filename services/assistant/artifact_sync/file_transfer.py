# =============================================================================
# File Transfer - Deferred Byte Copy for Placeholder Artifacts
# =============================================================================
# Copies a PENDING artifact's bytes from the provider to the blob store and
# commits the metadata record under the same id.
# =============================================================================

import logging

from libs.blob_paths import artifact_blob_path, normalize_filename
from libs.content_types import guess_content_type
from libs.errors import ArtifactSyncError, ConsistencyWarning, ValidationError
from libs.models import ArtifactRecord, ArtifactState

from .artifact_lifecycle import ArtifactLifecycleManager
from .resources import MinIOResource, OpenAIResource

__all__ = ["FileTransfer"]

logger = logging.getLogger(__name__)


class FileTransfer:
    """
    Transfers placeholder artifacts into the blob store.

    Blob path is ``threads/{thread_id}/{artifact_id}/{filename}`` so two
    placeholders with the same filename never overwrite each other.
    """

    def __init__(
        self,
        lifecycle: ArtifactLifecycleManager,
        provider: OpenAIResource,
        blob_store: MinIOResource,
    ) -> None:
        self._lifecycle = lifecycle
        self._provider = provider
        self._blob_store = blob_store

    def transfer(self, artifact_id: str) -> ArtifactRecord:
        """
        Copy one placeholder's bytes and commit it.

        Idempotent: a committed record is returned unchanged.

        Raises:
            RemoteTerminalError: Unknown artifact id
            ValidationError: Record has no provider file id to copy from
            ArtifactSyncError: A store failed; ``step`` names which one
        """
        record = self._lifecycle.get_record(artifact_id)
        if record.state == ArtifactState.COMMITTED:
            logger.info(f"Artifact {artifact_id} already committed; nothing to transfer")
            return record
        if not record.external_file_id:
            raise ValidationError(
                f"Artifact {artifact_id} has no provider file id to transfer from",
                step="provider_download",
            )

        try:
            info = self._provider.get_file(record.external_file_id)
            data = self._provider.get_file_content(record.external_file_id)
        except ArtifactSyncError as exc:
            exc.step = "provider_download"
            raise

        filename = record.filename
        provider_name = info.get("filename")
        if provider_name:
            try:
                filename = normalize_filename(provider_name)
            except ValueError:
                logger.warning(f"Provider filename {provider_name!r} unusable; keeping {filename}")

        content_type = guess_content_type(filename)
        blob_path = artifact_blob_path(record.thread_id, filename, artifact_id=record.id)

        try:
            blob_url = self._blob_store.put(blob_path, data, content_type)
        except ArtifactSyncError as exc:
            exc.step = "blob_put"
            raise

        try:
            committed = self._lifecycle.mark_committed(
                record.model_copy(update={"filename": filename, "content_type": content_type}),
                blob_path=blob_path,
                blob_url=blob_url,
                byte_size=len(data),
            )
        except ArtifactSyncError as exc:
            exc.step = "metadata_upsert"
            try:
                self._blob_store.delete(blob_path)
            except ArtifactSyncError as cleanup_exc:
                warning = ConsistencyWarning("compensate_blob", "blob", blob_path, cleanup_exc)
                logger.warning(f"Consistency warning: {warning.describe()}")
                exc.warnings.append(warning)
            raise

        logger.info(
            f"Transferred artifact {artifact_id} ({len(data)} bytes) to {blob_path}"
        )
        return committed
