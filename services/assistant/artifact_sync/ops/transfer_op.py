# =============================================================================
# Transfer Op - Copy Placeholder Bytes to the Blob Store
# =============================================================================
# Runs FileTransfer for one PENDING artifact discovered in run output.
# =============================================================================

from dagster import In, OpExecutionContext, op

from ..artifact_lifecycle import ArtifactLifecycleManager
from ..file_transfer import FileTransfer


def _transfer_artifact(openai, minio, metadata, artifact_id: str, log) -> dict:
    """
    Core logic for transferring one artifact.

    This function is extracted for easier unit testing without Dagster context.

    Args:
        openai: OpenAIResource instance
        minio: MinIOResource instance
        metadata: MetadataResource instance
        artifact_id: Metadata id of the placeholder
        log: Logger instance (context.log)

    Returns:
        Summary dict with artifact_id, blob_path, byte_size and state
    """
    log.info(f"Transferring artifact {artifact_id}")

    lifecycle = ArtifactLifecycleManager(openai, minio, metadata)
    record = FileTransfer(lifecycle, openai, minio).transfer(artifact_id)

    log.info(f"Artifact {artifact_id} is {record.state.value} at {record.blob_path}")
    return {
        "artifact_id": record.id,
        "blob_path": record.blob_path,
        "byte_size": record.byte_size,
        "state": record.state.value,
    }


@op(
    ins={"artifact_id": In(dagster_type=str)},
    required_resource_keys={"openai", "minio", "metadata"},
)
def transfer_artifact(context: OpExecutionContext, artifact_id: str) -> dict:
    """
    Copy a placeholder artifact's bytes from the provider into MinIO.

    The artifact id is passed as an op input via run config by
    pending_transfer_sensor.
    """
    return _transfer_artifact(
        openai=context.resources.openai,
        minio=context.resources.minio,
        metadata=context.resources.metadata,
        artifact_id=artifact_id,
        log=context.log,
    )
