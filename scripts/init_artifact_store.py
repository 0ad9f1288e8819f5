#!/usr/bin/env python3
# =============================================================================
# Artifact Store Bootstrap
# =============================================================================
# Creates the artifacts table and the artifact bucket. Safe to run
# repeatedly; both steps skip what already exists.
# =============================================================================

import logging
import sys

from libs.errors import ArtifactSyncError
from libs.models import MetadataDBSettings, MinIOSettings
from services.assistant.artifact_sync.resources import MetadataResource, MinIOResource

logger = logging.getLogger(__name__)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    db_settings = MetadataDBSettings()
    minio_settings = MinIOSettings()

    metadata = MetadataResource(connection_string=db_settings.connection_string)
    minio = MinIOResource(
        endpoint=minio_settings.endpoint,
        access_key=minio_settings.access_key,
        secret_key=minio_settings.secret_key,
        use_ssl=minio_settings.use_ssl,
        bucket=minio_settings.artifact_bucket,
        public_base_url=minio_settings.public_base_url,
    )

    try:
        metadata.create_schema()
        minio.ensure_bucket()
    except ArtifactSyncError as exc:
        logger.error(f"Bootstrap failed: {exc}")
        return 1

    logger.info("Artifact store ready")
    return 0


if __name__ == "__main__":
    sys.exit(main())
