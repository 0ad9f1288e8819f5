"""Integration test fixtures.

Live MinIO and metadata database, configured from the same environment
variables the services use. The provider stays in-memory (FakeProvider from
tests/conftest.py) so no API key is needed.
"""

import time

import pytest

from libs.errors import RemoteTransientError
from libs.models import MetadataDBSettings, MinIOSettings
from services.assistant.artifact_sync.resources import MetadataResource, MinIOResource


def _wait_until_ready(check, name: str, timeout: float = 30) -> None:
    deadline = time.time() + timeout
    while True:
        try:
            check()
            return
        except RemoteTransientError:
            if time.time() >= deadline:
                raise RuntimeError(f"{name} did not become ready within {timeout}s")
            time.sleep(1)


@pytest.fixture(scope="session")
def minio_settings() -> MinIOSettings:
    return MinIOSettings()


@pytest.fixture(scope="session")
def live_blob_store(minio_settings: MinIOSettings) -> MinIOResource:
    resource = MinIOResource(
        endpoint=minio_settings.endpoint,
        access_key=minio_settings.access_key,
        secret_key=minio_settings.secret_key,
        use_ssl=minio_settings.use_ssl,
        bucket=minio_settings.artifact_bucket,
        public_base_url=minio_settings.public_base_url,
    )
    _wait_until_ready(resource.ensure_bucket, "MinIO")
    return resource


@pytest.fixture(scope="session")
def live_metadata() -> MetadataResource:
    resource = MetadataResource(connection_string=MetadataDBSettings().connection_string)
    _wait_until_ready(resource.create_schema, "Metadata database")
    return resource
