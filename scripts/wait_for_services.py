#!/usr/bin/env python3
"""
Service health check script for integration tests.

Polls service endpoints until they become ready or timeout is reached.
Used by CI/CD pipelines and local development to ensure services are up before running tests.
"""

import os
import sys
import time
from typing import Callable

import httpx
from minio import Minio
from sqlalchemy import create_engine, text

from libs.models import MetadataDBSettings, MinIOSettings


# =============================================================================
# Health Check Functions
# =============================================================================


def check_minio(settings: MinIOSettings) -> bool:
    """Check if MinIO is ready and accessible."""
    try:
        client = Minio(
            settings.endpoint,
            access_key=settings.access_key,
            secret_key=settings.secret_key,
            secure=settings.use_ssl,
        )
        client.list_buckets()
        return True
    except Exception as e:
        print(f"  MinIO not ready: {e}")
        return False


def check_metadata_db(settings: MetadataDBSettings) -> bool:
    """Check if the metadata database accepts connections."""
    try:
        engine = create_engine(settings.connection_string, pool_pre_ping=True)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        engine.dispose()
        return True
    except Exception as e:
        print(f"  Metadata database not ready: {e}")
        return False


def check_dagster(port: int = 3000, timeout: int = 30) -> bool:
    """Check if Dagster GraphQL API is ready and the artifact jobs are loaded."""
    query = "{ workspaceOrError { ... on Workspace { locationEntries { name } } } }"
    try:
        response = httpx.post(
            f"http://localhost:{port}/graphql",
            json={"query": query},
            timeout=timeout,
        )
        if response.status_code == 200 and "errors" not in response.json():
            return True
        print(f"  Dagster GraphQL returned status {response.status_code}")
        return False
    except Exception as e:
        print(f"  Dagster not ready: {e}")
        return False


# =============================================================================
# Retry Logic
# =============================================================================


def wait_for_service(
    name: str,
    check_fn: Callable[[], bool],
    timeout: int = 60,
    interval: int = 2,
) -> bool:
    """
    Wait for a service to become ready.

    Args:
        name: Service name for logging
        check_fn: Function that returns True when service is ready
        timeout: Maximum time to wait in seconds
        interval: Time between checks in seconds

    Returns:
        True if service became ready, False if timeout reached
    """
    print(f"Waiting for {name}...")
    start_time = time.time()

    while time.time() - start_time < timeout:
        if check_fn():
            elapsed = time.time() - start_time
            print(f"[OK] {name} is ready (took {elapsed:.1f}s)")
            return True
        time.sleep(interval)

    elapsed = time.time() - start_time
    print(f"[FAIL] {name} failed to become ready after {elapsed:.1f}s")
    return False


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """
    Wait for services to become ready.

    WAIT_FOR_SERVICES selects a comma-separated subset of:
    minio, metadata, dagster (default: minio,metadata)
    """
    print("=" * 60)
    print("Service Health Check")
    print("=" * 60)

    try:
        minio_settings = MinIOSettings()
        db_settings = MetadataDBSettings()
    except Exception as e:
        print(f"ERROR: Failed to load settings: {e}")
        print("Make sure .env file exists or environment variables are set")
        sys.exit(1)

    dagster_port = int(os.getenv("DAGSTER_WEBSERVER_PORT", "3000"))
    timeout = int(os.getenv("SERVICE_WAIT_TIMEOUT", "60"))

    all_services = {
        "minio": ("MinIO", lambda: check_minio(minio_settings)),
        "metadata": ("Metadata database", lambda: check_metadata_db(db_settings)),
        "dagster": ("Dagster", lambda: check_dagster(dagster_port, timeout)),
    }

    services_env = os.getenv("WAIT_FOR_SERVICES", "minio,metadata").strip()
    requested = [s.strip().lower() for s in services_env.split(",") if s.strip()]
    invalid = [s for s in requested if s not in all_services]
    if invalid:
        print(f"ERROR: Unknown services: {', '.join(invalid)}")
        print(f"Valid services: {', '.join(all_services.keys())}")
        sys.exit(1)

    failed = []
    for key in requested:
        name, check_fn = all_services[key]
        if not wait_for_service(name, check_fn, timeout=timeout):
            failed.append(name)

    print("=" * 60)
    if failed:
        print(f"FAILED: {', '.join(failed)} did not become ready")
        sys.exit(1)
    print("SUCCESS: All services are ready")
    sys.exit(0)


if __name__ == "__main__":
    main()
