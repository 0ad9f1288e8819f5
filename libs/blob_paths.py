# =============================================================================
# Blob Path Utilities
# =============================================================================
# Deterministic object keys for artifacts and helpers for parsing S3 paths
# and durable URLs back into bucket/key components.
# =============================================================================

"""
Blob path utilities for artifact storage.

This module provides functions for:
- Normalising user-supplied filenames into safe key segments
- Deriving the deterministic object key for an artifact
- Parsing s3:// paths into bucket and key components
- Recovering an object key from a durable blob URL
"""

import posixpath
import re
from typing import Optional, Tuple
from urllib.parse import unquote, urlparse

__all__ = [
    "normalize_filename",
    "artifact_blob_path",
    "parse_s3_path",
    "key_from_url",
]

# Characters that are awkward in object keys and URLs
_UNSAFE_SEGMENT_CHARS = re.compile(r"[\x00-\x1f\\]")


def normalize_filename(filename: str) -> str:
    """
    Normalise a filename for use as the last segment of an object key.

    Strips directory components (both '/' and '\\' separators), control
    characters and surrounding whitespace.

    Args:
        filename: Raw filename (e.g., "report.csv" or "/mnt/data/report.csv")

    Returns:
        Bare filename (e.g., "report.csv")

    Raises:
        ValueError: If nothing usable remains

    Examples:
        >>> normalize_filename("/mnt/data/report.csv")
        'report.csv'
        >>> normalize_filename("  notes (v2).txt ")
        'notes (v2).txt'
    """
    if not isinstance(filename, str):
        raise ValueError(f"Filename must be a string, got {type(filename).__name__}")

    name = filename.replace("\\", "/").strip()
    name = posixpath.basename(name)
    name = _UNSAFE_SEGMENT_CHARS.sub("", name).strip()

    if not name or name in (".", ".."):
        raise ValueError(f"Invalid filename: '{filename}'")

    return name


def _normalize_segment(value: str, label: str) -> str:
    segment = value.strip().strip("/")
    if not segment:
        raise ValueError(f"{label} cannot be empty")
    if "/" in segment or segment in (".", ".."):
        raise ValueError(f"Invalid {label}: '{value}'")
    return segment


def artifact_blob_path(
    thread_id: str, filename: str, artifact_id: Optional[str] = None
) -> str:
    """
    Derive the object key for an artifact.

    Uploaded files live at ``threads/{thread_id}/{filename}``. Files that
    were generated by the provider and transferred later are keyed by their
    local artifact id as well, so two generated files with the same name do
    not overwrite each other: ``threads/{thread_id}/{artifact_id}/{filename}``.

    Args:
        thread_id: Owning conversation/thread id
        filename: Artifact filename
        artifact_id: Optional local artifact id

    Returns:
        Object key

    Examples:
        >>> artifact_blob_path("T1", "a.txt")
        'threads/T1/a.txt'
        >>> artifact_blob_path("T2", "report.csv", "gen-T2-1a2b")
        'threads/T2/gen-T2-1a2b/report.csv'
    """
    thread_segment = _normalize_segment(thread_id, "thread id")
    name = normalize_filename(filename)

    if artifact_id:
        return f"threads/{thread_segment}/{_normalize_segment(artifact_id, 'artifact id')}/{name}"
    return f"threads/{thread_segment}/{name}"


def parse_s3_path(s3_path: str) -> Tuple[str, str]:
    """
    Parse S3 path into bucket and key components.

    Args:
        s3_path: Full S3 path (e.g., "s3://artifacts/threads/T1/a.txt")

    Returns:
        Tuple of (bucket, key) e.g., ("artifacts", "threads/T1/a.txt")

    Raises:
        ValueError: If path is not valid s3:// format or missing key
    """
    if not s3_path.startswith("s3://"):
        raise ValueError(
            f"Invalid S3 path format: '{s3_path}'. Must start with 's3://'"
        )

    path_without_prefix = s3_path[5:]
    parts = path_without_prefix.split("/", 1)

    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(
            f"Invalid S3 path format: '{s3_path}'. Expected 's3://bucket/key'"
        )

    return parts[0], parts[1]


def key_from_url(url: str, bucket: str) -> Optional[str]:
    """
    Recover the object key from a durable blob URL.

    Supports path-style URLs (``http://host:9000/{bucket}/{key}``) and
    ``s3://{bucket}/{key}`` paths. Returns None if the URL does not point
    into ``bucket``.

    Examples:
        >>> key_from_url("http://minio:9000/artifacts/threads/T1/a.txt", "artifacts")
        'threads/T1/a.txt'
        >>> key_from_url("http://elsewhere/other/a.txt", "artifacts") is None
        True
    """
    if not url:
        return None

    if url.startswith("s3://"):
        url_bucket, key = parse_s3_path(url)
        return key if url_bucket == bucket else None

    path = unquote(urlparse(url).path).lstrip("/")
    prefix = f"{bucket}/"
    if not path.startswith(prefix) or len(path) == len(prefix):
        return None
    return path[len(prefix):]
