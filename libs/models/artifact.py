# =============================================================================
# Artifact Models Module
# =============================================================================
# Defines models for files known to the system:
# - ArtifactState: Lifecycle states for create/delete
# - ArtifactRecord: Persisted metadata row (relational store)
# - Artifact: Value returned by a successful create
# - ArtifactRef: Reference accepted by delete
# - TransientReference: Provider-private locator found in run output
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, Field, model_validator

from libs.blob_paths import normalize_filename

__all__ = [
    "Filename",
    "ArtifactState",
    "ArtifactRecord",
    "Artifact",
    "ArtifactRef",
    "TransientReference",
    "files_url",
    "PLACEHOLDER_ID_PREFIX",
]


def validate_filename(value: str) -> str:
    """
    Validate and normalise an artifact filename.

    Raises:
        ValueError: If the filename is empty or only a path
    """
    return normalize_filename(value)


Filename = Annotated[
    str,
    Field(..., description="Bare filename (no directory components)"),
    BeforeValidator(validate_filename),
]
"""Filename type. Strips directories and rejects empty names."""


PLACEHOLDER_ID_PREFIX = "gen-"
"""Id prefix of artifacts first registered from a locator in run output."""


def files_url(prefix: str, artifact_id: str) -> str:
    """
    Build the durable reference served for an artifact whose bytes are not in
    the blob store yet.

    >>> files_url("/files", "gen-T2-abc")
    '/files/gen-T2-abc'
    """
    return f"{prefix.rstrip('/')}/{artifact_id}"


class ArtifactState(str, Enum):
    """
    Lifecycle of an artifact across the three stores.

    Create path: pending -> provider_stored -> blob_stored -> committed.
    Delete path: committed -> blob_removing -> provider_removing -> purged.

    Only PENDING (placeholder awaiting byte transfer) and COMMITTED are ever
    persisted; the rest are transitions observed in logs.
    """

    PENDING = "pending"
    PROVIDER_STORED = "provider_stored"
    BLOB_STORED = "blob_stored"
    COMMITTED = "committed"
    BLOB_REMOVING = "blob_removing"
    PROVIDER_REMOVING = "provider_removing"
    PURGED = "purged"


class ArtifactRecord(BaseModel):
    """
    Metadata row describing an artifact.

    Attributes:
        id: Metadata id (natural primary key)
        external_file_id: Provider file id
        blob_path: Object key in the blob store
        blob_url: Durable URL of the blob
        filename: Bare filename
        content_type: MIME type
        byte_size: Size in bytes (0 until transferred for placeholders)
        thread_id: Owning conversation id
        message_id: Message/run the artifact was discovered in
        transient_locator: Provider-private locator it was discovered under
        state: Persisted lifecycle state
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    id: str = Field(..., min_length=1, description="Metadata id")
    external_file_id: Optional[str] = Field(None, description="Provider file id")
    blob_path: Optional[str] = Field(None, description="Object key in the blob store")
    blob_url: Optional[str] = Field(None, description="Durable blob URL")
    filename: Filename
    content_type: str = Field("application/octet-stream", description="MIME type")
    byte_size: int = Field(0, ge=0, description="Size in bytes")
    thread_id: str = Field(..., min_length=1, description="Owning thread id")
    message_id: Optional[str] = Field(None, description="Message the artifact came from")
    transient_locator: Optional[str] = Field(None, description="sandbox: locator")
    state: ArtifactState = Field(ArtifactState.COMMITTED, description="Persisted state")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp",
    )
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")

    def durable_url(self, files_url_prefix: str = "/files") -> str:
        """
        URL that replaces this artifact's locator in message text.

        Artifacts registered from a locator keep their /files/{id} reference
        after the transfer commits them, so a locator resolves to the same
        URL before and after. Other artifacts use their blob URL.
        """
        if self.blob_url and not self.is_placeholder_born:
            return self.blob_url
        return files_url(files_url_prefix, self.id)

    @property
    def is_pending(self) -> bool:
        return self.state == ArtifactState.PENDING

    @property
    def is_placeholder_born(self) -> bool:
        return self.id.startswith(PLACEHOLDER_ID_PREFIX)


class Artifact(BaseModel):
    """
    Artifact returned by a successful create.

    All three identities are populated and refer to the same logical file.
    """

    metadata_id: str = Field(..., min_length=1)
    external_file_id: str = Field(..., min_length=1)
    blob_path: str = Field(..., min_length=1)
    blob_url: str = Field(..., min_length=1)
    filename: Filename
    content_type: str
    byte_size: int = Field(..., ge=0)
    thread_id: str = Field(..., min_length=1)
    transient_locator: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: ArtifactRecord) -> "Artifact":
        """
        Build an Artifact from a committed record.

        Raises:
            ValueError: If the record is missing any store identity
        """
        if not (record.external_file_id and record.blob_path and record.blob_url):
            raise ValueError(f"Artifact record {record.id} is not fully committed")
        return cls(
            metadata_id=record.id,
            external_file_id=record.external_file_id,
            blob_path=record.blob_path,
            blob_url=record.blob_url,
            filename=record.filename,
            content_type=record.content_type,
            byte_size=record.byte_size,
            thread_id=record.thread_id,
            transient_locator=record.transient_locator,
            created_at=record.created_at,
        )


class ArtifactRef(BaseModel):
    """
    Reference to an artifact for deletion.

    Any one identifier is enough; the metadata record (if found) supplies the
    others.
    """

    metadata_id: Optional[str] = None
    external_file_id: Optional[str] = None
    blob_path: Optional[str] = None

    @model_validator(mode="after")
    def require_identifier(self) -> "ArtifactRef":
        if not (self.metadata_id or self.external_file_id or self.blob_path):
            raise ValueError("ArtifactRef needs metadata_id, external_file_id or blob_path")
        return self

    def describe(self) -> str:
        return self.metadata_id or self.external_file_id or self.blob_path or "?"


class TransientReference(BaseModel):
    """
    A provider-private locator found in run output.

    Attributes:
        locator: Raw locator (e.g. "sandbox:/mnt/data/report.csv")
        filename: Filename inferred from the locator
        external_file_id: Provider file id from the structured content, if known
        resolved_url: Durable URL once resolved
        artifact_id: Metadata id the locator resolved to
    """

    locator: str = Field(..., min_length=1)
    filename: str
    external_file_id: Optional[str] = None
    resolved_url: Optional[str] = None
    artifact_id: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_url is not None
