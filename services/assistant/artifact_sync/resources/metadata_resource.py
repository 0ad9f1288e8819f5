# =============================================================================
# Metadata Resource - Relational Artifact Metadata Store
# =============================================================================
# Source of truth for "does this artifact exist". One row per artifact in the
# `artifacts` table; written last on create, first on delete.
# =============================================================================

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional

from dagster import ConfigurableResource
from pydantic import Field
from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from libs.errors import RemoteTerminalError, RemoteTransientError
from libs.models import ArtifactRecord, ArtifactState

__all__ = ["MetadataResource", "artifacts_table", "metadata_obj"]

logger = logging.getLogger(__name__)

metadata_obj = MetaData()

artifacts_table = Table(
    "artifacts",
    metadata_obj,
    Column("id", String(128), primary_key=True),
    Column("external_file_id", String(128), nullable=True, index=True),
    Column("blob_path", String(1024), nullable=True, index=True),
    Column("blob_url", String(2048), nullable=True),
    Column("filename", String(512), nullable=False),
    Column("content_type", String(255), nullable=False),
    Column("byte_size", BigInteger, nullable=False, default=0),
    Column("thread_id", String(128), nullable=False, index=True),
    Column("message_id", String(128), nullable=True),
    Column("transient_locator", String(2048), nullable=True, index=True),
    Column("state", String(32), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=True),
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every stored value is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MetadataResource(ConfigurableResource):
    """
    Dagster resource for the artifact metadata table.

    Backed by SQLAlchemy Core, so any SQLAlchemy URL works (PostgreSQL in
    deployment, SQLite in tests).

    Configuration matches MetadataDBSettings from libs.models.config.

    Attributes:
        connection_string: SQLAlchemy database URL
    """

    connection_string: str = Field(..., description="SQLAlchemy database URL")

    # Private attributes for lazy engine initialization
    _engine: Optional[Engine] = None

    def get_engine(self) -> Engine:
        """
        Get or create the SQLAlchemy engine.

        Uses connection pooling with pre-ping validation.
        """
        if self._engine is None:
            self._engine = create_engine(
                self.connection_string,
                pool_pre_ping=True,
                echo=False,
            )
        return self._engine

    @contextmanager
    def _translate_errors(self, operation: str) -> Generator[None, None, None]:
        try:
            yield
        except OperationalError as exc:
            raise RemoteTransientError(f"Metadata {operation} failed: {exc}") from exc
        except IntegrityError as exc:
            raise RemoteTerminalError(f"Metadata {operation} conflict: {exc}") from exc
        except SQLAlchemyError as exc:
            if getattr(exc, "connection_invalidated", False):
                raise RemoteTransientError(f"Metadata {operation} failed: {exc}") from exc
            raise RemoteTerminalError(f"Metadata {operation} failed: {exc}") from exc

    def create_schema(self) -> None:
        """Create the artifacts table and its indexes if missing."""
        with self._translate_errors("create_schema"):
            metadata_obj.create_all(self.get_engine())
        logger.info("Metadata schema ready")

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_row(record: ArtifactRecord) -> dict:
        row = record.model_dump()
        row["state"] = record.state.value
        return row

    @staticmethod
    def _from_row(row) -> ArtifactRecord:
        data = dict(row._mapping)
        data["created_at"] = _as_utc(data["created_at"])
        data["updated_at"] = _as_utc(data["updated_at"])
        return ArtifactRecord(**data)

    def _fetch_one(self, operation: str, statement) -> Optional[ArtifactRecord]:
        with self._translate_errors(operation):
            with self.get_engine().connect() as conn:
                row = conn.execute(statement).first()
        return self._from_row(row) if row is not None else None

    def _fetch_all(self, operation: str, statement) -> list[ArtifactRecord]:
        with self._translate_errors(operation):
            with self.get_engine().connect() as conn:
                rows = conn.execute(statement).fetchall()
        return [self._from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_artifact(self, record: ArtifactRecord) -> ArtifactRecord:
        """
        Insert or replace the row for record.id.

        Update first, insert when nothing matched. A concurrent insert of the
        same id surfaces as IntegrityError and is retried once as an update
        (last write wins).

        Returns:
            The record as written (updated_at set)
        """
        record = record.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        row = self._to_row(record)
        by_id = update(artifacts_table).where(artifacts_table.c.id == record.id).values(**row)

        try:
            with self._translate_errors("upsert"):
                with self.get_engine().begin() as conn:
                    if conn.execute(by_id).rowcount == 0:
                        conn.execute(insert(artifacts_table).values(**row))
        except RemoteTerminalError as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            logger.warning(f"Concurrent insert for artifact {record.id}; retrying as update")
            with self._translate_errors("upsert"):
                with self.get_engine().begin() as conn:
                    updated = conn.execute(by_id).rowcount
            if updated == 0:
                raise RemoteTerminalError(
                    f"Metadata upsert for artifact {record.id} conflicted and no row to update"
                ) from exc

        return record

    def delete_artifact(self, artifact_id: str) -> bool:
        """
        Delete a row by id.

        Returns:
            True if a row was deleted, False if it was already absent
        """
        with self._translate_errors("delete"):
            with self.get_engine().begin() as conn:
                result = conn.execute(
                    delete(artifacts_table).where(artifacts_table.c.id == artifact_id)
                )
        return result.rowcount > 0

    def clear_stale_locators(self, older_than: datetime) -> int:
        """
        Clear transient_locator on rows created before a cutoff.

        Provider sandbox locators stop resolving after the provider expires
        the conversation's sandbox; the durable URL stays.

        Returns:
            Number of rows updated
        """
        statement = (
            update(artifacts_table)
            .where(artifacts_table.c.transient_locator.is_not(None))
            .where(artifacts_table.c.created_at < older_than)
            .values(transient_locator=None, updated_at=datetime.now(timezone.utc))
        )
        with self._translate_errors("clear_stale_locators"):
            with self.get_engine().begin() as conn:
                result = conn.execute(statement)
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_artifact(self, artifact_id: str) -> Optional[ArtifactRecord]:
        return self._fetch_one(
            "get",
            select(artifacts_table).where(artifacts_table.c.id == artifact_id),
        )

    def find_artifact_by_external_file_id(self, external_file_id: str) -> Optional[ArtifactRecord]:
        return self._fetch_one(
            "find_by_external_file_id",
            select(artifacts_table)
            .where(artifacts_table.c.external_file_id == external_file_id)
            .order_by(artifacts_table.c.created_at.desc()),
        )

    def find_artifact_by_blob_path(self, blob_path: str) -> Optional[ArtifactRecord]:
        return self._fetch_one(
            "find_by_blob_path",
            select(artifacts_table)
            .where(artifacts_table.c.blob_path == blob_path)
            .order_by(artifacts_table.c.created_at.desc()),
        )

    def find_artifact_by_locator(self, thread_id: str, locator: str) -> Optional[ArtifactRecord]:
        """Most recent record of a thread discovered under a transient locator."""
        return self._fetch_one(
            "find_by_locator",
            select(artifacts_table)
            .where(artifacts_table.c.thread_id == thread_id)
            .where(artifacts_table.c.transient_locator == locator)
            .order_by(artifacts_table.c.created_at.desc()),
        )

    def find_artifact_by_thread_and_filename(
        self, thread_id: str, filename: str
    ) -> Optional[ArtifactRecord]:
        """
        Most recent record with this filename in a thread.

        Duplicates can exist when two writers raced; they are logged and the
        newest one wins.
        """
        records = self._fetch_all(
            "find_by_thread_and_filename",
            select(artifacts_table)
            .where(artifacts_table.c.thread_id == thread_id)
            .where(artifacts_table.c.filename == filename)
            .order_by(artifacts_table.c.created_at.desc()),
        )
        if len(records) > 1:
            logger.warning(
                f"{len(records)} artifacts named {filename} in thread {thread_id}; "
                f"using {records[0].id}"
            )
        return records[0] if records else None

    def list_thread_locators(self, thread_id: str) -> list[ArtifactRecord]:
        """Records of a thread that still carry a transient locator, oldest first."""
        return self._fetch_all(
            "list_thread_locators",
            select(artifacts_table)
            .where(artifacts_table.c.thread_id == thread_id)
            .where(artifacts_table.c.transient_locator.is_not(None))
            .order_by(artifacts_table.c.created_at.asc()),
        )

    def list_pending_transfers(self, limit: int = 50) -> list[ArtifactRecord]:
        """Placeholder records whose bytes still need to be copied to the blob store."""
        return self._fetch_all(
            "list_pending_transfers",
            select(artifacts_table)
            .where(artifacts_table.c.state == ArtifactState.PENDING.value)
            .where(artifacts_table.c.external_file_id.is_not(None))
            .order_by(artifacts_table.c.created_at.asc())
            .limit(limit),
        )
