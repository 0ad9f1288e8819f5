# =============================================================================
# MinIO Resource - S3-Compatible Object Storage Operations
# =============================================================================
# Durable blob store for artifact bytes. Objects live under
# threads/{thread_id}/... in a single artifact bucket.
# =============================================================================

import io
import logging
from typing import Optional

from dagster import ConfigurableResource
from minio import Minio
from minio.error import MinioException, S3Error
from pydantic import Field
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from libs.errors import RemoteTerminalError, RemoteTransientError

__all__ = ["MinIOResource"]

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "NoSuchObject"}
_TERMINAL_CODES = {"NoSuchBucket", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"}


class MinIOResource(ConfigurableResource):
    """
    Dagster resource for MinIO (S3-compatible object storage) operations.

    Provides methods for:
    - Putting, getting and deleting artifact bytes
    - Checking existence and listing a thread's objects
    - Building durable URLs for stored objects

    Configuration matches MinIOSettings from libs.models.config.

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key for authentication
        secret_key: Secret key for authentication
        use_ssl: Whether to use SSL/TLS (default: False)
        bucket: Artifact bucket name (default: "assistant-artifacts")
        public_base_url: Base for durable URLs; defaults to the endpoint
    """

    endpoint: str = Field(..., description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., description="Access key for authentication")
    secret_key: str = Field(..., description="Secret key for authentication")
    use_ssl: bool = Field(False, description="Whether to use SSL/TLS")
    bucket: str = Field("assistant-artifacts", description="Artifact bucket name")
    public_base_url: Optional[str] = Field(None, description="Base URL for durable links")

    def get_client(self) -> Minio:
        """
        Create a MinIO client instance.

        Returns:
            Configured Minio client
        """
        return Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl,
        )

    def _translate(self, exc: Exception, operation: str, path: str) -> Exception:
        message = f"Blob {operation} failed for '{path}' in bucket '{self.bucket}': {exc}"
        if isinstance(exc, S3Error) and exc.code in _TERMINAL_CODES:
            return RemoteTerminalError(message)
        return RemoteTransientError(message)

    def ensure_bucket(self) -> None:
        """Create the artifact bucket if it does not exist."""
        client = self.get_client()
        try:
            if not client.bucket_exists(self.bucket):
                client.make_bucket(self.bucket)
                logger.info(f"Created bucket {self.bucket}")
        except (MinioException, Urllib3HTTPError) as exc:
            raise self._translate(exc, "ensure_bucket", self.bucket) from exc

    def put(self, path: str, data: bytes, content_type: str) -> str:
        """
        Store bytes at a path, overwriting any existing object.

        Args:
            path: Object key (e.g. "threads/thread_abc/report.csv")
            data: Object bytes
            content_type: MIME type stored with the object

        Returns:
            Durable URL of the stored object
        """
        client = self.get_client()
        try:
            client.put_object(
                self.bucket,
                path,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except (MinioException, Urllib3HTTPError) as exc:
            raise self._translate(exc, "put", path) from exc
        return self.url_for(path)

    def get(self, path: str) -> bytes:
        """
        Read an object's bytes.

        Raises:
            RemoteTerminalError: If the object does not exist
            RemoteTransientError: For other storage failures
        """
        client = self.get_client()
        response = None
        try:
            response = client.get_object(self.bucket, path)
            return response.read()
        except S3Error as exc:
            if exc.code in _MISSING_CODES:
                raise RemoteTerminalError(
                    f"Object '{path}' not found in bucket '{self.bucket}'"
                ) from exc
            raise self._translate(exc, "get", path) from exc
        except (MinioException, Urllib3HTTPError) as exc:
            raise self._translate(exc, "get", path) from exc
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def delete(self, path: str) -> None:
        """
        Delete an object. A missing object is not an error.
        """
        client = self.get_client()
        try:
            client.remove_object(self.bucket, path)
        except S3Error as exc:
            if exc.code in _MISSING_CODES:
                logger.info(f"Blob {path} already deleted")
                return
            raise self._translate(exc, "delete", path) from exc
        except (MinioException, Urllib3HTTPError) as exc:
            raise self._translate(exc, "delete", path) from exc

    def head(self, path: str) -> Optional[dict]:
        """
        Return size and content type of an object, or None if it is absent.
        """
        client = self.get_client()
        try:
            stat = client.stat_object(self.bucket, path)
        except S3Error as exc:
            if exc.code in _MISSING_CODES:
                return None
            raise self._translate(exc, "head", path) from exc
        except (MinioException, Urllib3HTTPError) as exc:
            raise self._translate(exc, "head", path) from exc
        return {"size": stat.size, "content_type": stat.content_type, "etag": stat.etag}

    def list(self, prefix: str) -> list[str]:
        """List object keys under a prefix."""
        client = self.get_client()
        try:
            objects = client.list_objects(self.bucket, prefix=prefix, recursive=True)
            return [obj.object_name for obj in objects]
        except (MinioException, Urllib3HTTPError) as exc:
            raise self._translate(exc, "list", prefix) from exc

    def url_for(self, path: str) -> str:
        """
        Durable URL for an object key.

        Uses public_base_url when configured, otherwise the path-style URL on
        the MinIO endpoint.
        """
        if self.public_base_url:
            base = self.public_base_url.rstrip("/")
        else:
            scheme = "https" if self.use_ssl else "http"
            base = f"{scheme}://{self.endpoint}"
        return f"{base}/{self.bucket}/{path}"
