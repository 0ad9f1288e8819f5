"""
Unit tests for MinIOResource.

Tests all methods with mocked minio.Minio client to avoid network calls.
"""

from unittest.mock import Mock, patch

import pytest
from minio.error import InvalidResponseError, S3Error, ServerError
from urllib3.exceptions import MaxRetryError

from libs.errors import RemoteTerminalError, RemoteTransientError
from services.assistant.artifact_sync.resources import MinIOResource


MINIO_PATH = "services.assistant.artifact_sync.resources.minio_resource.Minio"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def minio_resource():
    """Create a MinIOResource instance with test configuration."""
    return MinIOResource(
        endpoint="localhost:9000",
        access_key="test_access",
        secret_key="test_secret",
        use_ssl=False,
        bucket="test-artifacts",
    )


def s3_error(code, resource="threads/T1/a.txt"):
    return S3Error(
        code=code,
        message=f"{code} raised by test",
        resource=resource,
        request_id="test",
        host_id="test",
        response=Mock(status=404),
    )


# =============================================================================
# Test: get_client
# =============================================================================


def test_get_client(minio_resource):
    """Test that get_client creates a properly configured Minio client."""
    with patch(MINIO_PATH) as mock_minio:
        minio_resource.get_client()

        mock_minio.assert_called_once_with(
            "localhost:9000",
            access_key="test_access",
            secret_key="test_secret",
            secure=False,
        )


# =============================================================================
# Test: put / get
# =============================================================================


def test_put_returns_durable_url(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_client = mock_minio.return_value

        url = minio_resource.put("threads/T1/a.txt", b"hi", "text/plain")

        assert url == "http://localhost:9000/test-artifacts/threads/T1/a.txt"
        args, kwargs = mock_client.put_object.call_args
        assert args[0] == "test-artifacts"
        assert args[1] == "threads/T1/a.txt"
        assert args[2].read() == b"hi"
        assert kwargs["length"] == 2
        assert kwargs["content_type"] == "text/plain"


def test_put_connection_failure_is_transient(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.put_object.side_effect = MaxRetryError(None, "/x", "refused")

        with pytest.raises(RemoteTransientError, match="Blob put failed"):
            minio_resource.put("threads/T1/a.txt", b"hi", "text/plain")


def test_put_missing_bucket_is_terminal(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.put_object.side_effect = s3_error("NoSuchBucket", "test-artifacts")

        with pytest.raises(RemoteTerminalError):
            minio_resource.put("threads/T1/a.txt", b"hi", "text/plain")


@pytest.mark.parametrize(
    "error",
    [
        ServerError("server failed with HTTP status code 502", 502),
        InvalidResponseError(502, "text/html", "<html>Bad Gateway</html>"),
    ],
)
def test_put_gateway_errors_are_transient(minio_resource, error):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.put_object.side_effect = error

        with pytest.raises(RemoteTransientError, match="Blob put failed"):
            minio_resource.put("threads/T1/a.txt", b"hi", "text/plain")


@pytest.mark.parametrize("method", ["get", "delete", "head"])
def test_server_error_on_reads_and_deletes_is_transient(minio_resource, method):
    with patch(MINIO_PATH) as mock_minio:
        client = mock_minio.return_value
        error = ServerError("server failed with HTTP status code 503", 503)
        client.get_object.side_effect = error
        client.remove_object.side_effect = error
        client.stat_object.side_effect = error

        with pytest.raises(RemoteTransientError):
            getattr(minio_resource, method)("threads/T1/a.txt")


def test_list_invalid_response_is_transient(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.list_objects.side_effect = InvalidResponseError(
            500, "text/html", "<html>oops</html>"
        )

        with pytest.raises(RemoteTransientError):
            minio_resource.list("threads/T1/")


def test_get_reads_and_releases(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        response = Mock()
        response.read.return_value = b"content"
        mock_minio.return_value.get_object.return_value = response

        assert minio_resource.get("threads/T1/a.txt") == b"content"
        response.close.assert_called_once()
        response.release_conn.assert_called_once()


def test_get_missing_object_is_terminal(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.get_object.side_effect = s3_error("NoSuchKey")

        with pytest.raises(RemoteTerminalError, match="not found"):
            minio_resource.get("threads/T1/a.txt")


# =============================================================================
# Test: delete / head / list
# =============================================================================


def test_delete_missing_object_is_success(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.remove_object.side_effect = s3_error("NoSuchKey")

        minio_resource.delete("threads/T1/a.txt")


def test_delete_other_s3_error_is_transient(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.remove_object.side_effect = s3_error("InternalError")

        with pytest.raises(RemoteTransientError):
            minio_resource.delete("threads/T1/a.txt")


def test_head_existing_object(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.stat_object.return_value = Mock(
            size=42, content_type="text/csv", etag="abc"
        )

        assert minio_resource.head("threads/T1/a.csv") == {
            "size": 42,
            "content_type": "text/csv",
            "etag": "abc",
        }


def test_head_missing_object_returns_none(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.stat_object.side_effect = s3_error("NoSuchKey")

        assert minio_resource.head("threads/T1/a.csv") is None


def test_list_returns_keys(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        obj1 = Mock()
        obj1.object_name = "threads/T1/a.txt"
        obj2 = Mock()
        obj2.object_name = "threads/T1/gen-1/b.csv"
        mock_minio.return_value.list_objects.return_value = [obj1, obj2]

        assert minio_resource.list("threads/T1/") == ["threads/T1/a.txt", "threads/T1/gen-1/b.csv"]
        mock_minio.return_value.list_objects.assert_called_once_with(
            "test-artifacts", prefix="threads/T1/", recursive=True
        )


# =============================================================================
# Test: ensure_bucket / url_for
# =============================================================================


def test_ensure_bucket_creates_when_missing(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.bucket_exists.return_value = False

        minio_resource.ensure_bucket()

        mock_minio.return_value.make_bucket.assert_called_once_with("test-artifacts")


def test_ensure_bucket_existing(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        mock_minio.return_value.bucket_exists.return_value = True

        minio_resource.ensure_bucket()

        mock_minio.return_value.make_bucket.assert_not_called()


def test_url_for_public_base_url():
    resource = MinIOResource(
        endpoint="minio:9000",
        access_key="a",
        secret_key="s",
        bucket="artifacts",
        public_base_url="https://cdn.example/",
    )
    assert resource.url_for("threads/T1/a.txt") == "https://cdn.example/artifacts/threads/T1/a.txt"


def test_url_for_ssl_endpoint():
    resource = MinIOResource(endpoint="minio:9000", access_key="a", secret_key="s", use_ssl=True)
    assert resource.url_for("k") == "https://minio:9000/assistant-artifacts/k"
