# =============================================================================
# Configuration Models Module
# =============================================================================
# Provides Pydantic Settings models for all service configurations:
# - OpenAISettings: Assistants API (conversations, runs, files)
# - RunPollingSettings: Fixed-interval run polling budget
# - MinIOSettings: S3-compatible object storage for artifact bytes
# - MetadataDBSettings: Relational metadata store
# - TavilySettings: Web search augmentation
# - ArtifactSettings: Durable reference and upload limits
# =============================================================================

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "OpenAISettings",
    "RunPollingSettings",
    "MinIOSettings",
    "MetadataDBSettings",
    "TavilySettings",
    "ArtifactSettings",
]

_SETTINGS_CONFIG = SettingsConfigDict(
    env_file=".env",
    case_sensitive=False,
    extra="ignore",  # Ignore unrelated env vars from shared .env files
    populate_by_name=True,
)


# =============================================================================
# OpenAI Settings (Remote Job Provider)
# =============================================================================

class OpenAISettings(BaseSettings):
    """
    Configuration for the OpenAI Assistants API.

    Maps environment variables:
    - OPENAI_API_KEY → api_key
    - OPENAI_ASSISTANT_ID → assistant_id
    - OPENAI_ORGANIZATION → organization
    - OPENAI_BASE_URL → base_url
    - OPENAI_TIMEOUT_SECONDS → timeout_seconds
    - OPENAI_TRANSPORT_RETRIES → transport_retries
    """

    api_key: str = Field(..., validation_alias="OPENAI_API_KEY", description="API key")
    assistant_id: str = Field(..., validation_alias="OPENAI_ASSISTANT_ID", description="Assistant used for runs")
    organization: Optional[str] = Field(None, validation_alias="OPENAI_ORGANIZATION", description="Organization header")
    base_url: str = Field("https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL", description="API base URL")
    timeout_seconds: float = Field(30.0, validation_alias="OPENAI_TIMEOUT_SECONDS", description="Per-request timeout")
    transport_retries: int = Field(3, validation_alias="OPENAI_TRANSPORT_RETRIES", description="Connection-level retries")

    model_config = _SETTINGS_CONFIG


# =============================================================================
# Run Polling Settings
# =============================================================================

class RunPollingSettings(BaseSettings):
    """
    Fixed-interval polling budget for runs.

    Web-search runs take longer on the provider side and get their own
    interval and ceiling.

    Maps environment variables:
    - OPENAI_POLL_INTERVAL → poll_interval_seconds
    - OPENAI_MAX_RETRIES → max_poll_attempts
    - OPENAI_WEB_SEARCH_POLL_INTERVAL → search_poll_interval_seconds
    - OPENAI_WEB_SEARCH_MAX_RETRIES → search_max_poll_attempts
    - RUN_CLOCK_SKEW_SECONDS → clock_skew_seconds
    """

    poll_interval_seconds: float = Field(1.0, ge=0, validation_alias="OPENAI_POLL_INTERVAL")
    max_poll_attempts: int = Field(300, ge=1, validation_alias="OPENAI_MAX_RETRIES")
    search_poll_interval_seconds: float = Field(2.0, ge=0, validation_alias="OPENAI_WEB_SEARCH_POLL_INTERVAL")
    search_max_poll_attempts: int = Field(900, ge=1, validation_alias="OPENAI_WEB_SEARCH_MAX_RETRIES")
    clock_skew_seconds: float = Field(2.0, ge=0, validation_alias="RUN_CLOCK_SKEW_SECONDS")

    model_config = _SETTINGS_CONFIG


# =============================================================================
# MinIO Settings (S3-Compatible Object Storage)
# =============================================================================

class MinIOSettings(BaseSettings):
    """
    Configuration for MinIO (S3-compatible object storage).

    Maps environment variables:
    - MINIO_ENDPOINT → endpoint
    - MINIO_ROOT_USER → access_key
    - MINIO_ROOT_PASSWORD → secret_key
    - MINIO_USE_SSL → use_ssl
    - MINIO_ARTIFACT_BUCKET → artifact_bucket
    - MINIO_PUBLIC_BASE_URL → public_base_url

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key (maps from MINIO_ROOT_USER)
        secret_key: Secret key (maps from MINIO_ROOT_PASSWORD)
        use_ssl: Whether to use SSL/TLS (default: False)
        artifact_bucket: Bucket holding artifact bytes
        public_base_url: Base for durable URLs; defaults to the endpoint
    """

    endpoint: str = Field(..., validation_alias="MINIO_ENDPOINT", description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., validation_alias="MINIO_ROOT_USER", description="Access key (maps from MINIO_ROOT_USER)")
    secret_key: str = Field(..., validation_alias="MINIO_ROOT_PASSWORD", description="Secret key (maps from MINIO_ROOT_PASSWORD)")
    use_ssl: bool = Field(False, validation_alias="MINIO_USE_SSL", description="Whether to use SSL/TLS")
    artifact_bucket: str = Field("assistant-artifacts", validation_alias="MINIO_ARTIFACT_BUCKET", description="Artifact bucket name")
    public_base_url: Optional[str] = Field(None, validation_alias="MINIO_PUBLIC_BASE_URL", description="Base URL for durable links")

    model_config = _SETTINGS_CONFIG


# =============================================================================
# Metadata Database Settings (Relational Store)
# =============================================================================

class MetadataDBSettings(BaseSettings):
    """
    Configuration for the relational metadata store.

    METADATA_DATABASE_URL wins when set (any SQLAlchemy URL, e.g. sqlite for
    local runs). Otherwise the URL is assembled from the POSTGRES_* variables.

    Maps environment variables:
    - METADATA_DATABASE_URL → url
    - POSTGRES_HOST → host
    - POSTGRES_PORT → port
    - POSTGRES_USER → user
    - POSTGRES_PASSWORD → password
    - POSTGRES_DB → database
    """

    url: Optional[str] = Field(None, validation_alias="METADATA_DATABASE_URL", description="Full SQLAlchemy URL")
    host: str = Field("postgres", validation_alias="POSTGRES_HOST", description="PostgreSQL host")
    port: int = Field(5432, validation_alias="POSTGRES_PORT", description="PostgreSQL port")
    user: str = Field("postgres", validation_alias="POSTGRES_USER", description="PostgreSQL user")
    password: str = Field("postgres", validation_alias="POSTGRES_PASSWORD", description="PostgreSQL password")
    database: str = Field("assistant_artifacts", validation_alias="POSTGRES_DB", description="Database name")

    model_config = _SETTINGS_CONFIG

    @property
    def connection_string(self) -> str:
        """
        SQLAlchemy connection URL.

        Format: postgresql+psycopg://[user]:[password]@[host]:[port]/[database]
        """
        if self.url:
            return self.url
        return (
            f"postgresql+psycopg://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}"
        )


# =============================================================================
# Tavily Settings (Web Search)
# =============================================================================

class TavilySettings(BaseSettings):
    """
    Configuration for Tavily web search.

    Maps environment variables:
    - TAVILY_API_KEY → api_key
    - TAVILY_BASE_URL → base_url
    - TAVILY_MAX_RESULTS → max_results
    - TAVILY_SEARCH_DEPTH → search_depth
    """

    api_key: Optional[str] = Field(None, validation_alias="TAVILY_API_KEY", description="API key; search disabled when unset")
    base_url: str = Field("https://api.tavily.com", validation_alias="TAVILY_BASE_URL")
    max_results: int = Field(5, ge=1, validation_alias="TAVILY_MAX_RESULTS")
    search_depth: str = Field("advanced", validation_alias="TAVILY_SEARCH_DEPTH")

    model_config = _SETTINGS_CONFIG


# =============================================================================
# Artifact Settings
# =============================================================================

class ArtifactSettings(BaseSettings):
    """
    Artifact handling knobs.

    Maps environment variables:
    - FILES_URL_PREFIX → files_url_prefix
    - MAX_UPLOAD_BYTES → max_upload_bytes
    - LOCATOR_TTL_HOURS → locator_ttl_hours
    """

    files_url_prefix: str = Field("/files", validation_alias="FILES_URL_PREFIX")
    max_upload_bytes: int = Field(100 * 1024 * 1024, ge=1, validation_alias="MAX_UPLOAD_BYTES")
    locator_ttl_hours: int = Field(48, ge=1, validation_alias="LOCATOR_TTL_HOURS")

    model_config = _SETTINGS_CONFIG
