"""Dagster Resources - External Service Connections."""

from .metadata_resource import MetadataResource
from .minio_resource import MinIOResource
from .openai_resource import OpenAIResource
from .tavily_resource import TavilyResource

__all__ = [
    "MetadataResource",
    "MinIOResource",
    "OpenAIResource",
    "TavilyResource",
]
