# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models and settings for the assistant artifact sync service.
# =============================================================================

"""
Data models for assistant artifact sync.

This library provides:
- Artifact models: records, references, lifecycle states
- Run models: status, options, tagged content segments, extracted output
- Search models: results and augmentation
- Configuration models
"""

__version__ = "0.1.0"

# Artifact models
from .artifact import (
    Filename,
    ArtifactState,
    ArtifactRecord,
    Artifact,
    ArtifactRef,
    TransientReference,
    files_url,
    PLACEHOLDER_ID_PREFIX,
)

# Run models
from .run import (
    RunStatus,
    TERMINAL_STATUSES,
    FAILED_STATUSES,
    Run,
    RunOptions,
    ResponseFormat,
    FileReference,
    TextSegment,
    FileReferenceSegment,
    UnknownSegment,
    ContentSegment,
    parse_content_segment,
    OutputMessage,
    ExtractedOutput,
)

# Search models
from .search import (
    SearchResult,
    SearchResponse,
    SearchSource,
    SearchAugmentation,
)

# Configuration models
from .config import (
    OpenAISettings,
    RunPollingSettings,
    MinIOSettings,
    MetadataDBSettings,
    TavilySettings,
    ArtifactSettings,
)

__all__ = [
    # Artifact models
    "Filename",
    "ArtifactState",
    "ArtifactRecord",
    "Artifact",
    "ArtifactRef",
    "TransientReference",
    "files_url",
    "PLACEHOLDER_ID_PREFIX",
    # Run models
    "RunStatus",
    "TERMINAL_STATUSES",
    "FAILED_STATUSES",
    "Run",
    "RunOptions",
    "ResponseFormat",
    "FileReference",
    "TextSegment",
    "FileReferenceSegment",
    "UnknownSegment",
    "ContentSegment",
    "parse_content_segment",
    "OutputMessage",
    "ExtractedOutput",
    # Search models
    "SearchResult",
    "SearchResponse",
    "SearchSource",
    "SearchAugmentation",
    # Configuration models
    "OpenAISettings",
    "RunPollingSettings",
    "MinIOSettings",
    "MetadataDBSettings",
    "TavilySettings",
    "ArtifactSettings",
]
