# =============================================================================
# Assistant Artifact Sync Shared Libraries
# =============================================================================
# This package contains shared libraries for the artifact sync service.
# See individual modules for detailed documentation.
# =============================================================================

"""
Assistant artifact sync shared libraries.

Sub-packages and modules:
- models: Pydantic data models and settings
- errors: Error taxonomy
- blob_paths: Deterministic object keys and URL parsing
- content_types: Filename based MIME type inference
- content_cleaning: Provider markup stripping and source attribution
"""

__version__ = "0.1.0"
