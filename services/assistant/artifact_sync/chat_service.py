# =============================================================================
# Chat Service - Send Message Entry Point
# =============================================================================
# Optional web search, one run, reference resolution, display cleaning and
# source attribution for a single user message.
# =============================================================================

import logging
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from libs.content_cleaning import attribute_sources, clean_for_display
from libs.errors import ArtifactSyncError, ValidationError
from libs.models import (
    ArtifactSettings,
    ExtractedOutput,
    MetadataDBSettings,
    MinIOSettings,
    OpenAISettings,
    ResponseFormat,
    RunPollingSettings,
    RunStatus,
    SearchAugmentation,
    SearchSource,
    TavilySettings,
    TransientReference,
)

from .artifact_lifecycle import ArtifactLifecycleManager
from .reference_resolver import ReferenceResolver, ResolvedText, strip_locators
from .resources import MetadataResource, MinIOResource, OpenAIResource, TavilyResource
from .run_orchestrator import RunOrchestrator

__all__ = ["ChatReply", "ChatService", "build_chat_service"]

logger = logging.getLogger(__name__)


class ChatReply(BaseModel):
    """Reply to one user message."""

    reply: str
    conversation_id: str
    run_id: str
    message_id: Optional[str] = None
    status: RunStatus = RunStatus.COMPLETED
    search_sources: list[SearchSource] = Field(default_factory=list)
    file_references: list[TransientReference] = Field(default_factory=list)


class ChatService:
    """Sends user messages to the assistant and renders the reply."""

    def __init__(
        self,
        orchestrator: RunOrchestrator,
        resolver: ReferenceResolver,
        web_search: Optional[TavilyResource] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._resolver = resolver
        self._web_search = web_search

    def send_message(
        self,
        text: str,
        conversation_id: Optional[str] = None,
        *,
        web_search: bool = False,
        response_format: ResponseFormat = "text",
        file_ids: Sequence[str] = (),
    ) -> ChatReply:
        """
        Send a message and return the rendered reply.

        Run errors propagate with the conversation id attached. Search and
        reference-resolution failures degrade the reply instead of failing it.
        """
        if not text or not text.strip():
            raise ValidationError("Message text must not be empty")

        augmentation = self._search(text) if web_search else None

        output = self._orchestrator.execute(
            conversation_id,
            text,
            augmentation,
            file_ids=file_ids,
            response_format=response_format,
        )

        resolved = self._resolve(output)
        reply = clean_for_display(resolved.text)

        sources = augmentation.sources if augmentation else []
        if sources:
            reply = attribute_sources(reply, sources)

        return ChatReply(
            reply=reply,
            conversation_id=output.conversation_id,
            run_id=output.run_id,
            message_id=output.message_id,
            status=output.status,
            search_sources=sources,
            file_references=resolved.references,
        )

    def _search(self, text: str) -> Optional[SearchAugmentation]:
        if self._web_search is None or not self._web_search.enabled:
            logger.warning("Web search requested but not configured; sending without it")
            return None
        try:
            response = self._web_search.search(text)
        except ArtifactSyncError as exc:
            logger.warning(f"Web search failed, continuing without it: {exc}")
            return None
        return SearchAugmentation.from_response(response)

    def _resolve(self, output: ExtractedOutput) -> ResolvedText:
        try:
            return self._resolver.resolve(
                output.text,
                output.conversation_id,
                output.message_id,
                file_references=output.file_references,
            )
        except ArtifactSyncError as exc:
            logger.warning(
                f"Reference resolution failed for conversation {output.conversation_id}; "
                f"dropping file links: {exc}"
            )
            return ResolvedText(text=strip_locators(output.text))


def build_chat_service() -> ChatService:
    """Wire a ChatService from environment settings."""
    openai_settings = OpenAISettings()
    minio_settings = MinIOSettings()
    db_settings = MetadataDBSettings()
    tavily_settings = TavilySettings()
    artifact_settings = ArtifactSettings()

    provider = OpenAIResource(
        api_key=openai_settings.api_key,
        base_url=openai_settings.base_url,
        organization=openai_settings.organization,
        timeout_seconds=openai_settings.timeout_seconds,
        transport_retries=openai_settings.transport_retries,
    )
    blob_store = MinIOResource(
        endpoint=minio_settings.endpoint,
        access_key=minio_settings.access_key,
        secret_key=minio_settings.secret_key,
        use_ssl=minio_settings.use_ssl,
        bucket=minio_settings.artifact_bucket,
        public_base_url=minio_settings.public_base_url,
    )
    metadata = MetadataResource(connection_string=db_settings.connection_string)
    web_search = TavilyResource(
        api_key=tavily_settings.api_key,
        base_url=tavily_settings.base_url,
        max_results=tavily_settings.max_results,
        search_depth=tavily_settings.search_depth,
    )

    lifecycle = ArtifactLifecycleManager(
        provider,
        blob_store,
        metadata,
        files_url_prefix=artifact_settings.files_url_prefix,
        max_upload_bytes=artifact_settings.max_upload_bytes,
    )
    return ChatService(
        orchestrator=RunOrchestrator(provider, openai_settings.assistant_id, RunPollingSettings()),
        resolver=ReferenceResolver(lifecycle, metadata),
        web_search=web_search,
    )
