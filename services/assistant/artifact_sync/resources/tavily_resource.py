# =============================================================================
# Tavily Resource - Web Search
# =============================================================================
# Search used to augment outgoing messages with current web context.
# =============================================================================

import logging
from typing import Optional

import httpx
from dagster import ConfigurableResource
from pydantic import Field

from libs.errors import ValidationError
from libs.models import SearchResponse

from .http_errors import check_response, translate_transport_errors

__all__ = ["TavilyResource"]

logger = logging.getLogger(__name__)


class TavilyResource(ConfigurableResource):
    """
    Dagster resource for Tavily web search.

    Configuration matches TavilySettings from libs.models.config. Search is
    disabled when no api_key is configured.
    """

    api_key: Optional[str] = Field(None, description="API key; search disabled when unset")
    base_url: str = Field("https://api.tavily.com", description="API base URL")
    max_results: int = Field(5, description="Default number of results")
    search_depth: str = Field("advanced", description="basic or advanced")
    timeout_seconds: float = Field(30.0, description="Request timeout")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def get_client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout_seconds)

    def search(
        self,
        query: str,
        max_results: Optional[int] = None,
        depth: Optional[str] = None,
        include_answer: bool = True,
    ) -> SearchResponse:
        """
        Run a web search.

        Raises:
            ValidationError: If search is not configured or the query is empty
            RemoteTransientError / RemoteTerminalError: On provider failure
        """
        if not self.enabled:
            raise ValidationError("Web search is not configured (TAVILY_API_KEY unset)")
        if not query.strip():
            raise ValidationError("Search query must not be empty")

        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": depth or self.search_depth,
            "include_answer": include_answer,
            "max_results": max_results or self.max_results,
        }
        with translate_transport_errors("web_search"):
            with self.get_client() as client:
                response = client.post("/search", json=payload)
        check_response(response, "web_search")

        body = response.json()
        result = SearchResponse(
            query=body.get("query") or query,
            answer=body.get("answer"),
            results=body.get("results") or [],
        )
        logger.info(f"Web search returned {len(result.results)} results")
        return result
