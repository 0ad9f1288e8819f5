# =============================================================================
# Web Search Models Module
# =============================================================================
# Defines models for search augmentation of assistant messages:
# - SearchResult / SearchResponse: Raw results from the search provider
# - SearchSource: Source attributed under the final reply
# - SearchAugmentation: Context appended to the outgoing message
# =============================================================================

from typing import Optional

from pydantic import BaseModel, Field

__all__ = [
    "SearchResult",
    "SearchResponse",
    "SearchSource",
    "SearchAugmentation",
    "SNIPPET_LENGTH",
]

SNIPPET_LENGTH = 200


class SearchResult(BaseModel):
    """One hit returned by the search provider."""

    title: str = ""
    url: str
    content: str = ""
    score: Optional[float] = None
    published_date: Optional[str] = None


class SearchResponse(BaseModel):
    """Search provider response."""

    query: str
    answer: Optional[str] = None
    results: list[SearchResult] = Field(default_factory=list)


class SearchSource(BaseModel):
    """A source attributed under the assistant reply."""

    title: str
    url: str
    snippet: str = ""
    relevance_score: float = 0.0


class SearchAugmentation(BaseModel):
    """
    Search context concatenated into the outgoing message body.

    Attributes:
        context_text: Text appended after the user's message
        instructions: Additional run instructions, if any
        sources: Sources to attribute under the reply
    """

    context_text: str
    instructions: Optional[str] = None
    sources: list[SearchSource] = Field(default_factory=list)

    @classmethod
    def from_response(cls, response: SearchResponse) -> Optional["SearchAugmentation"]:
        """
        Build augmentation from a search response.

        Returns None when the search produced no results.
        """
        if not response.results:
            return None

        lines: list[str] = []
        if response.answer:
            lines.append("Web Search Context:")
            lines.append(response.answer)
            lines.append("")

        lines.append("Sources:")
        sources: list[SearchSource] = []
        for index, result in enumerate(response.results, start=1):
            snippet = result.content[:SNIPPET_LENGTH]
            lines.append(f"{index}. {result.title}: {snippet}...")
            sources.append(
                SearchSource(
                    title=result.title or result.url,
                    url=result.url,
                    snippet=snippet,
                    relevance_score=result.score if result.score is not None else float(index),
                )
            )

        return cls(
            context_text="\n".join(lines),
            instructions="Use the web search context included in the message when it is relevant and cite sources naturally.",
            sources=sources,
        )
