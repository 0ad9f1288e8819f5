# =============================================================================
# Content Cleaning
# =============================================================================
# Strips provider-internal markup and echoed instructions from assistant
# replies, and attributes web search sources under the reply.
# =============================================================================

"""
Content cleaning for assistant replies.

File links are protected with placeholders before any pattern is applied,
so cleaning never damages a durable reference.
"""

import re
from typing import Iterable

from libs.models.search import SearchSource

__all__ = [
    "CITATION_PATTERN",
    "strip_citations",
    "strip_provider_markup",
    "clean_for_display",
    "has_search_artifacts",
    "format_sources",
    "attribute_sources",
]

# 【4:0†source】, 【12†report.pdf】
CITATION_PATTERN = re.compile(r"【[^】]*†[^】]*】")

# [sandbox:/mnt/data/x.csv] left behind once the link target is gone
_SANDBOX_REMNANT_PATTERN = re.compile(r"\[sandbox:[^\]]*\]")

_LINK_PATTERNS = [
    re.compile(r"\[[^\]\n]*\]\([^)\s]+\)"),
    re.compile(r"https?://[^\s)\]]+"),
    re.compile(r"(?<![\w/])/files/[A-Za-z0-9_.\-]+"),
]

_INSTRUCTION_PATTERNS = [
    re.compile(r"IMPORTANT:\s*Please provide a natural response[^.\x00]*\.", re.IGNORECASE),
    re.compile(r"Cite sources naturally[^.\x00]*but do not mention[^.\x00]*\.", re.IGNORECASE),
    re.compile(r"Focus on being helpful and accurate\.", re.IGNORECASE),
    re.compile(r"\[INTERNAL SEARCH CONTEXT[^\]]*\]:.*?\[END SEARCH CONTEXT\]", re.IGNORECASE | re.DOTALL),
    re.compile(r"Instructions: Please incorporate[^\n\x00]*\n?", re.IGNORECASE),
    re.compile(r"\[Note: Web search was requested[^\]\x00]*\]", re.IGNORECASE),
    re.compile(r"You have access to current web search results[^\n\x00]*\n?", re.IGNORECASE),
    re.compile(r"Please format your response as a valid JSON[^\n\x00]*\n?", re.IGNORECASE),
    re.compile(r"DO NOT include any text outside[^\n\x00]*\n?", re.IGNORECASE),
]

_SEARCH_ARTIFACT_PATTERNS = [
    re.compile(r"Web Summary:\s*[^\n\x00]*\n", re.IGNORECASE),
    re.compile(r"Search performed on:\s*[^\n\x00]*\n", re.IGNORECASE),
]

_SEARCH_ARTIFACT_MARKERS = [
    re.compile(r"\[INTERNAL SEARCH CONTEXT", re.IGNORECASE),
    re.compile(r"IMPORTANT: Please provide a natural response", re.IGNORECASE),
    re.compile(r"Cite sources naturally", re.IGNORECASE),
    re.compile(r"Focus on being helpful and accurate", re.IGNORECASE),
    re.compile(r"Web Summary:", re.IGNORECASE),
    re.compile(r"Current Web Information:", re.IGNORECASE),
]

_SOURCES_HEADER = "**Sources:**"


def strip_citations(text: str) -> str:
    """Remove provider citation markers such as 【4:0†source】."""
    return CITATION_PATTERN.sub("", text)


def strip_provider_markup(text: str) -> str:
    """Remove citation markers and bracketed sandbox remnants."""
    return _SANDBOX_REMNANT_PATTERN.sub("", strip_citations(text))


def _protect_links(text: str) -> tuple[str, dict[str, str]]:
    protected: dict[str, str] = {}

    def _stash(match: re.Match) -> str:
        placeholder = f"\x00LINK{len(protected)}\x00"
        protected[placeholder] = match.group(0)
        return placeholder

    for pattern in _LINK_PATTERNS:
        text = pattern.sub(_stash, text)
    return text, protected


def _restore_links(text: str, protected: dict[str, str]) -> str:
    # Newest first: a later match can contain an earlier placeholder
    for placeholder in reversed(list(protected)):
        text = text.replace(placeholder, protected[placeholder])
    return text


def clean_for_display(text: str) -> str:
    """
    Clean an assistant reply for display.

    - Protects file links (markdown links, URLs, /files/ references)
    - Removes echoed search instructions and search-context wrappers
    - Removes citation markers and sandbox remnants
    - Collapses runs of five or more newlines, trims the result
    """
    if not text:
        return ""

    cleaned, protected = _protect_links(text)

    for pattern in _INSTRUCTION_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    for pattern in _SEARCH_ARTIFACT_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = strip_provider_markup(cleaned)

    cleaned = re.sub(r"\n{5,}", "\n\n\n", cleaned)

    return _restore_links(cleaned, protected).strip()


def has_search_artifacts(text: str) -> bool:
    """True if the text still contains echoed search scaffolding."""
    return any(pattern.search(text) for pattern in _SEARCH_ARTIFACT_MARKERS)


def format_sources(sources: Iterable[SearchSource]) -> str:
    """
    Render the sources section appended under a reply.

    Returns an empty string when there are no sources.
    """
    lines = [
        f"{index}. [{source.title}]({source.url})"
        for index, source in enumerate(sources, start=1)
    ]
    if not lines:
        return ""
    return "\n\n---\n" + _SOURCES_HEADER + "\n" + "\n".join(lines)


def attribute_sources(reply: str, sources: Iterable[SearchSource]) -> str:
    """Append the sources section once; a reply that already has one is unchanged."""
    if _SOURCES_HEADER in reply:
        return reply
    return reply + format_sources(sources)
