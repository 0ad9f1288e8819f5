# =============================================================================
# Run Models Module
# =============================================================================
# Defines the models for one remote assistant invocation and its output:
# - RunStatus / Run / RunOptions
# - Content segments (tagged variants) and OutputMessage
# - ExtractedOutput returned by the orchestrator
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

__all__ = [
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
]


class RunStatus(str, Enum):
    """Status of a remote run, plus the local TIMEOUT state."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.CANCELLED,
        RunStatus.EXPIRED,
        RunStatus.INCOMPLETE,
        RunStatus.TIMEOUT,
    }
)

FAILED_STATUSES = frozenset(
    {RunStatus.FAILED, RunStatus.CANCELLED, RunStatus.EXPIRED, RunStatus.INCOMPLETE}
)

ResponseFormat = Literal["text", "json_object"]


class RunOptions(BaseModel):
    """Parameters for starting a run."""

    assistant_id: str = Field(..., min_length=1)
    additional_instructions: Optional[str] = None
    response_format: ResponseFormat = "text"
    tools: list[str] = Field(default_factory=lambda: ["code_interpreter"])

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "assistant_id": self.assistant_id,
            "tools": [{"type": tool} for tool in self.tools],
        }
        if self.additional_instructions:
            payload["additional_instructions"] = self.additional_instructions
        if self.response_format == "json_object":
            payload["response_format"] = {"type": "json_object"}
        return payload


class Run(BaseModel):
    """
    One assistant invocation bound to a conversation.

    Attributes:
        conversation_id: Provider thread id
        run_id: Provider run id
        status: Last observed status
        attempts: Number of status polls performed
        created_at: Provider-side creation time of the run
        additional_instructions: Instructions sent with the run, if any
        last_error: Provider's stated reason for a failed run
    """

    conversation_id: str
    run_id: str
    status: RunStatus = RunStatus.QUEUED
    attempts: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    additional_instructions: Optional[str] = None
    last_error: Optional[str] = None


# =============================================================================
# Content Segments
# =============================================================================


class FileReference(BaseModel):
    """A file mentioned in structured message content."""

    file_id: str
    locator: Optional[str] = None
    filename: Optional[str] = None


class TextSegment(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""
    annotations: list[FileReference] = Field(default_factory=list)


class FileReferenceSegment(BaseModel):
    type: Literal["file"] = "file"
    reference: FileReference


class UnknownSegment(BaseModel):
    type: Literal["unknown"] = "unknown"
    raw_type: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


ContentSegment = Union[TextSegment, FileReferenceSegment, UnknownSegment]


def _filename_from_locator(locator: str) -> Optional[str]:
    name = locator.rstrip("/").rsplit("/", 1)[-1]
    return name or None


def parse_content_segment(block: dict[str, Any]) -> ContentSegment:
    """
    Convert one provider content block into a tagged segment.

    - ``text`` blocks become TextSegment; ``file_path`` annotations become
      FileReferences carrying the locator text, ``file_citation`` annotations
      are citations and are dropped.
    - ``image_file`` blocks become FileReferenceSegment.
    - Anything else becomes UnknownSegment and is ignored by extraction.
    """
    block_type = block.get("type", "")

    if block_type == "text":
        text = block.get("text") or {}
        if isinstance(text, str):
            return TextSegment(text=text)
        annotations = []
        for annotation in text.get("annotations") or []:
            if annotation.get("type") != "file_path":
                continue
            file_id = (annotation.get("file_path") or {}).get("file_id")
            if not file_id:
                continue
            locator = annotation.get("text") or None
            annotations.append(
                FileReference(
                    file_id=file_id,
                    locator=locator,
                    filename=_filename_from_locator(locator) if locator else None,
                )
            )
        return TextSegment(text=text.get("value") or "", annotations=annotations)

    if block_type == "image_file":
        file_id = (block.get("image_file") or {}).get("file_id")
        if file_id:
            return FileReferenceSegment(reference=FileReference(file_id=file_id))

    return UnknownSegment(raw_type=block_type, payload=block)


class OutputMessage(BaseModel):
    """A message in a conversation, with parsed content."""

    id: str
    role: str
    created_at: datetime
    run_id: Optional[str] = None
    segments: list[ContentSegment] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "OutputMessage":
        created = data.get("created_at") or 0
        return cls(
            id=data.get("id", ""),
            role=data.get("role", ""),
            created_at=datetime.fromtimestamp(created, tz=timezone.utc),
            run_id=data.get("run_id"),
            segments=[parse_content_segment(b) for b in data.get("content") or []],
        )

    def text_segments(self) -> list[str]:
        return [s.text for s in self.segments if isinstance(s, TextSegment) and s.text]

    def file_references(self) -> list[FileReference]:
        """File references from structured content, in document order, deduped by file id."""
        seen: set[str] = set()
        refs: list[FileReference] = []
        for segment in self.segments:
            if isinstance(segment, TextSegment):
                candidates = segment.annotations
            elif isinstance(segment, FileReferenceSegment):
                candidates = [segment.reference]
            else:
                continue
            for ref in candidates:
                if ref.file_id not in seen:
                    seen.add(ref.file_id)
                    refs.append(ref)
        return refs


class ExtractedOutput(BaseModel):
    """Result of a completed run."""

    conversation_id: str
    run_id: str
    message_id: Optional[str] = None
    text: str = ""
    file_references: list[FileReference] = Field(default_factory=list)
    status: RunStatus = RunStatus.COMPLETED
    attempts: int = 0
