# =============================================================================
# Reference Resolver - Transient Locators to Durable URLs
# =============================================================================
# Rewrites provider-private "sandbox:" locators in run output into durable
# references, registering placeholders for files not seen before.
# =============================================================================

import logging
import re
from typing import Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from libs.content_cleaning import strip_provider_markup
from libs.models import ArtifactRecord, FileReference, TransientReference

from .artifact_lifecycle import ArtifactLifecycleManager
from .resources import MetadataResource

__all__ = [
    "ReferenceResolver",
    "ResolvedText",
    "find_locators",
    "replace_literal",
    "strip_locators",
]

logger = logging.getLogger(__name__)

# [label](sandbox:/mnt/data/report.csv)
_MARKDOWN_LOCATOR = re.compile(r"\[([^\]\n]*)\]\((sandbox:(?:[^()\s]|\([^()\s]*\))+)\)")

# sandbox:/mnt/data/report.csv or sandbox://files/report.csv
_BARE_LOCATOR = re.compile(r"sandbox:/{1,2}(?:[^\s()\]【\"'<>]|\([^\s()]*\))+")

_TRAILING_PUNCTUATION = ".,;:!?"


class ResolvedText(BaseModel):
    """Rewritten text plus every locator seen, resolved or not."""

    text: str
    references: list[TransientReference] = Field(default_factory=list)

    @property
    def unresolved(self) -> list[TransientReference]:
        return [ref for ref in self.references if not ref.is_resolved]


def find_locators(text: str) -> list[str]:
    """
    Distinct sandbox locators in document order, markdown link targets first.
    """
    found: list[str] = []
    for match in _MARKDOWN_LOCATOR.finditer(text):
        if match.group(2) not in found:
            found.append(match.group(2))
    for match in _BARE_LOCATOR.finditer(_MARKDOWN_LOCATOR.sub(" ", text)):
        locator = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if locator not in found:
            found.append(locator)
    return found


def filename_from_locator(locator: str) -> str:
    return locator.rsplit("/", 1)[-1]


def replace_literal(text: str, mapping: Mapping[str, str]) -> str:
    """
    Replace every occurrence of each key with its value.

    Plain string replacement, longest key first so a locator that is a prefix
    of another one cannot clobber it.
    """
    for locator in sorted(mapping, key=len, reverse=True):
        text = text.replace(locator, mapping[locator])
    return text


def _drop_unresolved(text: str, locators: Iterable[str]) -> str:
    unresolved = set(locators)
    if not unresolved:
        return text

    def _collapse(match: re.Match) -> str:
        return match.group(1) if match.group(2) in unresolved else match.group(0)

    text = _MARKDOWN_LOCATOR.sub(_collapse, text)
    for locator in sorted(unresolved, key=len, reverse=True):
        text = text.replace(locator, "")
    return text


def strip_locators(text: str) -> str:
    """Remove every locator without resolving anything (links keep their labels)."""
    return strip_provider_markup(_drop_unresolved(text, find_locators(text)))


class ReferenceResolver:
    """
    Resolves transient locators for one thread at a time.

    Lookup order per locator: by locator, then by (thread, filename); when
    both miss a PENDING placeholder is registered, served as /files/{id}
    until its bytes are transferred.
    """

    def __init__(self, lifecycle: ArtifactLifecycleManager, metadata: MetadataResource) -> None:
        self._lifecycle = lifecycle
        self._metadata = metadata

    def resolve(
        self,
        raw_text: str,
        thread_id: str,
        message_id: Optional[str],
        file_references: Sequence[FileReference] = (),
    ) -> ResolvedText:
        """
        Rewrite ``raw_text`` so it holds only durable references.

        Args:
            raw_text: Extracted run output
            thread_id: Conversation the output belongs to
            message_id: Message the output came from
            file_references: File references from structured content; these
                supply provider file ids for placeholders

        Returns:
            ResolvedText with citation markers and unresolvable locators removed
        """
        file_ids = {ref.locator: ref.file_id for ref in file_references if ref.locator}

        references: list[TransientReference] = []
        mapping: dict[str, str] = {}
        for locator in find_locators(raw_text):
            reference = self._resolve_one(
                locator, thread_id, message_id, file_ids.get(locator)
            )
            references.append(reference)
            if reference.resolved_url:
                mapping[locator] = reference.resolved_url

        text = replace_literal(raw_text, mapping)
        text = _drop_unresolved(text, [r.locator for r in references if not r.is_resolved])
        text = strip_provider_markup(text)

        if references:
            logger.info(
                f"Resolved {len(mapping)}/{len(references)} locator(s) in thread {thread_id}"
            )
        return ResolvedText(text=text, references=references)

    def _resolve_one(
        self,
        locator: str,
        thread_id: str,
        message_id: Optional[str],
        external_file_id: Optional[str],
    ) -> TransientReference:
        filename = filename_from_locator(locator)
        reference = TransientReference(
            locator=locator, filename=filename, external_file_id=external_file_id
        )
        if not filename.strip():
            logger.warning(f"Locator {locator} has no filename; dropping it")
            return reference

        record = self._metadata.find_artifact_by_locator(thread_id, locator)
        if record is None:
            record = self._metadata.find_artifact_by_thread_and_filename(thread_id, filename)
            if record is not None and record.transient_locator != locator:
                record = self._attach_locator(record, locator, external_file_id)
        if record is None:
            record = self._lifecycle.register_placeholder(
                thread_id,
                filename,
                locator,
                message_id=message_id,
                external_file_id=external_file_id,
            )

        reference.artifact_id = record.id
        reference.external_file_id = record.external_file_id or external_file_id
        reference.resolved_url = record.durable_url(self._lifecycle.files_url_prefix)
        return reference

    def _attach_locator(
        self,
        record: ArtifactRecord,
        locator: str,
        external_file_id: Optional[str],
    ) -> ArtifactRecord:
        update: dict = {"transient_locator": locator}
        if external_file_id and not record.external_file_id:
            update["external_file_id"] = external_file_id
        logger.info(f"Attaching locator {locator} to artifact {record.id}")
        return self._metadata.upsert_artifact(record.model_copy(update=update))

    # ------------------------------------------------------------------
    # Stored history
    # ------------------------------------------------------------------

    def mapping_for_thread(self, thread_id: str) -> dict[str, str]:
        """Locator -> durable URL for every artifact of a thread that still has a locator."""
        return {
            record.transient_locator: record.durable_url(self._lifecycle.files_url_prefix)
            for record in self._metadata.list_thread_locators(thread_id)
            if record.transient_locator
        }

    @staticmethod
    def convert_known_locators(text: str, mapping: Mapping[str, str]) -> str:
        """
        Rewrite locators in stored message text using a known mapping.

        No lookups or placeholders; unknown locators are left as they are.
        """
        return strip_provider_markup(replace_literal(text, mapping))
