# =============================================================================
# Run Orchestrator - Remote Run Execution and Output Extraction
# =============================================================================
# Appends input to a conversation, starts a run, polls it at a fixed
# interval up to a fixed attempt ceiling, and extracts this run's output.
# =============================================================================

import logging
import time
from datetime import timedelta
from typing import Optional, Sequence

from libs.errors import (
    ArtifactSyncError,
    RequiresActionError,
    RunFailedError,
    RunTimeoutError,
    ValidationError,
)
from libs.models import (
    FAILED_STATUSES,
    ExtractedOutput,
    FileReference,
    OutputMessage,
    ResponseFormat,
    Run,
    RunOptions,
    RunPollingSettings,
    RunStatus,
    SearchAugmentation,
)

from .resources import OpenAIResource

__all__ = ["RunOrchestrator", "JSON_FORMAT_INSTRUCTION", "select_run_messages"]

logger = logging.getLogger(__name__)

JSON_FORMAT_INSTRUCTION = "Format your response as valid JSON."


def select_run_messages(
    messages: Sequence[OutputMessage],
    run: Run,
    clock_skew_seconds: float,
) -> list[OutputMessage]:
    """
    Pick the assistant messages that belong to a run, oldest first.

    1. Messages tagged with the run's id
    2. Otherwise messages created at or after run start minus the skew buffer
    3. Otherwise the most recent assistant message
    """
    assistant = sorted(
        (m for m in messages if m.role == "assistant"),
        key=lambda m: m.created_at,
    )
    if not assistant:
        return []

    tagged = [m for m in assistant if m.run_id == run.run_id]
    if tagged:
        return tagged

    cutoff = run.created_at - timedelta(seconds=clock_skew_seconds)
    recent = [m for m in assistant if m.created_at >= cutoff]
    if recent:
        return recent

    return [assistant[-1]]


class RunOrchestrator:
    """
    Drives one run per call to ``execute``.

    Args:
        provider: Remote job client
        assistant_id: Assistant the runs execute
        polling: Poll interval and attempt ceilings
    """

    def __init__(
        self,
        provider: OpenAIResource,
        assistant_id: str,
        polling: Optional[RunPollingSettings] = None,
    ) -> None:
        self._provider = provider
        self._assistant_id = assistant_id
        self._polling = polling or RunPollingSettings()

    def execute(
        self,
        conversation_id: Optional[str],
        text: str,
        augmentation: Optional[SearchAugmentation] = None,
        *,
        file_ids: Sequence[str] = (),
        response_format: ResponseFormat = "text",
    ) -> ExtractedOutput:
        """
        Run the assistant on ``text`` and return this run's output.

        Any error raised after a conversation exists carries its id (and the
        run id once started), so the caller can retry on the same
        conversation.

        Raises:
            ValidationError: Empty input
            RunFailedError: Run ended failed/cancelled/expired/incomplete
            RequiresActionError: Run asked for tool outputs
            RunTimeoutError: Attempt ceiling reached; run left running remotely
            RemoteTransientError / RemoteTerminalError: Provider call failed
        """
        if not text or not text.strip():
            raise ValidationError("Message text must not be empty")

        run: Optional[Run] = None
        try:
            if not conversation_id:
                conversation_id = self._provider.create_conversation()

            body = text if augmentation is None else f"{text}\n\n{augmentation.context_text}"
            self._provider.append_input(conversation_id, body, file_ids=file_ids)

            options = self._build_options(augmentation, file_ids, response_format)
            run = self._provider.start_run(conversation_id, options)

            run = self._poll(run, searching=augmentation is not None)
            return self._extract(run)
        except ArtifactSyncError as exc:
            raise exc.with_context(
                conversation_id=conversation_id,
                run_id=run.run_id if run else None,
            )

    def _build_options(
        self,
        augmentation: Optional[SearchAugmentation],
        file_ids: Sequence[str],
        response_format: ResponseFormat,
    ) -> RunOptions:
        instructions: list[str] = []
        if augmentation is not None and augmentation.instructions:
            instructions.append(augmentation.instructions)
        if response_format == "json_object":
            instructions.append(JSON_FORMAT_INSTRUCTION)

        tools = ["code_interpreter"]
        if augmentation is not None and not file_ids:
            tools.append("file_search")

        return RunOptions(
            assistant_id=self._assistant_id,
            additional_instructions="\n\n".join(instructions) or None,
            response_format=response_format,
            tools=tools,
        )

    def _poll(self, run: Run, searching: bool) -> Run:
        if searching:
            interval = self._polling.search_poll_interval_seconds
            max_attempts = self._polling.search_max_poll_attempts
        else:
            interval = self._polling.poll_interval_seconds
            max_attempts = self._polling.max_poll_attempts

        started_at = run.created_at
        status = run.status
        for attempt in range(1, max_attempts + 1):
            current = self._provider.get_run_status(run.conversation_id, run.run_id)
            status = current.status
            logger.debug(f"Run {run.run_id} poll {attempt}/{max_attempts}: {status.value}")

            if status == RunStatus.COMPLETED:
                return current.model_copy(
                    update={
                        "attempts": attempt,
                        "created_at": started_at,
                        "additional_instructions": run.additional_instructions,
                    }
                )

            if status in FAILED_STATUSES:
                reason = current.last_error or f"run {status.value}"
                logger.error(f"Run {run.run_id} ended {status.value}: {reason}")
                raise RunFailedError(
                    f"Run {run.run_id} {status.value}: {reason}",
                    status=status.value,
                    reason=current.last_error,
                )

            if status == RunStatus.REQUIRES_ACTION:
                raise RequiresActionError(
                    f"Run {run.run_id} requires tool outputs, which are not supported"
                )

            if attempt < max_attempts:
                time.sleep(interval)

        logger.warning(
            f"Run {run.run_id} still {status.value} after {max_attempts} polls; "
            f"leaving it running"
        )
        raise RunTimeoutError(
            f"Run {run.run_id} did not finish within {max_attempts} polls",
            attempts=max_attempts,
            last_status=status.value,
        )

    def _extract(self, run: Run) -> ExtractedOutput:
        messages = self._provider.list_output(run.conversation_id)
        chosen = select_run_messages(messages, run, self._polling.clock_skew_seconds)

        if not chosen:
            logger.warning(f"Run {run.run_id} completed without an assistant message")
            return ExtractedOutput(
                conversation_id=run.conversation_id,
                run_id=run.run_id,
                status=RunStatus.COMPLETED,
                attempts=run.attempts,
            )

        texts: list[str] = []
        references: list[FileReference] = []
        seen: set[str] = set()
        for message in chosen:
            texts.extend(message.text_segments())
            for ref in message.file_references():
                if ref.file_id not in seen:
                    seen.add(ref.file_id)
                    references.append(ref)

        logger.info(
            f"Run {run.run_id} completed after {run.attempts} polls: "
            f"{len(chosen)} message(s), {len(references)} file reference(s)"
        )
        return ExtractedOutput(
            conversation_id=run.conversation_id,
            run_id=run.run_id,
            message_id=chosen[-1].id,
            text="\n\n".join(texts),
            file_references=references,
            status=RunStatus.COMPLETED,
            attempts=run.attempts,
        )
