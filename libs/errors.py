# =============================================================================
# Error Taxonomy
# =============================================================================
# Typed errors surfaced by the artifact lifecycle, run orchestration and
# reference resolution layers.
# =============================================================================

"""
Error taxonomy shared by every component.

- ValidationError: bad input, never retried
- RemoteTransientError: network/5xx from a store, safe to retry from the top
- RemoteTerminalError: run failed or store reported a logical conflict
- RunTimeoutError: polling attempt budget exhausted, run left running remotely
- ConsistencyWarning: a compensating cleanup step failed (logged, attached)
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ArtifactSyncError",
    "ValidationError",
    "RemoteTransientError",
    "RemoteTerminalError",
    "RunFailedError",
    "RequiresActionError",
    "RunTimeoutError",
    "ConsistencyWarning",
]


class ConsistencyWarning(Warning):
    """
    A compensating or best-effort cleanup step failed.

    Never raised. Instances are logged and attached to the error (or return
    value) of the operation that attempted the cleanup.

    Attributes:
        step: Cleanup step that failed (e.g. "compensate_provider_file")
        store: Store the step targeted ("provider", "blob", "metadata")
        identifier: Identifier that may now be orphaned in that store
        cause: Underlying exception
    """

    def __init__(
        self,
        step: str,
        store: str,
        identifier: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.step = step
        self.store = store
        self.identifier = identifier
        self.cause = cause
        super().__init__(self.describe())

    def describe(self) -> str:
        detail = f": {self.cause}" if self.cause is not None else ""
        return f"{self.step} failed for {self.store} '{self.identifier}'{detail}"


class ArtifactSyncError(Exception):
    """
    Base class for every typed error raised by this package.

    Attributes:
        step: Operation step that failed, when known
        conversation_id: Conversation allocated by the failing call, if any
        run_id: Remote run id, once a run has been started
        warnings: Compensation failures captured while handling this error
    """

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        conversation_id: Optional[str] = None,
        run_id: Optional[str] = None,
        warnings: Optional[list[ConsistencyWarning]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.conversation_id = conversation_id
        self.run_id = run_id
        self.warnings: list[ConsistencyWarning] = list(warnings or [])

    def with_context(
        self,
        *,
        conversation_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> "ArtifactSyncError":
        """Fill in conversation/run ids without overwriting known values."""
        if conversation_id and not self.conversation_id:
            self.conversation_id = conversation_id
        if run_id and not self.run_id:
            self.run_id = run_id
        return self

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "step": self.step,
            "conversation_id": self.conversation_id,
            "run_id": self.run_id,
            "warnings": [w.describe() for w in self.warnings],
        }


class ValidationError(ArtifactSyncError):
    """Bad input (empty message, empty filename, oversized upload)."""


class RemoteTransientError(ArtifactSyncError):
    """Network failure or 5xx/429 from a remote store."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RemoteTerminalError(ArtifactSyncError):
    """Logical failure reported by a remote store; not retried automatically."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RunFailedError(RemoteTerminalError):
    """The run reached failed, cancelled, expired or incomplete."""

    def __init__(self, message: str, *, status: str, reason: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status = status
        self.reason = reason


class RequiresActionError(RemoteTerminalError):
    """The run asked for tool outputs, which this package does not provide."""


class RunTimeoutError(ArtifactSyncError, TimeoutError):
    """
    The polling attempt budget ran out while the run was still non-terminal.

    The run is not cancelled remotely; a later request may observe its result
    using the same conversation id.
    """

    def __init__(self, message: str, *, attempts: int = 0, last_status: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.last_status = last_status
