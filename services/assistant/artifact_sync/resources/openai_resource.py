# =============================================================================
# OpenAI Resource - Assistants API (Remote Job Provider)
# =============================================================================
# Conversation, run and file operations against the OpenAI Assistants v2 REST
# API. Only transport-level retries happen here; run polling and artifact
# compensation live in the orchestrator and lifecycle manager.
# =============================================================================

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import httpx
from dagster import ConfigurableResource
from pydantic import Field

from libs.errors import RemoteTerminalError
from libs.models import OutputMessage, Run, RunOptions, RunStatus

from .http_errors import check_response, translate_transport_errors

__all__ = ["OpenAIResource"]

logger = logging.getLogger(__name__)


class OpenAIResource(ConfigurableResource):
    """
    Dagster resource for the OpenAI Assistants API.

    A "conversation" is an Assistants thread; a "run" is an Assistants run.

    Configuration matches OpenAISettings from libs.models.config.

    Attributes:
        api_key: API key (Bearer auth)
        base_url: API base URL (default: "https://api.openai.com/v1")
        organization: Optional OpenAI-Organization header
        timeout_seconds: Per-request timeout
        transport_retries: Connection-level retries done by httpx
    """

    api_key: str = Field(..., description="API key")
    base_url: str = Field("https://api.openai.com/v1", description="API base URL")
    organization: Optional[str] = Field(None, description="Organization header")
    timeout_seconds: float = Field(30.0, description="Per-request timeout")
    transport_retries: int = Field(3, description="Connection-level retries")

    def get_client(self) -> httpx.Client:
        """
        Create an httpx client for the Assistants API.

        Returns:
            Configured httpx.Client (caller closes it)
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "assistants=v2",
        }
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout_seconds,
            transport=httpx.HTTPTransport(retries=self.transport_retries),
        )

    def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> httpx.Response:
        with translate_transport_errors(operation):
            with self.get_client() as client:
                response = client.request(method, path, **kwargs)
                response.read()
        return response

    def _json(self, method: str, path: str, operation: str, **kwargs: Any) -> dict:
        response = self._request(method, path, operation, **kwargs)
        check_response(response, operation)
        return response.json()

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(self) -> str:
        """Create a new conversation and return its id."""
        data = self._json("POST", "/threads", "create_conversation", json={})
        logger.info(f"Created conversation {data['id']}")
        return data["id"]

    def append_input(
        self,
        conversation_id: str,
        text: str,
        file_ids: Sequence[str] = (),
    ) -> str:
        """
        Append a user message to a conversation.

        Attached files are made available to the code interpreter.

        Returns:
            Provider message id
        """
        payload: dict[str, Any] = {"role": "user", "content": text}
        if file_ids:
            payload["attachments"] = [
                {"file_id": file_id, "tools": [{"type": "code_interpreter"}]}
                for file_id in file_ids
            ]
        data = self._json(
            "POST", f"/threads/{conversation_id}/messages", "append_input", json=payload
        )
        return data["id"]

    def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation. A conversation that is already gone is not an error."""
        response = self._request("DELETE", f"/threads/{conversation_id}", "delete_conversation")
        if response.status_code == 404:
            logger.info(f"Conversation {conversation_id} already deleted")
            return
        check_response(response, "delete_conversation")

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def start_run(self, conversation_id: str, options: RunOptions) -> Run:
        """Start a run of the assistant on a conversation."""
        data = self._json(
            "POST",
            f"/threads/{conversation_id}/runs",
            "start_run",
            json=options.to_payload(),
        )
        run = self._run_from_api(conversation_id, data)
        run.additional_instructions = options.additional_instructions
        logger.info(f"Started run {run.run_id} on conversation {conversation_id}")
        return run

    def get_run_status(self, conversation_id: str, run_id: str) -> Run:
        """Fetch the current state of a run."""
        data = self._json(
            "GET", f"/threads/{conversation_id}/runs/{run_id}", "get_run_status"
        )
        return self._run_from_api(conversation_id, data)

    def list_output(self, conversation_id: str, limit: int = 20) -> list[OutputMessage]:
        """
        List the most recent messages of a conversation, newest first.

        Returns:
            Parsed OutputMessages with tagged content segments
        """
        data = self._json(
            "GET",
            f"/threads/{conversation_id}/messages",
            "list_output",
            params={"order": "desc", "limit": limit},
        )
        return [OutputMessage.from_api(item) for item in data.get("data", [])]

    @staticmethod
    def _run_from_api(conversation_id: str, data: dict) -> Run:
        try:
            status = RunStatus(data.get("status", "queued"))
        except ValueError as exc:
            raise RemoteTerminalError(
                f"Unknown run status '{data.get('status')}'",
                conversation_id=conversation_id,
                run_id=data.get("id"),
            ) from exc

        last_error = data.get("last_error") or {}
        created = data.get("created_at")
        return Run(
            conversation_id=conversation_id,
            run_id=data["id"],
            status=status,
            created_at=(
                datetime.fromtimestamp(created, tz=timezone.utc)
                if created
                else datetime.now(timezone.utc)
            ),
            last_error=last_error.get("message") if isinstance(last_error, dict) else None,
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        """
        Upload bytes to the provider's file store.

        Returns:
            Provider file id
        """
        body = self._json(
            "POST",
            "/files",
            "upload_file",
            data={"purpose": "assistants"},
            files={"file": (filename, data, content_type)},
        )
        logger.info(f"Uploaded {filename} to provider as {body['id']}")
        return body["id"]

    def get_file(self, file_id: str) -> dict:
        """
        Fetch file metadata.

        Returns:
            Dict with at least "id", "filename" and "bytes"
        """
        return self._json("GET", f"/files/{file_id}", "get_file")

    def get_file_content(self, file_id: str) -> bytes:
        """Download the raw bytes of a provider file."""
        response = self._request("GET", f"/files/{file_id}/content", "get_file_content")
        check_response(response, "get_file_content")
        return response.content

    def delete_file(self, file_id: str) -> None:
        """Delete a provider file. A file that is already gone is not an error."""
        response = self._request("DELETE", f"/files/{file_id}", "delete_file")
        if response.status_code == 404:
            logger.info(f"Provider file {file_id} already deleted")
            return
        check_response(response, "delete_file")
