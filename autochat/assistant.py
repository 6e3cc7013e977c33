"""
Assistant client for autochat.

One call sends one user utterance and returns the assistant's reply text, or
raises DispatchFailure.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from autochat.errors import DispatchFailure

logger = logging.getLogger(__name__)

EMPTY_REPLY_FALLBACK = "I received your message but got no response."


class AssistantClient(ABC):
    """
    Abstract base class for assistant backends.

    Subclasses must implement the dispatch method.
    """

    @abstractmethod
    async def dispatch(self, text: str) -> str:
        """
        Send user text to the assistant.

        Args:
            text: The user's utterance

        Returns:
            The assistant's reply text

        Raises:
            DispatchFailure: If the call failed for any reason
        """


class WebhookAssistantClient(AssistantClient):
    """
    Assistant reached through an HTTP webhook.

    POSTs ``{"text": ...}`` as JSON. JSON replies are read from the
    ``response`` or ``output`` field; any other content type is used verbatim.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the webhook client.

        Args:
            url: Webhook endpoint URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def dispatch(self, text: str) -> str:
        """Send text to the webhook and return the reply."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.url, json={"text": text}, headers=headers
                )
        except httpx.HTTPError as e:
            logger.error(f"Assistant request failed: {e}")
            raise DispatchFailure(f"Assistant request failed: {e}") from e

        if not response.is_success:
            raise DispatchFailure(
                f"Server responded with status: {response.status_code}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return response.text

        try:
            data = response.json()
        except ValueError as e:
            raise DispatchFailure(
                f"Invalid JSON from assistant: {e}",
                status_code=response.status_code,
            ) from e

        if not isinstance(data, dict):
            return EMPTY_REPLY_FALLBACK

        reply = data.get("response") or data.get("output")
        if not reply:
            return EMPTY_REPLY_FALLBACK
        if not isinstance(reply, str):
            raise DispatchFailure(
                f"Unexpected reply type from assistant: {type(reply).__name__}",
                status_code=response.status_code,
            )
        return reply
