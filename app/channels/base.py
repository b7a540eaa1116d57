"""Base abstractions for inbound channel adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from fastapi import Response

from ..conversations.models import InboundMessage, IngestResult


class ChannelAdapter(ABC):
    """Abstract base class encapsulating channel-specific behaviour."""

    #: Lowercase channel identifier, also the conversation ``platform``.
    channel_name: str

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        self.config = dict(config or {})

    @abstractmethod
    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> InboundMessage:
        """Convert a webhook payload into an :class:`InboundMessage`."""

    def verify_signature(
        self,
        url: str,
        params: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> bool:
        """Validate authenticity of the webhook payload.

        Adapters can override this to implement signature checks. The default
        implementation returns ``True``.
        """

        return True

    @abstractmethod
    def render_reply(self, result: IngestResult) -> Response:
        """Build the synchronous HTTP reply for ``result``."""

    @abstractmethod
    def render_text(self, text: str, *, success: bool = True) -> Response:
        """Build a reply carrying plain ``text`` (apologies, validation)."""
