"""Exceptions raised by the conversation services."""

from __future__ import annotations


class ConversationError(RuntimeError):
    """Base class for conversation domain failures."""


class ConversationNotFoundError(ConversationError):
    """Raised when a conversation could not be located."""

    def __init__(self, conversation_id: int) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class InvalidInputError(ConversationError):
    """Raised when a required field is missing or malformed."""


class ConversationClosedError(InvalidInputError):
    """Raised when a closed conversation receives a state change."""

    def __init__(self, conversation_id: int) -> None:
        super().__init__(f"Conversation {conversation_id} is closed")
        self.conversation_id = conversation_id


class UpstreamFailureError(ConversationError):
    """Raised when an external collaborator (SMS, AI) fails a request."""

    def __init__(self, service: str, detail: str | None = None) -> None:
        message = f"{service} request failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.service = service
        self.detail = detail
