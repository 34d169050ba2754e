"""
Error taxonomy for the chat-turn pipeline.

Each stage raises (or returns as an Err outcome) its own class of failure;
the pipeline maps whatever escapes a stage to a single user-visible error
frame with a persisted fallback message.
"""

from typing import Any, Dict, Optional


class SupportBotError(Exception):
    """Base class for all pipeline errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SupportBotError):
    """Malformed or empty input; rejected before any side effect."""

    code = "INVALID_MESSAGE"
    status_code = 400


class ChatNotFoundError(SupportBotError):
    code = "CHAT_NOT_FOUND"
    status_code = 404


class PromptCompositionError(SupportBotError):
    """The composed prompt broke its structural contract."""

    code = "PROMPT_COMPOSITION_FAILED"


class CompletionServiceError(SupportBotError):
    """The completion service is unreachable or failed at the transport level."""

    code = "COMPLETION_SERVICE_ERROR"
    status_code = 502


class PersistenceConflict(SupportBotError):
    """A unique constraint fired on insert; resolved inside the repository."""

    code = "PERSISTENCE_CONFLICT"
    status_code = 409


class PersistenceError(SupportBotError):
    code = "PERSISTENCE_ERROR"
