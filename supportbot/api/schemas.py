"""Request bodies."""

from typing import Any

from pydantic import BaseModel

from ..core.errors import ValidationError

MAX_MESSAGE_LENGTH = 10000


class TurnSubmission(BaseModel):
    # Typed loosely so a wrong type maps to INVALID_MESSAGE instead of a 422
    message: Any = None

    def require_message(self) -> str:
        if not isinstance(self.message, str) or not self.message.strip():
            raise ValidationError(
                "Message must be a non-empty string",
                details={"field": "message"},
            )
        if len(self.message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message exceeds {MAX_MESSAGE_LENGTH} characters",
                details={"field": "message", "max_length": MAX_MESSAGE_LENGTH},
            )
        return self.message
