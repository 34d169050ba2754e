import json
from typing import Any, Dict, List, Optional

from jose import jwt

from supportbot.core.errors import CompletionServiceError


def structured_reply(paragraphs: List[str], follow_ups: Optional[List[str]] = None,
                     context: Optional[str] = "Customer asked about order delivery times") -> str:
    body = {
        "paragraphs": [{"id": i, "content": p} for i, p in enumerate(paragraphs, start=1)],
        "followUpQuestions": follow_ups if follow_ups is not None else [],
        "context": context,
    }
    return "```json\n" + json.dumps(body, indent=2) + "\n```"


class FakeLLMController:
    """Scripted completion service: returns queued replies in order, repeating the last."""

    def __init__(self, replies: Optional[List[Any]] = None):
        self.replies: List[Any] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    async def chat(self, messages, **kwargs):
        self.calls.append({"messages": list(messages), **kwargs})
        if not self.replies:
            raise CompletionServiceError("no scripted reply")
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return {"content": reply, "model": "fake", "duration_ms": 1}

    async def close(self):
        pass

    @property
    def last_prompt(self) -> str:
        return self.calls[-1]["messages"][-1]["content"]


def make_token(user_id: int, secret: str = "test-secret") -> str:
    return jwt.encode({"id": user_id}, secret, algorithm="HS256")
