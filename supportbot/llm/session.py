"""Per-chat completion session handles."""

from collections import OrderedDict
from typing import Dict, List


class CompletionSession:
    """
    Conversation state the completion service sees for one chat.

    Created once per chat and reused across turns; only the user text and
    the final answer of each turn are kept, never failed attempts.
    """

    def __init__(self, chat_id: str, max_messages: int = 20):
        self.chat_id = chat_id
        self.max_messages = max_messages
        self.history: List[Dict[str, str]] = []

    def messages_for(self, prompt: str) -> List[Dict[str, str]]:
        return self.history + [{"role": "user", "content": prompt}]

    def remember(self, user_text: str, answer_text: str) -> None:
        self.history.append({"role": "user", "content": user_text})
        self.history.append({"role": "assistant", "content": answer_text})
        if len(self.history) > self.max_messages:
            self.history = self.history[-self.max_messages:]


class CompletionSessionRegistry:
    """Bounded LRU of completion sessions keyed by chat id."""

    def __init__(self, max_sessions: int = 500, max_messages: int = 20):
        self.max_sessions = max_sessions
        self.max_messages = max_messages
        self._sessions: "OrderedDict[str, CompletionSession]" = OrderedDict()

    def get(self, chat_id: str) -> CompletionSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = CompletionSession(chat_id, self.max_messages)
            self._sessions[chat_id] = session
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(chat_id)
        return session

    def discard(self, chat_id: str) -> None:
        self._sessions.pop(chat_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
