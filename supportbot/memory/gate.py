"""
Memory Gate

Decides after each completed turn whether the conversation is worth
distilling into a long-term memory. The trigger heuristic sits behind the
`MemoryClassifier` interface so it can be swapped without touching the
pipeline; the gate itself enforces identity, volume and cooldown rules.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Sequence

from ..core.identity import Authenticated, Identity
from ..db.models.chat import Message, TurnSender
from ..db.repositories.chat import ChatRepository
from ..db.repositories.memory import MemoryRepository
from ..utils.datetime import ensure_utc, minutes_between, utc_now

logger = logging.getLogger("supportbot.memory.gate")

PERSONAL_KEYWORDS = (
    "my name", "name is", "i'm called", "birthday", "years old", "my age",
    "i live in", "lives in", "living in", "hometown", "my address", "home address",
    "i work at", "works at", "i work as", "works as", "my job", "occupation", "my company",
    "my email", "my phone", "my family", "my wife", "my husband", "my son", "my daughter",
    "my children", "my kids", "married", "allergic", "allergy", "i prefer", "my preference",
    "favorite", "my hobby",
)

CLOSING_PHRASES = (
    "thank you", "thanks", "thx", "that's all", "that is all", "that's it",
    "got it, thanks", "really useful", "very helpful", "that helps",
    "bye", "goodbye", "see you",
)

_PERSONAL_RE = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in PERSONAL_KEYWORDS) + r")\b", re.IGNORECASE
)
_CLOSING_RE = re.compile(
    r"\b(" + "|".join(re.escape(p) for p in CLOSING_PHRASES) + r")\b", re.IGNORECASE
)


class MemoryClassifier(Protocol):
    def should_extract(self, turns: Sequence[Message], contexts: Sequence[str]) -> bool:
        ...


class KeywordMemoryClassifier:
    """
    Keyword heuristic. Fires on any of:
    - any accumulated context mentions personal information
    - personal-information keywords occur at least twice across all contexts
    - the latest user turn contains a closing expression
    - the latest turn is older than the inactivity threshold
    """

    def __init__(self, inactivity_minutes: float = 15.0, min_keyword_hits: int = 2,
                 clock: Callable[[], datetime] = utc_now):
        self.inactivity_minutes = inactivity_minutes
        self.min_keyword_hits = min_keyword_hits
        self.clock = clock

    def triggers(self, turns: Sequence[Message], contexts: Sequence[str]) -> List[str]:
        fired = []
        if any(_PERSONAL_RE.search(c) for c in contexts):
            fired.append("personal_keyword")
        hits = sum(len(_PERSONAL_RE.findall(c)) for c in contexts)
        if hits >= self.min_keyword_hits:
            fired.append("keyword_density")

        user_turns = [t for t in turns if t.sender == TurnSender.USER.value]
        if user_turns and _CLOSING_RE.search(user_turns[-1].text or ""):
            fired.append("closing_phrase")

        if turns:
            idle = minutes_between(ensure_utc(turns[-1].timestamp), self.clock())
            if idle is not None and idle > self.inactivity_minutes:
                fired.append("inactivity")
        return fired

    def should_extract(self, turns: Sequence[Message], contexts: Sequence[str]) -> bool:
        return bool(self.triggers(turns, contexts))


@dataclass(frozen=True)
class GateDecision:
    extract: bool
    reason: str


class MemoryGate:
    def __init__(self, chat_repo: ChatRepository, memory_repo: MemoryRepository,
                 classifier: Optional[MemoryClassifier] = None, *,
                 min_turns: int = 8, cooldown_minutes: float = 10.0, recent_turn_window: int = 10,
                 clock: Callable[[], datetime] = utc_now):
        self.chat_repo = chat_repo
        self.memory_repo = memory_repo
        self.classifier = classifier or KeywordMemoryClassifier(clock=clock)
        self.min_turns = min_turns
        self.cooldown = timedelta(minutes=cooldown_minutes)
        self.recent_turn_window = recent_turn_window
        self.clock = clock

    async def evaluate(self, identity: Identity, chat_id: str,
                       contexts: Optional[Sequence[str]] = None) -> GateDecision:
        if not isinstance(identity, Authenticated):
            return GateDecision(False, "not_authenticated")

        turn_count = await self.chat_repo.count_turns(chat_id)
        if turn_count < self.min_turns:
            return GateDecision(False, f"only {turn_count} turns")

        last_memory_at = await self.memory_repo.latest_for_chat(chat_id)
        if last_memory_at is not None and self.clock() - last_memory_at < self.cooldown:
            return GateDecision(False, "recent memory exists")

        if contexts is None:
            contexts = await self.chat_repo.get_context_history(chat_id)
        turns = await self.chat_repo.get_recent_turns(chat_id, limit=self.recent_turn_window)

        if self.classifier.should_extract(turns, list(contexts)):
            logger.info(f"Memory gate open for chat {chat_id} ({turn_count} turns)")
            return GateDecision(True, "classifier")
        return GateDecision(False, "no trigger")
