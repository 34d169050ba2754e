"""
Paragraph Emitter

Delivers an answer paragraph by paragraph. Each paragraph is persisted as an
assistant turn first, then streamed as a growing word prefix and closed with
a final paragraph frame. Pacing delays go through the turn's CancelToken so
a disconnect stops the stream and any further writes.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from ..core.cancellation import CancelToken
from ..core.identity import Identity
from ..db.models.chat import TurnSender
from ..db.repositories.chat import ChatRepository
from . import frames

logger = logging.getLogger("supportbot.streaming.emitter")

FALLBACK_ERROR_TEXT = (
    "Sorry, something went wrong while preparing this answer. "
    "Please try again in a moment."
)


@dataclass(frozen=True)
class PacingConfig:
    word_delay: float = 0.05
    word_jitter: float = 0.03
    paragraph_pause: float = 0.5
    follow_up_delay: float = 1.0

    @classmethod
    def from_config(cls, streaming_config: Dict[str, float]) -> "PacingConfig":
        return cls(**{k: float(v) for k, v in streaming_config.items() if k in cls.__dataclass_fields__})


NO_PACING = PacingConfig(0.0, 0.0, 0.0, 0.0)


def follow_up_text(questions: Sequence[str]) -> str:
    return "Suggested questions: " + " | ".join(questions)


class ParagraphEmitter:
    def __init__(self, chat_repo: ChatRepository, pacing: PacingConfig = PacingConfig(),
                 rng: Optional[random.Random] = None):
        self.chat_repo = chat_repo
        self.pacing = pacing
        self.rng = rng or random.Random()

    async def emit(self, chat_id: str, identity: Identity, paragraphs: Sequence[str],
                   follow_ups: Sequence[str] = (), *, context: Optional[str] = None,
                   cancel: Optional[CancelToken] = None) -> AsyncIterator[Dict[str, Any]]:
        """Yield frames for `paragraphs`, then the follow-up, complete and refresh frames."""
        cancel = cancel or CancelToken()
        total = len(paragraphs)

        for index, text in enumerate(paragraphs, start=1):
            cancel.raise_if_cancelled()
            turn = await self.chat_repo.save_turn(chat_id, identity, TurnSender.ASSISTANT, text, context)

            words = text.split(" ")
            for word_index in range(1, len(words) + 1):
                yield frames.streaming_frame(
                    turn, " ".join(words[:word_index]), index, total, word_index, len(words)
                )
                if word_index < len(words):
                    await cancel.sleep(self._word_delay())

            yield frames.paragraph_frame(turn, index, total)
            if index < total:
                await cancel.sleep(self.pacing.paragraph_pause)

        questions: List[str] = [q for q in follow_ups if q]
        if questions:
            await cancel.sleep(self.pacing.follow_up_delay)
            turn = await self.chat_repo.save_turn(
                chat_id, identity, TurnSender.ASSISTANT, follow_up_text(questions)
            )
            yield frames.follow_up_frame(turn)

        yield frames.complete_frame(questions)
        yield frames.refresh_frame()
        logger.debug(f"Emitted {total} paragraphs to chat {chat_id}")

    async def emit_error(self, chat_id: str, identity: Identity, follow_ups: Sequence[str] = (),
                         *, cancel: Optional[CancelToken] = None) -> AsyncIterator[Dict[str, Any]]:
        """Persist the fallback assistant turn and yield the error frame."""
        if cancel is not None:
            cancel.raise_if_cancelled()
        turn = await self.chat_repo.save_turn(chat_id, identity, TurnSender.ASSISTANT, FALLBACK_ERROR_TEXT)
        yield frames.error_frame(turn, list(follow_ups))
        yield frames.refresh_frame()

    def _word_delay(self) -> float:
        jitter = self.rng.uniform(0, self.pacing.word_jitter) if self.pacing.word_jitter > 0 else 0.0
        return self.pacing.word_delay + jitter
