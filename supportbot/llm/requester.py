"""
Completion Requester

Sends a composed prompt through the chat's completion session and insists
on a structured answer: up to three attempts, retrying only on parse
failures, then falling back to splitting the raw text.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..core.cancellation import CancelToken
from ..core.outcome import Err, Ok
from ..prompt.builder import PromptComposer
from .controller import LLMController
from .retry_utils import get_retry_temperature
from .session import CompletionSession
from .structured import GENERIC_FOLLOW_UPS, parse_structured_response, split_by_context

logger = logging.getLogger("supportbot.llm.requester")

MAX_ATTEMPTS = 3


@dataclass
class CompletionResult:
    paragraphs: List[str]
    follow_up_questions: List[str] = field(default_factory=list)
    context: Optional[str] = None
    attempts: int = 1
    used_fallback: bool = False
    raw_text: str = ""


class CompletionRequester:
    def __init__(self, controller: LLMController, composer: PromptComposer,
                 max_attempts: int = MAX_ATTEMPTS, base_temperature: Optional[float] = None):
        self.controller = controller
        self.composer = composer
        self.max_attempts = max_attempts
        self.base_temperature = base_temperature

    async def request(self, session: CompletionSession, prompt: str, user_text: str,
                      cancel: Optional[CancelToken] = None) -> CompletionResult:
        """
        Obtain paragraphs for one turn.

        Raises:
            CompletionServiceError: transport failure, not retried
            StreamCancelled: the token fired while waiting on the service
        """
        raw = ""
        attempts = 0
        last_error: Optional[Err] = None

        for attempt in range(self.max_attempts):
            attempts = attempt + 1
            outgoing = prompt if attempt == 0 else self.composer.retry_prompt(user_text)
            raw = await self._send(session, outgoing, attempt, cancel)

            outcome = parse_structured_response(raw)
            if isinstance(outcome, Ok):
                answer = outcome.value
                paragraphs = answer.paragraph_texts()
                session.remember(user_text, "\n\n".join(paragraphs))
                logger.info(
                    f"Structured answer for chat {session.chat_id} on attempt {attempts}: "
                    f"{len(paragraphs)} paragraphs"
                )
                return CompletionResult(
                    paragraphs=paragraphs,
                    follow_up_questions=list(answer.follow_up_questions),
                    context=answer.context,
                    attempts=attempts,
                    raw_text=raw,
                )

            last_error = outcome
            logger.warning(
                f"Attempt {attempts}/{self.max_attempts} for chat {session.chat_id} "
                f"not usable: {outcome.kind} ({outcome.detail})"
            )
            if outcome.kind == "missing_paragraphs":
                break

        paragraphs = split_by_context(raw)
        logger.warning(
            f"Falling back to text splitting for chat {session.chat_id} after {attempts} attempts "
            f"({last_error.kind if last_error else 'unknown'}): {len(paragraphs)} paragraphs"
        )
        if paragraphs:
            session.remember(user_text, "\n\n".join(paragraphs))
        return CompletionResult(
            paragraphs=paragraphs,
            follow_up_questions=list(GENERIC_FOLLOW_UPS),
            context=None,
            attempts=attempts,
            used_fallback=True,
            raw_text=raw,
        )

    async def _send(self, session: CompletionSession, prompt: str, attempt: int,
                    cancel: Optional[CancelToken]) -> str:
        kwargs = {}
        if self.base_temperature is not None:
            kwargs["temperature"] = get_retry_temperature(self.base_temperature, attempt)
        call = self.controller.chat(session.messages_for(prompt), **kwargs)
        reply = await (cancel.run(call) if cancel is not None else call)
        return reply.get("content") or ""
