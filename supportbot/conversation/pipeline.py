"""
Turn Pipeline

Runs one submitted turn end to end and yields wire frames:

    screen -> persist user turn -> [canned reply | context -> prompt -> completion]
           -> paragraph emitter -> memory gate

Turns on the same chat are serialized. Failures after the stream has started
become a single error frame with a persisted fallback message.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from ..core.cancellation import CancelToken, StreamCancelled
from ..core.chat_locks import ChatLockRegistry
from ..core.errors import CompletionServiceError, PromptCompositionError, SupportBotError
from ..core.identity import Authenticated, Identity, describe_identity
from ..core.outcome import Err, Outcome
from ..db.models.chat import ChatSession, TurnSender
from ..db.repositories.chat import ChatRepository
from ..db.repositories.security import SecurityThreatRepository
from ..llm.requester import CompletionRequester
from ..llm.session import CompletionSessionRegistry
from ..llm.structured import GENERIC_FOLLOW_UPS
from ..memory.extractor import MemoryExtractor
from ..memory.gate import MemoryGate
from ..prompt.builder import PromptComposer
from ..security.responses import canned_follow_ups, canned_paragraphs
from ..security.screener import SecurityScreener
from ..streaming import frames
from ..streaming.emitter import ParagraphEmitter
from .context import ContextAccumulator

logger = logging.getLogger("supportbot.conversation.pipeline")

TITLE_MAX_LENGTH = 12
_TITLE_STRIP_RE = re.compile(r"[^\w\s]", re.UNICODE)


def derive_session_title(message: str) -> Optional[str]:
    title = _TITLE_STRIP_RE.sub("", message.strip()).strip()
    if not title:
        return None
    if len(title) > TITLE_MAX_LENGTH:
        return title[:TITLE_MAX_LENGTH] + "..."
    return title


@dataclass(frozen=True)
class TurnRequest:
    chat_id: str
    identity: Identity
    text: str
    origin_ip: Optional[str] = None
    user_agent: Optional[str] = None


class TurnPipeline:
    def __init__(self, *, chat_repo: ChatRepository, threat_repo: SecurityThreatRepository,
                 screener: SecurityScreener, accumulator: ContextAccumulator,
                 composer: PromptComposer, requester: CompletionRequester,
                 emitter: ParagraphEmitter, memory_gate: MemoryGate, extractor: MemoryExtractor,
                 completion_sessions: Optional[CompletionSessionRegistry] = None,
                 locks: Optional[ChatLockRegistry] = None):
        self.chat_repo = chat_repo
        self.threat_repo = threat_repo
        self.screener = screener
        self.accumulator = accumulator
        self.composer = composer
        self.requester = requester
        self.emitter = emitter
        self.memory_gate = memory_gate
        self.extractor = extractor
        self.completion_sessions = completion_sessions or CompletionSessionRegistry()
        self.locks = locks or ChatLockRegistry()

    async def open_session(self, chat_id: str, identity: Identity) -> Outcome[ChatSession]:
        """Resolve (or create) the caller's session before any frame is sent."""
        return await self.chat_repo.get_or_create_session(chat_id, identity)

    async def run(self, request: TurnRequest,
                  cancel: Optional[CancelToken] = None) -> AsyncIterator[Dict[str, Any]]:
        cancel = cancel or CancelToken()
        async with self.locks.hold(request.chat_id):
            try:
                async for frame in self._run_turn(request, cancel):
                    yield frame
            except StreamCancelled:
                logger.info(f"Turn on chat {request.chat_id} cancelled by the client")
            except asyncio.CancelledError:
                cancel.cancel()
                raise

    async def _run_turn(self, request: TurnRequest, cancel: CancelToken) -> AsyncIterator[Dict[str, Any]]:
        chat_id, identity = request.chat_id, request.identity
        try:
            screening = self.screener.screen(request.text)

            # The user's words are kept whatever branch follows
            user_turn = await self.chat_repo.save_turn(chat_id, identity, TurnSender.USER, request.text)
            await self._maybe_set_title(chat_id, request.text)

            if screening.is_threat:
                await self.threat_repo.record_threat(
                    screening, request.text,
                    origin_ip=request.origin_ip, user_agent=request.user_agent, chat_id=chat_id,
                )
                logger.warning(
                    f"Diverted {screening.kind.value} turn on chat {chat_id} "
                    f"from {describe_identity(identity)}"
                )
                async for frame in self.emitter.emit(
                    chat_id, identity, canned_paragraphs(screening.kind), canned_follow_ups(screening.kind),
                    cancel=cancel,
                ):
                    yield frame
            else:
                bundle = await self.accumulator.gather(chat_id, identity, exclude_turn_id=user_turn.id)
                composed = self.composer.compose(request.text, bundle)
                if isinstance(composed, Err):
                    raise PromptCompositionError(f"Prompt rejected: {composed.kind}", {"detail": composed.detail})

                result = await self.requester.request(
                    self.completion_sessions.get(chat_id), composed.value, request.text, cancel
                )
                if not result.paragraphs:
                    raise CompletionServiceError("Completion service returned an empty answer")
                if result.context:
                    await self.chat_repo.save_session_context(chat_id, result.context)

                async for frame in self.emitter.emit(
                    chat_id, identity, result.paragraphs, result.follow_up_questions,
                    context=result.context, cancel=cancel,
                ):
                    yield frame

        except StreamCancelled:
            raise
        except SupportBotError as e:
            logger.error(f"Turn on chat {chat_id} failed: {e.code}: {e.message}")
            async for frame in self._error_frames(chat_id, identity, cancel):
                yield frame
            return
        except Exception as e:
            logger.error(f"Unexpected failure on chat {chat_id}: {e}", exc_info=True)
            async for frame in self._error_frames(chat_id, identity, cancel):
                yield frame
            return

        await self._after_turn(identity, chat_id)

    async def _error_frames(self, chat_id: str, identity: Identity,
                            cancel: CancelToken) -> AsyncIterator[Dict[str, Any]]:
        try:
            async for frame in self.emitter.emit_error(chat_id, identity, GENERIC_FOLLOW_UPS, cancel=cancel):
                yield frame
        except StreamCancelled:
            raise
        except Exception as e:
            # Even the fallback could not be stored; tell the client without a turn id
            logger.error(f"Could not persist fallback message for chat {chat_id}: {e}", exc_info=True)
            yield {"type": frames.FrameType.ERROR, "message": None, "followUpQuestions": list(GENERIC_FOLLOW_UPS)}
            yield frames.refresh_frame()

    async def _maybe_set_title(self, chat_id: str, text: str) -> None:
        if await self.chat_repo.count_turns(chat_id, sender=TurnSender.USER) != 1:
            return
        title = derive_session_title(text)
        if title and await self.chat_repo.update_session_title(chat_id, title):
            logger.info(f"Titled chat {chat_id}: {title!r}")

    async def _after_turn(self, identity: Identity, chat_id: str) -> None:
        if not isinstance(identity, Authenticated):
            return
        try:
            contexts = await self.chat_repo.get_context_history(chat_id)
            decision = await self.memory_gate.evaluate(identity, chat_id, contexts)
            if decision.extract:
                await self.extractor.extract_and_save(identity.user_id, chat_id, contexts)
            else:
                logger.debug(f"Memory gate closed for chat {chat_id}: {decision.reason}")
        except Exception as e:
            logger.error(f"Memory gate failed for chat {chat_id}: {e}", exc_info=True)
