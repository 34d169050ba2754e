"""
Service wiring.

Everything request handlers need is built once here and stored in
`app.state.services`; business logic receives its collaborators through
constructors, never through module globals.
"""

import logging
from typing import Any, Dict, Optional

from .config.app_config import AppConfig
from .conversation.context import ContextAccumulator
from .conversation.pipeline import TurnPipeline
from .core.chat_locks import ChatLockRegistry
from .core.identity import IdentityResolver
from .db.repositories import ChatRepository, MemoryRepository, SecurityThreatRepository, UserRepository
from .db.session import Database
from .llm.controller import LLMController
from .llm.requester import CompletionRequester
from .llm.session import CompletionSessionRegistry
from .memory.extractor import MemoryExtractor
from .memory.gate import KeywordMemoryClassifier, MemoryGate
from .prompt.builder import PromptComposer
from .security.screener import SecurityScreener
from .streaming.emitter import PacingConfig, ParagraphEmitter

logger = logging.getLogger("supportbot.services")


def build_services(config: AppConfig, *, database: Optional[Database] = None,
                   llm_controller: Optional[LLMController] = None,
                   pacing: Optional[PacingConfig] = None) -> Dict[str, Any]:
    """Construct the service graph. Tests pass their own database, controller and pacing."""
    database = database or Database.from_config(config.get_database_config())
    llm_controller = llm_controller or LLMController.from_config(config.get_llm_config())
    pacing = pacing or PacingConfig.from_config(config.get_streaming_config())
    memory_config = config.get_memory_config()

    chat_repo = ChatRepository(database)
    memory_repo = MemoryRepository(database)
    threat_repo = SecurityThreatRepository(database)
    user_repo = UserRepository(database)

    composer = PromptComposer()
    requester = CompletionRequester(llm_controller, composer, base_temperature=config.llm_temperature)
    emitter = ParagraphEmitter(chat_repo, pacing)
    classifier = KeywordMemoryClassifier(inactivity_minutes=memory_config["inactivity_minutes"])
    memory_gate = MemoryGate(
        chat_repo, memory_repo, classifier,
        min_turns=memory_config["min_turns"],
        cooldown_minutes=memory_config["cooldown_minutes"],
    )
    extractor = MemoryExtractor(memory_repo)
    accumulator = ContextAccumulator(
        chat_repo, memory_repo,
        recent_turn_limit=config.context_recent_turns,
        memory_limit=config.context_memory_limit,
    )

    pipeline = TurnPipeline(
        chat_repo=chat_repo,
        threat_repo=threat_repo,
        screener=SecurityScreener(),
        accumulator=accumulator,
        composer=composer,
        requester=requester,
        emitter=emitter,
        memory_gate=memory_gate,
        extractor=extractor,
        completion_sessions=CompletionSessionRegistry(),
        locks=ChatLockRegistry(),
    )

    logger.info("Services initialized")
    return {
        "config": config,
        "database": database,
        "identity_resolver": IdentityResolver(config.jwt_secret, config.jwt_algorithm),
        "chat_repo": chat_repo,
        "memory_repo": memory_repo,
        "threat_repo": threat_repo,
        "user_repo": user_repo,
        "llm_controller": llm_controller,
        "memory_gate": memory_gate,
        "memory_extractor": extractor,
        "turn_pipeline": pipeline,
    }
