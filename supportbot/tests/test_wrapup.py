from datetime import timedelta

import pytest

from supportbot.core.identity import Anonymous, Authenticated
from supportbot.db.models.chat import TurnSender
from supportbot.memory.gate import KeywordMemoryClassifier, MemoryGate
from supportbot.scheduler.session_wrapup import wrapup_idle_sessions
from supportbot.utils.datetime import utc_now


async def _conversation(chat_repo, chat_id, identity, pairs=4):
    await chat_repo.save_session(chat_id, identity)
    for i in range(pairs):
        await chat_repo.save_turn(chat_id, identity, TurnSender.USER, f"{chat_id} question {i}")
        await chat_repo.save_turn(
            chat_id, identity, TurnSender.ASSISTANT, f"{chat_id} answer {i}", f"Customer topic {i} for {chat_id}"
        )


@pytest.fixture
def later():
    return utc_now() + timedelta(minutes=30)


@pytest.fixture
def wrapup_services(services, later):
    def clock():
        return later

    gate = MemoryGate(
        services["chat_repo"], services["memory_repo"],
        KeywordMemoryClassifier(inactivity_minutes=15, clock=clock), clock=clock,
    )
    return {**services, "memory_gate": gate}


@pytest.mark.anyio
async def test_idle_chat_is_wrapped_up_once(wrapup_services, user, later):
    chat_repo = wrapup_services["chat_repo"]
    await _conversation(chat_repo, "idle-auth", Authenticated(user.id))
    await _conversation(chat_repo, "idle-anon", Anonymous(-31))

    assert await wrapup_idle_sessions(wrapup_services, 15, now=later) == 1
    memories = await wrapup_services["memory_repo"].get_top_memories(user.id)
    assert [m.source_chat_id for m in memories] == ["idle-auth"]

    # Nothing new since the summary
    assert await wrapup_idle_sessions(wrapup_services, 15, now=later) == 0


@pytest.mark.anyio
async def test_short_or_active_chats_are_skipped(wrapup_services, user, later):
    chat_repo = wrapup_services["chat_repo"]
    await _conversation(chat_repo, "short", Authenticated(user.id), pairs=2)
    assert await wrapup_idle_sessions(wrapup_services, 15, now=later) == 0

    await _conversation(chat_repo, "fresh", Authenticated(user.id))
    assert await wrapup_idle_sessions(wrapup_services, 15, now=utc_now()) == 0
