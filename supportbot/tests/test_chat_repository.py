import asyncio

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError

from supportbot.core.errors import PersistenceConflict, PersistenceError
from supportbot.core.identity import NO_IDENTITY, Anonymous, Authenticated
from supportbot.core.outcome import Err, Ok
from supportbot.db.models.chat import Message, TurnSender
from supportbot.db.repositories.chat import ChatRepository, is_duplicate_turn_error
from supportbot.db.repositories.memory import MemoryRepository
from supportbot.db.session import Database, init_db

ANON = Anonymous(-12345)


@pytest.fixture
def chat_repo(database):
    return ChatRepository(database, conflict_retry_delay=0.0)


async def _row_count(database, chat_id, text):
    async with database.session() as db:
        result = await db.execute(
            select(func.count(Message.id)).where(Message.chat_id == chat_id).where(Message.text == text)
        )
        return result.scalar_one()


@pytest.mark.anyio
async def test_save_turn_twice_yields_one_row(chat_repo, database):
    await chat_repo.save_session("chat-1", ANON)
    first = await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "Where is my parcel?")
    second = await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "Where is my parcel?")

    assert first.id == second.id
    assert first.to_dict() == second.to_dict()
    assert await _row_count(database, "chat-1", "Where is my parcel?") == 1


@pytest.mark.anyio
async def test_concurrent_duplicate_inserts_resolve_to_one_row(chat_repo, database):
    await chat_repo.save_session("chat-1", ANON)
    results = await asyncio.gather(*[
        chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "same text") for _ in range(5)
    ])
    assert len({r.id for r in results}) == 1
    assert await _row_count(database, "chat-1", "same text") == 1


@pytest.mark.anyio
async def test_same_text_different_sender_is_distinct(chat_repo):
    await chat_repo.save_session("chat-1", ANON)
    user_turn = await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "hello")
    bot_turn = await chat_repo.save_turn("chat-1", ANON, TurnSender.ASSISTANT, "hello")
    assert user_turn.id != bot_turn.id


@pytest.mark.anyio
async def test_conflict_without_matching_row_retries_once(chat_repo, monkeypatch):
    await chat_repo.save_session("chat-1", ANON)
    real_insert = chat_repo._insert_turn
    calls = []

    async def flaky_insert(*args):
        calls.append(args)
        if len(calls) == 1:
            raise PersistenceConflict("simulated race")
        return await real_insert(*args)

    monkeypatch.setattr(chat_repo, "_insert_turn", flaky_insert)
    turn = await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "retry me")
    assert turn.text == "retry me"
    assert len(calls) == 2


@pytest.mark.anyio
async def test_persistent_conflict_raises_persistence_error(chat_repo, monkeypatch):
    async def always_conflict(*args):
        raise PersistenceConflict("simulated race")

    async def never_found(*args):
        return None

    monkeypatch.setattr(chat_repo, "_insert_turn", always_conflict)
    monkeypatch.setattr(chat_repo, "_find_turn", never_found)
    with pytest.raises(PersistenceError):
        await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "lost")


@pytest.mark.anyio
async def test_context_history_in_turn_order(chat_repo):
    await chat_repo.save_session("chat-1", ANON)
    await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "q1")
    await chat_repo.save_turn("chat-1", ANON, TurnSender.ASSISTANT, "a1 part 1", "refund policy")
    await chat_repo.save_turn("chat-1", ANON, TurnSender.ASSISTANT, "a1 part 2", "refund policy")
    await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, "q2")
    await chat_repo.save_turn("chat-1", ANON, TurnSender.ASSISTANT, "a2", "   ")
    await chat_repo.save_turn("chat-1", ANON, TurnSender.ASSISTANT, "a3", "shipping delays")

    assert await chat_repo.get_context_history("chat-1") == ["refund policy", "shipping delays"]


@pytest.mark.anyio
async def test_recent_turns_window_is_chronological(chat_repo):
    await chat_repo.save_session("chat-1", ANON)
    for i in range(6):
        await chat_repo.save_turn("chat-1", ANON, TurnSender.USER, f"turn {i}")
    recent = await chat_repo.get_recent_turns("chat-1", limit=3)
    assert [t.text for t in recent] == ["turn 3", "turn 4", "turn 5"]
    assert await chat_repo.count_turns("chat-1") == 6


@pytest.mark.anyio
async def test_title_is_set_once(chat_repo):
    await chat_repo.save_session("chat-1", ANON)
    assert await chat_repo.update_session_title("chat-1", "First")
    assert not await chat_repo.update_session_title("chat-1", "Second")
    found = await chat_repo.get_session_for("chat-1", ANON)
    assert isinstance(found, Ok)
    assert found.value.title == "First"


@pytest.mark.anyio
async def test_sessions_are_private_to_their_owner(chat_repo):
    owner = Authenticated(5)
    assert isinstance(await chat_repo.get_or_create_session("chat-1", owner), Ok)
    assert isinstance(await chat_repo.get_or_create_session("chat-1", owner), Ok)

    stranger = await chat_repo.get_or_create_session("chat-1", ANON)
    assert isinstance(stranger, Err)
    assert stranger.kind == "chat_not_found"

    # Same number, other tag: never the same owner
    assert isinstance(await chat_repo.get_session_for("chat-1", Anonymous(-5)), Err)


@pytest.mark.anyio
async def test_soft_delete_orphans_memories(chat_repo, database, services, user):
    owner = Authenticated(user.id)
    await chat_repo.get_or_create_session("chat-1", owner)
    memory_repo = MemoryRepository(database)
    memory = await memory_repo.create_memory(user.id, "title", "content", source_chat_id="chat-1")

    async with database.session() as db:
        assert await chat_repo.soft_delete_session("chat-1", session=db)
        assert await memory_repo.orphan_chat_memories("chat-1", session=db) == 1

    assert isinstance(await chat_repo.get_session_for("chat-1", owner), Err)
    remaining = await memory_repo.get_top_memories(user.id)
    assert [m.id for m in remaining] == [memory.id]
    assert remaining[0].source_chat_id is None


@pytest.mark.anyio
async def test_memories_only_for_authenticated_owners(database):
    with pytest.raises(ValueError):
        await MemoryRepository(database).create_memory(-3, "t", "c")


@pytest.fixture
async def strict_database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'supportbot-fk.db'}")

    @event.listens_for(db.engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await init_db(db)
    try:
        yield db
    finally:
        await db.dispose()


@pytest.mark.anyio
async def test_turn_for_unknown_chat_is_not_treated_as_duplicate(strict_database, monkeypatch):
    chat_repo = ChatRepository(strict_database, conflict_retry_delay=0.0)
    lookups = []

    async def recording_find(chat_id, sender, text):
        lookups.append(chat_id)
        return None

    monkeypatch.setattr(chat_repo, "_find_turn", recording_find)

    with pytest.raises(PersistenceError) as excinfo:
        await chat_repo.save_turn("no-such-chat", ANON, TurnSender.USER, "Hello?")

    assert not isinstance(excinfo.value, PersistenceConflict)
    assert excinfo.value.details == {"chat_id": "no-such-chat", "sender": "user"}
    assert lookups == []


def test_only_the_turn_uniqueness_violation_counts_as_duplicate():
    def integrity_error(message):
        return IntegrityError("INSERT INTO messages", {}, Exception(message))

    assert is_duplicate_turn_error(integrity_error(
        'duplicate key value violates unique constraint "uq_messages_chat_sender_text"'
    ))
    assert is_duplicate_turn_error(integrity_error(
        "UNIQUE constraint failed: messages.chat_id, messages.sender, messages.text_hash"
    ))
    assert not is_duplicate_turn_error(integrity_error("FOREIGN KEY constraint failed"))
    assert not is_duplicate_turn_error(integrity_error("NOT NULL constraint failed: messages.text"))


@pytest.mark.anyio
async def test_list_sessions_for_owner_only(chat_repo):
    owner = Authenticated(5)
    await chat_repo.save_session("chat-a", owner)
    await chat_repo.save_session("chat-b", ANON)
    await chat_repo.save_session("chat-c", owner)
    await chat_repo.save_turn("chat-a", owner, TurnSender.USER, "Newest activity")
    await chat_repo.save_session("chat-d", owner)
    await chat_repo.soft_delete_session("chat-d")

    assert [c.id for c in await chat_repo.list_sessions_for(owner)][0] == "chat-a"
    assert {c.id for c in await chat_repo.list_sessions_for(owner)} == {"chat-a", "chat-c"}
    assert [c.id for c in await chat_repo.list_sessions_for(ANON)] == ["chat-b"]
    assert await chat_repo.list_sessions_for(Anonymous(-5)) == []
    assert await chat_repo.list_sessions_for(NO_IDENTITY) == []


@pytest.mark.anyio
async def test_memory_soft_delete_is_owner_scoped(database, services, user):
    memory_repo = MemoryRepository(database)
    other = await services["user_repo"].create_user(email="sam@example.com", display_name="Sam")
    mine = await memory_repo.create_memory(user.id, "Mine", "Point 1: mine")
    theirs = await memory_repo.create_memory(other.id, "Theirs", "Point 1: theirs")

    assert not await memory_repo.soft_delete(theirs.id, user.id)
    assert [m.id for m in await memory_repo.list_for_owner(other.id)] == [theirs.id]

    assert await memory_repo.soft_delete(mine.id, user.id)
    assert not await memory_repo.soft_delete(mine.id, user.id)
    assert await memory_repo.list_for_owner(user.id) == []
    assert await memory_repo.get_top_memories(user.id) == []
