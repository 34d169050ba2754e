"""
Turn endpoints: submit a turn (streamed answer), list a chat's turns, list and delete chats.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Request, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..conversation.pipeline import TurnPipeline, TurnRequest
from ..core.cancellation import CancelToken
from ..core.errors import ChatNotFoundError
from ..core.identity import Identity, describe_identity
from ..core.outcome import Err
from ..db.session import get_db
from ..streaming.frames import STREAM_HEADERS, STREAM_MEDIA_TYPE, encode_frame
from .schemas import TurnSubmission
from .security import get_caller_identity, get_client_origin

logger = logging.getLogger("supportbot.api.turns")

router = APIRouter(tags=["turns"])

ChatId = Annotated[str, Path(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")]


@router.post("/turns/{chat_id}")
async def submit_turn(
    request: Request,
    chat_id: ChatId,
    submission: TurnSubmission,
    identity: Identity = Depends(get_caller_identity),
):
    text = submission.require_message()
    pipeline: TurnPipeline = request.app.state.services["turn_pipeline"]

    opened = await pipeline.open_session(chat_id, identity)
    if isinstance(opened, Err):
        raise ChatNotFoundError("Chat session not found", {"chat_id": chat_id})

    turn = TurnRequest(
        chat_id=chat_id,
        identity=identity,
        text=text,
        origin_ip=get_client_origin(request),
        user_agent=request.headers.get("User-Agent"),
    )
    cancel = CancelToken()
    logger.info(f"Turn submitted to chat {chat_id} by {describe_identity(identity)}")

    async def frame_stream():
        try:
            async for frame in pipeline.run(turn, cancel):
                yield encode_frame(frame)
        finally:
            # Reached on normal completion and when the response is torn down
            cancel.cancel()

    return StreamingResponse(frame_stream(), media_type=STREAM_MEDIA_TYPE, headers=STREAM_HEADERS)


@router.get("/turns/{chat_id}")
async def list_turns(
    request: Request,
    chat_id: ChatId,
    identity: Identity = Depends(get_caller_identity),
):
    chat_repo = request.app.state.services["chat_repo"]
    found = await chat_repo.get_session_for(chat_id, identity)
    if isinstance(found, Err):
        raise ChatNotFoundError("Chat session not found", {"chat_id": chat_id})
    turns = await chat_repo.list_turns(chat_id)
    return {
        "chat": found.value.to_dict(),
        "messages": [t.to_dict() for t in turns],
    }


@router.get("/chats")
async def list_chats(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(get_caller_identity),
):
    chat_repo = request.app.state.services["chat_repo"]
    chats = await chat_repo.list_sessions_for(identity, limit=limit)
    return {"chats": [c.to_dict() for c in chats], "count": len(chats)}


@router.delete("/chats/{chat_id}", status_code=204)
async def delete_chat(
    request: Request,
    chat_id: ChatId,
    identity: Identity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db),
):
    services = request.app.state.services
    chat_repo = services["chat_repo"]
    found = await chat_repo.get_session_for(chat_id, identity, session=db)
    if isinstance(found, Err):
        raise ChatNotFoundError("Chat session not found", {"chat_id": chat_id})

    # One transaction: the chat disappears and its memories become orphans together
    await chat_repo.soft_delete_session(chat_id, session=db)
    orphaned = await services["memory_repo"].orphan_chat_memories(chat_id, session=db)
    services["turn_pipeline"].completion_sessions.discard(chat_id)
    logger.info(f"Deleted chat {chat_id}; {orphaned} memories orphaned")
    return Response(status_code=204)
