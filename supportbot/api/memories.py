"""Saved memories of the signed-in user."""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response

from ..core.errors import SupportBotError
from ..core.identity import Authenticated
from .security import require_authenticated

logger = logging.getLogger("supportbot.api.memories")

router = APIRouter(prefix="/memories", tags=["memories"])


class MemoryNotFoundError(SupportBotError):
    code = "MEMORY_NOT_FOUND"
    status_code = 404


@router.get("")
async def list_memories(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    identity: Authenticated = Depends(require_authenticated),
):
    memory_repo = request.app.state.services["memory_repo"]
    memories = await memory_repo.list_for_owner(identity.user_id, limit=limit)
    return {"memories": [m.to_dict() for m in memories], "count": len(memories)}


@router.delete("/{memory_id}", status_code=204)
async def delete_memory(
    request: Request,
    memory_id: int,
    identity: Authenticated = Depends(require_authenticated),
):
    memory_repo = request.app.state.services["memory_repo"]
    # Someone else's memory looks exactly like a missing one
    if not await memory_repo.soft_delete(memory_id, identity.user_id):
        raise MemoryNotFoundError("Memory not found", {"memory_id": memory_id})
    logger.info(f"User {identity.user_id} deleted memory {memory_id}")
    return Response(status_code=204)
