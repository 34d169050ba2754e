"""Moderation listing for screener hits."""

from fastapi import APIRouter, Depends, Query, Request

from ..core.errors import SupportBotError
from .security import require_system_key

router = APIRouter(prefix="/security", tags=["security"], dependencies=[Depends(require_system_key)])


class ThreatNotFoundError(SupportBotError):
    code = "THREAT_NOT_FOUND"
    status_code = 404


@router.get("/threats")
async def list_threats(
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    unhandled_only: bool = Query(False),
):
    threat_repo = request.app.state.services["threat_repo"]
    threats = await threat_repo.recent_threats(limit=limit, unhandled_only=unhandled_only)
    return {"threats": [t.to_dict() for t in threats], "count": len(threats)}


@router.post("/threats/{threat_id}/handled")
async def mark_threat_handled(request: Request, threat_id: int):
    threat_repo = request.app.state.services["threat_repo"]
    if not await threat_repo.mark_handled(threat_id):
        raise ThreatNotFoundError("Threat not found", {"threat_id": threat_id})
    return {"id": threat_id, "handled": True}
