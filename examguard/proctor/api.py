"""
Proctoring API - FastAPI endpoints over the infraction Authority

Endpoints:
- POST /api/proctor/message - Dispatch a raw {"type": ...} authority message
- POST /api/proctor/infractions - Record an infraction
- GET /api/proctor/blocked/{identity} - Block status for an identity
- GET /api/proctor/status - Full ledger snapshot
- POST /api/proctor/unblock - Administrative unblock
- POST /api/proctor/clear - Clear all ledger data
- GET /api/proctor/health - Authority health
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from ..config import settings
from .authority import Authority
from .exceptions import UnknownMessageError
from .ledger import InfractionLedger
from .messages import RecordInfractionRequest, UnblockRequest
from .storage import create_ledger_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/proctor", tags=["Proctoring"])

# One Authority per process; it owns the ledger and its store
_authority: Optional[Authority] = None


def get_authority() -> Authority:
    """Process-wide Authority built from settings on first use"""
    global _authority
    if _authority is None:
        ledger = InfractionLedger(
            threshold=settings.INFRACTION_THRESHOLD,
            snapshot_events=settings.BLOCK_SNAPSHOT_EVENTS,
            history_limit=settings.EVENT_HISTORY_LIMIT,
        )
        _authority = Authority(ledger, create_ledger_store(settings))
    return _authority


async def shutdown_authority():
    global _authority
    if _authority is not None:
        await _authority.close()
        _authority = None


class HealthResponse(BaseModel):
    status: str
    threshold: int
    blocked_count: int
    tracked_identities: int


# ============== API Endpoints ==============

@router.post("/message")
async def dispatch_message(
    message: Dict[str, Any] = Body(...),
    authority: Authority = Depends(get_authority)
):
    """
    Dispatch one authority message.

    Body is the wire form, e.g.
    {"type": "recordInfraction", "identity": "s-1", "infractionType": "TAB_SWITCH"}
    """
    try:
        return await authority.handle(message)
    except (UnknownMessageError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to handle authority message: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/infractions")
async def record_infraction(
    request: RecordInfractionRequest,
    authority: Authority = Depends(get_authority)
):
    """Record an infraction and return the escalation decision"""
    try:
        response = await authority.record_infraction(
            request.identity,
            request.infraction_type,
            request.details,
            request.page,
        )
        return response.to_wire()
    except Exception as e:
        logger.error(f"Failed to record infraction: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/blocked/{identity}")
async def get_block_status(identity: str, authority: Authority = Depends(get_authority)):
    response = await authority.is_blocked(identity)
    return response.to_wire()


@router.get("/status")
async def get_status(authority: Authority = Depends(get_authority)):
    """All per-identity records and the block list"""
    response = await authority.get_status()
    return response.to_wire()


@router.post("/unblock")
async def unblock(request: UnblockRequest, authority: Authority = Depends(get_authority)):
    if not request.identity.strip():
        raise HTTPException(status_code=400, detail="identity is required")
    response = await authority.unblock_id(request.identity)
    return response.to_wire()


@router.post("/clear")
async def clear_all(authority: Authority = Depends(get_authority)):
    response = await authority.clear_all_data()
    return response.to_wire()


@router.get("/health", response_model=HealthResponse)
async def health(authority: Authority = Depends(get_authority)):
    status = await authority.get_status()
    return HealthResponse(
        status="healthy",
        threshold=authority.threshold,
        blocked_count=len(status.blocked_ids),
        tracked_identities=len(status.infractions),
    )
