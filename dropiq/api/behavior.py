from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.auth.security import rate_limiter_dependency
from dropiq.core.database import get_async_session
from dropiq.core.profiles import record_behavior_event
from dropiq.core.time_utils import isoformat_utc, parse_utc
from dropiq.models.database import User as ORMUser

router = APIRouter(prefix="/behavior", tags=["behavior"])

EVENT_TYPES = (
    "page_view",
    "airdrop_view",
    "airdrop_interact",
    "wallet_connect",
    "task_start",
    "task_complete",
    "search",
    "filter",
    "click",
)


class TrackEventRequest(BaseModel):
    event_type: str
    event_name: Optional[str] = None
    event_data: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = None
    duration: Optional[float] = None
    timestamp: Optional[str] = None

    def validate_basic(self) -> None:
        if self.event_type not in EVENT_TYPES:
            raise HTTPException(status_code=400, detail=f"Unknown event_type: {self.event_type}")
        if self.duration is not None and self.duration < 0:
            raise HTTPException(status_code=400, detail="duration must be non-negative")
        if self.timestamp is not None and parse_utc(self.timestamp) is None:
            raise HTTPException(status_code=400, detail="Invalid timestamp")
        data = self.event_data or {}
        gas = data.get("gasSpent")
        if gas is not None and (isinstance(gas, bool) or not isinstance(gas, (int, float)) or gas < 0):
            raise HTTPException(status_code=400, detail="event_data.gasSpent must be a non-negative number")
        if "success" in data and not isinstance(data["success"], bool):
            raise HTTPException(status_code=400, detail="event_data.success must be a boolean")
        if "chainId" in data and not isinstance(data["chainId"], str):
            raise HTTPException(status_code=400, detail="event_data.chainId must be a string")


@router.post("/track")
async def track_event(
    payload: TrackEventRequest,
    user: ORMUser = Depends(rate_limiter_dependency),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    event = await record_behavior_event(
        session,
        user.id,
        payload.event_type,
        event_name=payload.event_name,
        event_data=payload.event_data,
        session_id=payload.session_id,
        duration=payload.duration,
        timestamp=parse_utc(payload.timestamp),
    )
    return {
        "success": True,
        "data": {"id": event.id, "event_type": event.event_type, "timestamp": isoformat_utc(event.timestamp)},
    }
