"""Inbound community events delivered by the gateway relay."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from gecko_mint.api.v1.dependencies import OrchestratorDep, RelayAuthDep
from gecko_mint.schemas.events import EventAccepted, MemberJoinedEvent, SessionReadyEvent
from gecko_mint.services.issuance import IssuanceDecision

router = APIRouter(prefix="/events", tags=["events"], dependencies=[RelayAuthDep])

# Decisions the relay should retry later rather than treat as delivered.
_RETRYABLE = {IssuanceDecision.REJECTED, IssuanceDecision.STORE_UNAVAILABLE}


@router.post(
    "/member-joined",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def member_joined(event: MemberJoinedEvent, orchestrator: OrchestratorDep) -> EventAccepted:
    """Accept a new-member event.

    Issuance runs in the background; the response only says whether it was
    scheduled. Busy or unavailable states answer 503 so the relay redelivers.
    """
    decision = await orchestrator.on_new_member(
        event.member_id,
        display_name=event.display_name,
        guild_id=event.guild_id,
    )
    if decision in _RETRYABLE:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=decision.value,
            headers={"Retry-After": "30"},
        )
    return EventAccepted(member_id=event.member_id, decision=decision)


@router.post("/ready", response_model=EventAccepted, status_code=status.HTTP_202_ACCEPTED)
async def session_ready(event: SessionReadyEvent, orchestrator: OrchestratorDep) -> EventAccepted:
    """Record that the relay's gateway session is up. Informational only."""
    orchestrator.on_session_ready(event.bot_name)
    return EventAccepted()
