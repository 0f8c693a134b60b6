"""Schemas for events delivered by the community gateway relay."""

from pydantic import BaseModel, Field

from gecko_mint.services.issuance import IssuanceDecision


class MemberJoinedEvent(BaseModel):
    """A member joined the community."""

    member_id: int = Field(..., ge=0, description="Stable platform identifier of the member")
    guild_id: str | None = Field(None, description="Community the member joined")
    display_name: str | None = Field(None, max_length=100)
    discriminator: str | None = Field(None, max_length=10)


class SessionReadyEvent(BaseModel):
    """The relay's gateway session is connected."""

    bot_name: str = Field(..., min_length=1, max_length=100)
    bot_id: int | None = None


class EventAccepted(BaseModel):
    """Acknowledgement returned to the relay."""

    member_id: int | None = None
    decision: IssuanceDecision | None = None
