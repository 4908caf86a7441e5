# app/schemas/game.py
"""
Pydantic schemas for game round endpoints.
Defines request models for starting rounds and sending messages, and the
shape of round items returned by list/detail endpoints.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class InlinePersonaIn(BaseModel):
    """
    Persona data supplied directly by the client instead of a pool entry.
    Rounds started this way never use the persona reward cache.
    """
    name: str = Field(min_length=1, max_length=64)  # Display name
    imageUrl: Optional[str] = None  # Portrait URL (placeholder when omitted)
    description: Optional[str] = None  # Appearance text used for the reward photo
    personaStyle: str = "playful"  # Personality type, e.g. "playful", "confident"


class StartRoundIn(BaseModel):
    """
    Request model for starting a round.
    Either personaId (pool entry) or persona (inline) may be given;
    with neither, a random pool persona is used.
    """
    personaId: Optional[str] = None  # Pool persona UUID
    persona: Optional[InlinePersonaIn] = None  # Inline persona data


class SendMessageIn(BaseModel):
    """
    Request model for sending one user message in a round.
    Length and content rules are checked by the scoring pipeline.
    """
    message: str  # Raw user message text


class RoundItem(BaseModel):
    """
    Round summary used in list responses.
    """
    id: str  # Round unique identifier
    personaId: Optional[str] = None  # Pool persona (None for inline or removed personas)
    personaName: str  # Persona display name (snapshot)
    personaImageUrl: Optional[str] = None  # Portrait URL (snapshot)
    meter: int  # Current success meter value (0-100)
    combo: int  # Current combo level (0-5)
    highestCombo: int  # Best combo reached in this round
    messageCount: int  # Number of scored user messages
    result: Optional[str] = None  # "win" | "lose" | None while active
    status: str  # "active" | "won" | "lost"
    xpGained: int = 0  # XP awarded at completion
    startedAt: str  # ISO timestamp
    completedAt: Optional[str] = None  # ISO timestamp, None while active


class RoundListOut(BaseModel):
    """
    Response model for paginated round list endpoint.
    """
    items: List[RoundItem]  # Rounds, newest first
    offset: int  # Pagination offset (number of items skipped)
    limit: int  # Maximum number of items per page
    total: int  # Total number of rounds for the user


class RoundDetailOut(BaseModel):
    """
    Round detail with its message records (ordered by seq).
    """
    round: RoundItem
    messages: List[Dict[str, Any]]


__all__ = [
    "InlinePersonaIn",
    "StartRoundIn",
    "SendMessageIn",
    "RoundItem",
    "RoundListOut",
    "RoundDetailOut",
]
