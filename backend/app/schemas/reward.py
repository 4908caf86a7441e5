# app/schemas/reward.py
"""
Pydantic schemas for reward endpoints.
"""
from pydantic import BaseModel
from typing import Optional, Dict


class GenerateRewardIn(BaseModel):
    """
    Request model for explicit reward generation.
    """
    roundId: str  # Round UUID (must be a won round owned by the caller)


class RewardOut(BaseModel):
    """
    Reward returned to the client.
    Voice and image are optional: a failed asset is simply missing.
    """
    id: str
    roundId: str
    rewardText: str  # Flirtatious text (10-60 words)
    rewardVoiceUrl: Optional[str] = None  # Audio URL (None when voice failed)
    rewardImageUrl: Optional[str] = None  # Photo URL (None when photo failed)
    generationTimeMs: int  # Total generation time
    breakdown: Dict[str, int] = {}  # {"textMs", "voiceMs", "imageMs"}
    fromCache: bool = False  # Copied from the persona reward cache
    createdAt: Optional[str] = None


class RewardStatusOut(BaseModel):
    """
    Generation progress polled by the client.
    status is "generating" | "retrying" | "completed" | "failed" | "unknown".
    """
    status: str
    message: str = ""
    attempt: Optional[int] = None
    maxAttempts: Optional[int] = None
    timestamp: Optional[int] = None  # Milliseconds since epoch


__all__ = ["GenerateRewardIn", "RewardOut", "RewardStatusOut"]
