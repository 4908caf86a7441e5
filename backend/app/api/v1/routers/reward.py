import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from app.api.v1.deps import get_current_user, get_reward_orchestrator, get_reward_status_registry
from app.api.v1.routers.game import parse_uuid
from app.core.exceptions import NotFoundError, RewardGenerationError, StateConflictError
from app.core.reward_status import RewardStatusRegistry
from app.models.reward import Reward
from app.models.round import GameRound
from app.models.user import User
from app.schemas.reward import GenerateRewardIn
from app.services import success_meter
from app.services.reward_service import RewardOrchestrator, serialize_reward

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reward", tags=["reward"])

def _already_exists(reward: Reward) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"success": False, "detail": "REWARD_ALREADY_EXISTS", "data": serialize_reward(reward)},
    )

async def _owned_round(round_id: str, user: User) -> GameRound:
    rid = parse_uuid(round_id, "INVALID_ROUND_ID")
    r = await GameRound.get_or_none(id=rid)
    if not r:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ROUND_NOT_FOUND")
    if r.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN")
    return r

@router.post("/generate", response_model=dict)
async def generate_reward(
    body: GenerateRewardIn,
    user: User = Depends(get_current_user),
    orchestrator: RewardOrchestrator = Depends(get_reward_orchestrator),
):
    """
    Generate the reward for a won round.

    Concurrent calls for the same round (including the background task started
    by the winning message) share one generation; only the caller that started
    it gets 200, the others get 409 with the reward in the body.

    Raises:
        HTTPException (400): INVALID_ROUND_ID
        HTTPException (403): FORBIDDEN (round belongs to someone else)
        HTTPException (404): ROUND_NOT_FOUND
        HTTPException (409): ROUND_NOT_WON / REWARD_ALREADY_EXISTS
        HTTPException (500): REWARD_GENERATION_FAILED
    """
    r = await _owned_round(body.roundId, user)
    if r.result != success_meter.RESULT_WIN:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ROUND_NOT_WON")

    existing = await Reward.get_or_none(round_id=r.id)
    if existing:
        return _already_exists(existing)

    try:
        outcome = await orchestrator.generate_reward(r.id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ROUND_NOT_FOUND")
    except StateConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.code)
    except RewardGenerationError as e:
        logger.error("[Reward] generation failed for round %s: %s", r.id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="REWARD_GENERATION_FAILED")

    if not outcome.created:
        return _already_exists(outcome.reward)
    return {"success": True, "data": outcome.to_dict()}

@router.get("/status", response_model=dict)
async def get_reward_status(
    roundId: str = Query(...),
    user: User = Depends(get_current_user),
    registry: RewardStatusRegistry = Depends(get_reward_status_registry),
):
    """
    Poll generation progress of one of the caller's rounds.
    Unknown or expired entries read as {"status": "unknown"}.

    Raises:
        HTTPException (400): INVALID_ROUND_ID
        HTTPException (403): FORBIDDEN
        HTTPException (404): ROUND_NOT_FOUND
    """
    r = await _owned_round(roundId, user)
    entry = registry.get(str(r.id))
    if entry is None:
        return {"success": True, "data": {"status": "unknown"}}
    return {"success": True, "data": entry.to_dict()}

@router.get("/rounds/{rid}", response_model=dict)
async def get_round_reward(rid: str, user: User = Depends(get_current_user)):
    """
    Fetch the stored reward of one of the caller's rounds.

    Raises:
        HTTPException (404): ROUND_NOT_FOUND / REWARD_NOT_FOUND
        HTTPException (403): FORBIDDEN
    """
    r = await _owned_round(rid, user)
    reward = await Reward.get_or_none(round_id=r.id)
    if not reward:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="REWARD_NOT_FOUND")
    return {"success": True, "data": serialize_reward(reward)}
