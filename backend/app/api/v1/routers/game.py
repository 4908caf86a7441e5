import logging
import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from app.api.v1.deps import get_current_user, get_game_service, get_persona_pool, get_reward_orchestrator
from app.config import settings
from app.core.exceptions import NotFoundError, ProviderError, RewardGenerationError, StateConflictError, ValidationError
from app.models.round import GameRound
from app.models.user import User
from app.schemas.game import SendMessageIn, StartRoundIn
from app.services import combo, success_meter, xp
from app.services.game_service import GameService, serialize_message
from app.services.persona_pool import PersonaPool
from app.services.reward_service import RewardOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/game", tags=["game"])

# ===== Helpers =====
def parse_uuid(value: str, detail: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

def round_status(r: GameRound) -> str:
    if r.result == success_meter.RESULT_WIN:
        return success_meter.WON
    if r.result == success_meter.RESULT_LOSE:
        return success_meter.LOST
    return success_meter.ACTIVE

def round_item(r: GameRound) -> dict:
    return {
        "id": str(r.id),
        "personaId": str(r.persona_id) if r.persona_id else None,
        "personaName": r.persona_name,
        "personaImageUrl": r.persona_image_url,
        "personaStyle": r.persona_style,
        "meter": r.meter,
        "combo": r.combo,
        "highestCombo": r.highest_combo,
        "messageCount": r.message_count,
        "result": r.result,
        "status": round_status(r),
        "xpGained": r.xp_gained,
        "startedAt": r.started_at.isoformat() if r.started_at else None,
        "completedAt": r.completed_at.isoformat() if r.completed_at else None,
    }

async def generate_reward_in_background(orchestrator: RewardOrchestrator, round_id: str) -> None:
    """
    Background task scheduled when a message wins the round.
    The explicit POST /reward/generate converges on the same in-flight generation.
    """
    try:
        outcome = await orchestrator.generate_reward(round_id)
        logger.info("[Game] background reward for round %s ready (cache=%s)", round_id, outcome.from_cache)
    except RewardGenerationError as e:
        logger.error("[Game] background reward for round %s failed: %s", round_id, e)
    except Exception:
        logger.exception("[Game] background reward for round %s crashed", round_id)

# ===== Routes =====
@router.post("/rounds", response_model=dict)
async def start_round(
    body: StartRoundIn | None = None,
    user: User = Depends(get_current_user),
    pool: PersonaPool = Depends(get_persona_pool),
):
    """
    Start a new round.

    Persona selection:
    - body.persona: inline persona data (not a pool entry, never reward-cached)
    - body.personaId: a specific pool entry
    - neither: a random pool entry

    Raises:
        HTTPException (400): INVALID_PERSONA_ID
        HTTPException (404): PERSONA_NOT_FOUND
        HTTPException (503): PERSONA_POOL_EMPTY
    """
    body = body or StartRoundIn()
    persona = None
    if body.persona is not None:
        snapshot = {
            "persona_name": body.persona.name.strip(),
            "persona_image_url": body.persona.imageUrl or settings.placeholder_portrait_url,
            "persona_description": body.persona.description,
            "persona_style": body.persona.personaStyle,
        }
    else:
        if body.personaId:
            persona = await pool.get(parse_uuid(body.personaId, "INVALID_PERSONA_ID"))
            if persona is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="PERSONA_NOT_FOUND")
        else:
            picked = await pool.sample(1)
            if not picked:
                raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="PERSONA_POOL_EMPTY")
            persona = picked[0]
        await pool.mark_used(persona.id)
        snapshot = {
            "persona_name": persona.name,
            "persona_image_url": persona.image_url,
            "persona_description": persona.description,
            "persona_style": persona.persona_style,
        }

    r = await GameRound.create(
        user=user,
        persona=persona,
        initial_meter=settings.initial_meter,
        meter=settings.initial_meter,
        **snapshot,
    )
    return {"success": True, "data": {"round": round_item(r), "combo": combo.describe(0)}}

@router.get("/rounds", response_model=dict)
async def list_rounds(
    user: User = Depends(get_current_user),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
):
    """
    Paginated list of the caller's rounds, newest first.
    """
    total = await GameRound.filter(user=user).count()
    rows = await GameRound.filter(user=user).order_by("-started_at").offset(offset).limit(limit)
    items = [round_item(r) for r in rows]
    return {"success": True, "data": {"items": items, "offset": offset, "limit": limit, "total": total}}

@router.get("/rounds/{rid}", response_model=dict)
async def get_round_detail(rid: str, user: User = Depends(get_current_user)):
    """
    Round detail with every message record (ordered by seq).

    Raises:
        HTTPException (400): INVALID_ROUND_ID
        HTTPException (404): ROUND_NOT_FOUND (missing or owned by someone else)
    """
    r = await GameRound.get_or_none(id=parse_uuid(rid, "INVALID_ROUND_ID"), user=user)
    if not r:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ROUND_NOT_FOUND")
    messages = await r.messages.all().order_by("seq")
    return {
        "success": True,
        "data": {
            "round": round_item(r),
            "combo": combo.describe(r.combo),
            "messages": [serialize_message(m) for m in messages],
        },
    }

@router.post("/rounds/{rid}/messages", response_model=dict)
async def send_message(
    rid: str,
    body: SendMessageIn,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    game: GameService = Depends(get_game_service),
    orchestrator: RewardOrchestrator = Depends(get_reward_orchestrator),
):
    """
    Score one user message and return the persona's reply.

    When the message wins the round, reward generation is scheduled as a
    background task (AUTO_GENERATE_REWARD).

    Raises:
        HTTPException (400): INVALID_ROUND_ID / INVALID_MESSAGE
        HTTPException (404): ROUND_NOT_FOUND
        HTTPException (409): ROUND_ALREADY_COMPLETED
        HTTPException (503): AI_SERVICE_UNAVAILABLE (persona reply failed, nothing was saved)
    """
    round_id = parse_uuid(rid, "INVALID_ROUND_ID")
    try:
        result = await game.score_message(round_id, user, body.message)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="INVALID_MESSAGE") from e
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ROUND_NOT_FOUND") from e
    except StateConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.code) from e
    except ProviderError as e:
        logger.error("[Game] round %s: persona reply failed: %s", round_id, e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="AI_SERVICE_UNAVAILABLE") from e

    reward_pending = False
    if result.won and settings.auto_generate_reward:
        background_tasks.add_task(generate_reward_in_background, orchestrator, result.round_id)
        reward_pending = True

    data = result.to_dict()
    data["rewardPending"] = reward_pending
    return {"success": True, "data": data}

@router.get("/rounds/{rid}/xp-summary", response_model=dict)
async def get_xp_summary(rid: str, user: User = Depends(get_current_user)):
    """
    XP breakdown of a completed round, with the player's level before and after.

    Raises:
        HTTPException (404): ROUND_NOT_FOUND
        HTTPException (409): ROUND_NOT_COMPLETED
    """
    r = await GameRound.get_or_none(id=parse_uuid(rid, "INVALID_ROUND_ID"), user=user)
    if not r:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ROUND_NOT_FOUND")
    if r.result is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ROUND_NOT_COMPLETED")

    xp_before = int(r.xp_before or 0)
    xp_after = int(r.xp_after or xp_before)
    level_before = xp.level_for_xp(xp_before)
    level_after = xp.level_for_xp(xp_after)
    return {
        "success": True,
        "data": {
            "roundId": str(r.id),
            "result": r.result,
            "messageXpSum": r.message_xp_sum,
            "winXp": r.win_xp,
            "streakMultiplier": r.streak_multiplier,
            "totalXp": r.xp_gained,
            "xpBefore": xp_before,
            "xpAfter": xp_after,
            "levelBefore": level_before,
            "levelAfter": level_after,
            "leveledUp": level_after > level_before,
            "xpInfo": xp.xp_info(xp_after),
        },
    }
