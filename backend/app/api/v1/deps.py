# app/api/v1/deps.py
from fastapi import Depends, Header, HTTPException, Request, status
from app.core.reward_status import RewardStatusRegistry
from app.core.security import decode_access_token
from app.models.user import User
from app.services.ai_base import AssetStorage, ChatService, ImageService, ModerationService, VoiceService
from app.services.game_service import GameService, RoundLocks
from app.services.persona_pool import PersonaPool
from app.services.persona_reply import PersonaReplyGenerator
from app.services.provider_factory import (
    get_asset_storage,
    get_chat_service,
    get_image_service,
    get_moderation_service,
    get_voice_service,
)
from app.services.quality_evaluator import QualityEvaluator
from app.services.reward_service import RewardFlights, RewardOrchestrator
from app.services.round_store import RoundStore
from app.services.safety_gate import SafetyGate

async def get_current_user(
    request: Request,
    authorization: str | None = Header(default=None),
):
    """
    FastAPI dependency to get the current authenticated user.

    Tokens are minted by the external auth service (HS256, shared secret).
    The token is read from either:
    1. Authorization header (Bearer token) - preferred method
    2. HttpOnly cookie (accessToken) - fallback method

    Raises:
        HTTPException (401): If no token is provided (AUTH_REQUIRED)
        HTTPException (401): If token is invalid or expired (AUTH_INVALID_TOKEN)
        HTTPException (401): If user not found in database (AUTH_USER_NOT_FOUND)
    """
    token = None
    # 1) Prioritize Authorization: Bearer xxx
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    # 2) Secondly HttpOnly Cookie: accessToken
    if not token:
        token = request.cookies.get("accessToken")

    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_REQUIRED")

    try:
        payload = decode_access_token(token)
        user_id: str = payload.get("sub")
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_INVALID_TOKEN")

    user = await User.get_or_none(id=user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTH_USER_NOT_FOUND")
    return user

async def require_admin(current: User = Depends(get_current_user)) -> User:
    """
    FastAPI dependency to ensure the current user is an administrator.

    Raises:
        HTTPException (403): If user is not an admin (FORBIDDEN_ADMIN_ONLY)
        HTTPException (401): If user is not authenticated (from get_current_user)
    """
    if getattr(current, "role", "user") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN_ADMIN_ONLY")
    return current

# ===== Process-scoped state (created in app.main, lives on app.state) =====

def get_reward_status_registry(request: Request) -> RewardStatusRegistry:
    return request.app.state.reward_status

def get_round_locks(request: Request) -> RoundLocks:
    return request.app.state.round_locks

def get_reward_flights(request: Request) -> RewardFlights:
    return request.app.state.reward_flights

# ===== Services =====

def get_round_store(storage: AssetStorage = Depends(get_asset_storage)) -> RoundStore:
    return RoundStore(storage)

def get_game_service(
    store: RoundStore = Depends(get_round_store),
    chat: ChatService = Depends(get_chat_service),
    moderation: ModerationService = Depends(get_moderation_service),
    locks: RoundLocks = Depends(get_round_locks),
) -> GameService:
    """
    Scoring pipeline wired to the configured providers.
    Tests override the provider getters to inject fakes.
    """
    return GameService(
        store=store,
        gate=SafetyGate(moderation),
        evaluator=QualityEvaluator(chat),
        replier=PersonaReplyGenerator(chat),
        locks=locks,
    )

def get_reward_orchestrator(
    store: RoundStore = Depends(get_round_store),
    chat: ChatService = Depends(get_chat_service),
    voice: VoiceService = Depends(get_voice_service),
    images: ImageService = Depends(get_image_service),
    storage: AssetStorage = Depends(get_asset_storage),
    registry: RewardStatusRegistry = Depends(get_reward_status_registry),
    flights: RewardFlights = Depends(get_reward_flights),
) -> RewardOrchestrator:
    return RewardOrchestrator(
        chat=chat,
        voice=voice,
        images=images,
        storage=storage,
        store=store,
        status=registry,
        flights=flights,
    )

def get_persona_pool(
    store: RoundStore = Depends(get_round_store),
    images: ImageService = Depends(get_image_service),
    storage: AssetStorage = Depends(get_asset_storage),
) -> PersonaPool:
    return PersonaPool(images, storage, store)
