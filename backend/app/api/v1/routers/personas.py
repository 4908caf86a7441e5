import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from app.api.v1.deps import get_current_user, get_persona_pool, require_admin
from app.api.v1.routers.game import parse_uuid
from app.models.persona import PersonaProfile
from app.models.user import User
from app.schemas.persona import PersonaCreateIn
from app.services.persona_pool import PersonaPool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/personas", tags=["personas"])

def persona_item(p: PersonaProfile) -> dict:
    return {
        "id": str(p.id),
        "name": p.name,
        "imageUrl": p.image_url,
        "description": p.description,
        "personaStyle": p.persona_style,
        "source": p.source,
        "useCount": p.use_count,
        "rewardsGenerated": p.rewards_generated,
    }

@router.get("/random", response_model=dict)
async def random_personas(
    count: int = Query(3, ge=1, le=10),
    user: User = Depends(get_current_user),
    pool: PersonaPool = Depends(get_persona_pool),
):
    """
    Random distinct personas from the pool (fewer when the pool is small).
    """
    rows = await pool.sample(count)
    return {"success": True, "data": {"items": [persona_item(p) for p in rows], "poolSize": await pool.size()}}

@router.post("", response_model=dict)
async def add_persona(
    body: PersonaCreateIn,
    admin: User = Depends(require_admin),
    pool: PersonaPool = Depends(get_persona_pool),
):
    """
    Add a persona to the pool (admin only).
    The portrait is generated with retries; on failure the placeholder is used
    and the entry is marked source="placeholder".
    """
    p = await pool.add(
        name=body.name.strip(),
        attributes=body.attributes,
        persona_style=body.personaStyle,
        description=body.description,
    )
    logger.info("[Personas] admin %s added persona %s", admin.id, p.id)
    return {"success": True, "data": persona_item(p)}

@router.delete("/{pid}", response_model=dict)
async def remove_persona(
    pid: str,
    admin: User = Depends(require_admin),
    pool: PersonaPool = Depends(get_persona_pool),
):
    """
    Remove a persona and its stored assets (admin only).
    Rounds played against it keep their snapshot.

    Raises:
        HTTPException (404): PERSONA_NOT_FOUND
    """
    removed = await pool.remove(parse_uuid(pid, "INVALID_PERSONA_ID"))
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="PERSONA_NOT_FOUND")
    return {"success": True}
