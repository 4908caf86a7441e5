from fastapi import APIRouter, Depends
from app.api.v1.deps import get_current_user
from app.models.user import User
from app.services.progress import progress_summary

router = APIRouter(prefix="/progress", tags=["progress"])

@router.get("/me", response_model=dict)
async def my_progress(user: User = Depends(get_current_user)):
    """
    Level, XP progress towards the next level, totals and streaks of the caller.
    """
    return {"success": True, "data": {"userId": str(user.id), "username": user.username, **progress_summary(user)}}
