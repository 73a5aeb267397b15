from fastapi import APIRouter, Depends

from app.schemas.me import MeOut
from app.services.auth import Actor, get_actor
from app.services.moderation import can_change_status

router = APIRouter()

@router.get("/me", response_model=MeOut)
async def me(actor: Actor = Depends(get_actor)) -> MeOut:
    return MeOut(
        user_id=actor.user_id,
        api_key_id=actor.api_key_id,
        role=actor.role,
        can_moderate=can_change_status(actor.role),
    )
