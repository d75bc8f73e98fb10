from __future__ import annotations

import logging
from random import Random

from fastapi import APIRouter, Depends

from dmscreen.api.deps import get_gateway, get_identity
from dmscreen.api.schemas import DiceRollBody
from dmscreen.core.engine.dice import DiceRoll, DiceRollRequest, resolve_roll
from dmscreen.core.engine.state import Identity
from dmscreen.core.realtime.gateway import RealtimeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dice", tags=["dice"])

_rng = Random()


@router.post("/roll", response_model=DiceRoll)
def roll_dice(
    body: DiceRollBody,
    identity: Identity = Depends(get_identity),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    req = DiceRollRequest(**body.model_dump(exclude={"campaign_id"}))
    roll = resolve_roll(req, _rng, user_id=identity.user_id, username=identity.user_id)

    if body.campaign_id and not roll.is_private:
        n = gateway.publish_dice_roll(body.campaign_id, roll.model_dump(mode="json"))
        logger.debug("dice roll %s sent to %d campaign subscribers", roll.id, n)
    return roll
