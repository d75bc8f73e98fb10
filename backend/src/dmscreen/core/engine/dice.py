from __future__ import annotations

from datetime import datetime, timezone
from random import Random
from typing import Literal, Optional, Protocol
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from dmscreen.core.errors import ValidationError

DiceType = Literal["d4", "d6", "d8", "d10", "d12", "d20", "d100"]
RollStatus = Literal["pending", "confirmed"]

DICE_SIDES: dict[str, int] = {
    "d4": 4,
    "d6": 6,
    "d8": 8,
    "d10": 10,
    "d12": 12,
    "d20": 20,
    "d100": 100,
}

MAX_DICE_COUNT = 100


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


class DiceRollRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dice_type: str
    dice_count: int = 1
    modifier: int = 0
    roll_type: Optional[str] = None  # "damage" | "initiative" | "attack" | ...
    roll_label: Optional[str] = None
    advantage: bool = False
    disadvantage: bool = False
    is_private: bool = False
    character_name: Optional[str] = None

    # для оптимистичного UI: локальная ссылка на pending-бросок
    client_ref: Optional[str] = None


class DiceRoll(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    status: RollStatus = "confirmed"
    client_ref: Optional[str] = None

    user_id: Optional[str] = None
    username: Optional[str] = None
    character_name: Optional[str] = None

    dice_type: DiceType
    dice_count: int
    modifier: int = 0
    results: list[int]
    kept: list[int]
    total: int

    roll_type: Optional[str] = None
    roll_label: Optional[str] = None
    advantage: bool = False
    disadvantage: bool = False
    is_private: bool = False

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def sides_for(dice_type: str) -> int:
    sides = DICE_SIDES.get(str(dice_type).lower().strip())
    if sides is None:
        raise ValidationError(
            "UNSUPPORTED_DIE",
            f"Unsupported dice type: {dice_type!r}",
            {"dice_type": dice_type, "supported": list(DICE_SIDES)},
        )
    return sides


def roll_values(
    rng: RandomSource,
    sides: int,
    count: int,
    modifier: int = 0,
    *,
    advantage: bool = False,
    disadvantage: bool = False,
) -> tuple[list[int], list[int], int]:
    """
    return (results, kept, total)

    Advantage/disadvantage работают только для одиночного d20: бросаем два,
    оба остаются в results, в total идёт больший/меньший.
    Если заданы оба флага, побеждает advantage.
    """
    if not 1 <= count <= MAX_DICE_COUNT:
        raise ValidationError(
            "BAD_DICE_COUNT",
            f"Dice count must be between 1 and {MAX_DICE_COUNT}",
            {"dice_count": count, "max": MAX_DICE_COUNT},
        )
    if sides not in DICE_SIDES.values():
        raise ValidationError(
            "UNSUPPORTED_DIE", f"Unsupported die size: d{sides}", {"sides": sides}
        )

    if sides == 20 and count == 1 and (advantage or disadvantage):
        a = rng.randint(1, 20)
        b = rng.randint(1, 20)
        kept = max(a, b) if advantage else min(a, b)
        return [a, b], [kept], kept + modifier

    results = [rng.randint(1, sides) for _ in range(count)]
    return results, list(results), sum(results) + modifier


def resolve_roll(
    req: DiceRollRequest,
    rng: Optional[RandomSource] = None,
    *,
    user_id: Optional[str] = None,
    username: Optional[str] = None,
    status: RollStatus = "confirmed",
) -> DiceRoll:
    rng = rng if rng is not None else Random()
    sides = sides_for(req.dice_type)

    results, kept, total = roll_values(
        rng,
        sides,
        req.dice_count,
        req.modifier,
        advantage=req.advantage,
        disadvantage=req.disadvantage,
    )

    return DiceRoll(
        status=status,
        client_ref=req.client_ref,
        user_id=user_id,
        username=username,
        character_name=req.character_name,
        dice_type=req.dice_type.lower().strip(),  # type: ignore[arg-type]
        dice_count=req.dice_count,
        modifier=req.modifier,
        results=results,
        kept=kept,
        total=total,
        roll_type=req.roll_type,
        roll_label=req.roll_label,
        advantage=req.advantage,
        disadvantage=req.disadvantage,
        is_private=req.is_private,
    )
