from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from dmscreen.core.engine.dice import DiceRoll

DamageModifier = Literal["none", "resistance", "vulnerability"]


class PayloadBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AttackRollPayload(PayloadBase):
    kind: Literal["attack"] = "attack"
    roll: DiceRoll
    target_ac: Optional[int] = None
    hit: Optional[bool] = None
    is_critical: bool = False


class DamagePayload(PayloadBase):
    kind: Literal["damage"] = "damage"
    raw: int
    adjusted: int
    modifier: DamageModifier = "none"
    damage_type: Optional[str] = None
    is_healing: bool = False
    is_temp_hp: bool = False
    temp_hp_before: int = 0
    temp_hp_after: int = 0
    hp_before: int = 0
    hp_after: int = 0
    roll: Optional[DiceRoll] = None


class SavePayload(PayloadBase):
    kind: Literal["save"] = "save"
    save_type: str
    dc: int
    roll: Optional[DiceRoll] = None
    success: Optional[bool] = None


class FreeRollPayload(PayloadBase):
    kind: Literal["roll"] = "roll"
    roll: DiceRoll


RollData = Annotated[
    Union[AttackRollPayload, DamagePayload, SavePayload, FreeRollPayload],
    Field(discriminator="kind"),
]
