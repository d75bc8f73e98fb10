# backend/src/dmscreen/core/engine/commands.py

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from dmscreen.core.engine.payloads import DamageModifier, RollData
from dmscreen.core.engine.state import ActionType, Condition, ParticipantType


class CommandBase(BaseModel):
    model_config = ConfigDict(extra="forbid")
    type: str


class StartCombat(CommandBase):
    type: Literal["StartCombat"] = "StartCombat"


class AdvanceTurn(CommandBase):
    type: Literal["AdvanceTurn"] = "AdvanceTurn"


class PauseCombat(CommandBase):
    type: Literal["PauseCombat"] = "PauseCombat"


class ResumeCombat(CommandBase):
    type: Literal["ResumeCombat"] = "ResumeCombat"


class EndCombat(CommandBase):
    type: Literal["EndCombat"] = "EndCombat"


class AddParticipant(CommandBase):
    type: Literal["AddParticipant"] = "AddParticipant"
    name: str
    participant_type: ParticipantType = "monster"
    initiative: int = 0
    initiative_roll: Optional[int] = None
    armor_class: int = 10
    max_hit_points: int
    current_hit_points: Optional[int] = None  # None -> = max_hit_points
    temporary_hit_points: int = 0
    conditions: List[Condition] = []
    is_visible: bool = True
    character_id: Optional[str] = None
    notes: Optional[str] = None
    stats: Dict[str, Any] = {}

    # можно задать id заранее (импорт/тесты); иначе генерируется
    participant_id: Optional[str] = None


class UpdateParticipant(CommandBase):
    type: Literal["UpdateParticipant"] = "UpdateParticipant"
    participant_id: str
    name: Optional[str] = None
    initiative: Optional[int] = None
    armor_class: Optional[int] = None
    max_hit_points: Optional[int] = None
    current_hit_points: Optional[int] = None
    temporary_hit_points: Optional[int] = None
    is_visible: Optional[bool] = None
    notes: Optional[str] = None


class ApplyHealthDelta(CommandBase):
    type: Literal["ApplyHealthDelta"] = "ApplyHealthDelta"
    participant_id: str
    amount: int
    is_healing: bool = False
    is_temp_hp: bool = False
    modifier: DamageModifier = "none"
    damage_type: Optional[str] = None
    description: Optional[str] = None

    # кто нанёс урон / вылечил; None -> сам участник
    source_id: Optional[str] = None

    @model_validator(mode="after")
    def _healing_clears_modifiers(self) -> "ApplyHealthDelta":
        # temp hp всегда считается лечением; resist/vuln к лечению не применяются
        if self.is_temp_hp:
            self.is_healing = True
        if self.is_healing:
            self.modifier = "none"
            self.damage_type = "healing"
        return self


class SetConditions(CommandBase):
    type: Literal["SetConditions"] = "SetConditions"
    participant_id: str
    conditions: List[Condition]


class DeactivateParticipant(CommandBase):
    type: Literal["DeactivateParticipant"] = "DeactivateParticipant"
    participant_id: str


class RecordAction(CommandBase):
    type: Literal["RecordAction"] = "RecordAction"
    actor_id: str
    target_id: Optional[str] = None
    action_type: ActionType
    action_name: str
    description: Optional[str] = None
    roll_data: Optional[RollData] = None
    damage: Optional[int] = None
    damage_type: Optional[str] = None
    success: Optional[bool] = None
    save_type: Optional[str] = None
    save_dc: Optional[int] = None


Command = Union[
    StartCombat,
    AdvanceTurn,
    PauseCombat,
    ResumeCombat,
    EndCombat,
    AddParticipant,
    UpdateParticipant,
    ApplyHealthDelta,
    SetConditions,
    DeactivateParticipant,
    RecordAction,
]
