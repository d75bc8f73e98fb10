from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from dmscreen.core.engine.payloads import DamageModifier
from dmscreen.core.engine.state import Condition, ParticipantType


class AbilityScores(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    str: int = Field(default=10, ge=1, le=30)
    dex: int = Field(default=10, ge=1, le=30)
    con: int = Field(default=10, ge=1, le=30)

    # ВАЖНО: внутреннее имя int_ чтобы не ломать Pydantic,
    # но в JSON хотим ключ "int"
    int_: int = Field(default=10, ge=1, le=30, alias="int")

    wis: int = Field(default=10, ge=1, le=30)
    cha: int = Field(default=10, ge=1, le=30)


# ---- Character payload (то, что хранится в data_json) ----


class CharacterData(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    schema_version: int = Field(default=1, ge=1)

    race: Optional[str] = None
    class_: str = Field(default="fighter", alias="class")
    level: int = Field(default=1, ge=1, le=20)

    ability_scores: AbilityScores = Field(default_factory=AbilityScores)

    max_hit_points: int = Field(gt=0)
    current_hit_points: Optional[int] = Field(default=None, ge=0)
    temporary_hit_points: int = Field(default=0, ge=0)
    armor_class: int = Field(default=10, ge=0)
    initiative_bonus: Optional[int] = Field(default=None, ge=-20, le=20)
    speed: int = 30


class CharacterCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    campaign_id: Optional[str] = None
    data: CharacterData


class CharacterUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    campaign_id: Optional[str] = None
    data: Optional[CharacterData] = None


class CharacterOut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    owner_id: Optional[str] = None
    campaign_id: Optional[str] = None
    data: CharacterData
    created_at: datetime
    updated_at: datetime


class CampaignCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    description: Optional[str] = None


class CampaignOut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    description: Optional[str] = None
    dungeon_master_id: str
    created_at: datetime
    updated_at: datetime


# ---- Combat ----


class CombatSessionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    description: Optional[str] = None
    notes: Optional[str] = None
    campaign_id: Optional[str] = None


class CombatRuntimeResponse(BaseModel):
    session_id: str
    state: Dict[str, Any]
    events_delta: List[Dict[str, Any]] = Field(default_factory=list)


class ApplyCommandRequest(BaseModel):
    command: Dict[str, Any]


class AddFromCharacterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    character_id: str
    name: Optional[str] = None
    participant_type: Optional[ParticipantType] = None
    initiative: Optional[int] = None
    initiative_roll: Optional[int] = None
    armor_class: Optional[int] = None
    max_hit_points: Optional[int] = None
    current_hit_points: Optional[int] = None
    is_visible: Optional[bool] = None
    notes: Optional[str] = None


class UpdateParticipantRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    initiative: Optional[int] = None
    armor_class: Optional[int] = None
    max_hit_points: Optional[int] = None
    current_hit_points: Optional[int] = None
    temporary_hit_points: Optional[int] = None
    is_visible: Optional[bool] = None
    notes: Optional[str] = None


class HealthDeltaRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int
    is_healing: bool = False
    is_temp_hp: bool = False
    modifier: DamageModifier = "none"
    damage_type: Optional[str] = None
    description: Optional[str] = None
    source_id: Optional[str] = None


class SetConditionsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    conditions: List[Condition]


class ToggleStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: Literal["pause", "resume"]


class ActionsResponse(BaseModel):
    session_id: str
    round: Optional[int] = None
    rounds: List[int] = Field(default_factory=list)
    actions: List[Dict[str, Any]] = Field(default_factory=list)


class DiceRollBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dice_type: str
    dice_count: int = 1
    modifier: int = 0
    roll_type: Optional[str] = None
    roll_label: Optional[str] = None
    advantage: bool = False
    disadvantage: bool = False
    is_private: bool = False
    character_name: Optional[str] = None
    client_ref: Optional[str] = None

    # если задана кампания и бросок не приватный - рассылаем всем в кампании
    campaign_id: Optional[str] = None
