from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from dmscreen.core.engine.payloads import RollData

CombatStatus = Literal["preparing", "active", "paused", "ended"]
ParticipantType = Literal["player", "npc", "monster"]
ActionType = Literal["attack", "spell", "ability", "movement", "item", "other"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Condition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    duration: Optional[int] = None  # оставшиеся раунды, None = бессрочно
    description: Optional[str] = None


@dataclass
class Identity:
    user_id: str
    role: str = "player"


@dataclass
class ParticipantState:
    id: str
    session_id: str
    name: str
    max_hit_points: int
    current_hit_points: int
    type: ParticipantType = "monster"
    initiative: int = 0
    armor_class: int = 10
    temporary_hit_points: int = 0
    character_id: Optional[str] = None
    initiative_roll: Optional[int] = None

    conditions: List[Condition] = field(default_factory=list)

    # ранг в порядке ходов (совпадает с позицией в SessionState.turn_order)
    order: int = 0

    is_visible: bool = True
    is_active: bool = True

    notes: Optional[str] = None
    stats: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionRecord:
    id: str
    session_id: str
    round: int
    seq: int
    actor_id: str
    action_type: ActionType
    action_name: str
    target_id: Optional[str] = None
    description: Optional[str] = None
    roll_data: Optional[RollData] = None
    damage: Optional[int] = None
    damage_type: Optional[str] = None
    success: Optional[bool] = None
    save_type: Optional[str] = None
    save_dc: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class SessionState:
    id: str
    name: str
    controller_id: str
    campaign_id: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None

    status: CombatStatus = "preparing"
    round: int = 0
    current_turn_index: int = 0

    # порядок ходов храним явно как список id, а не как позиции в participants
    turn_order: List[str] = field(default_factory=list)
    participants: Dict[str, ParticipantState] = field(default_factory=dict)
    actions: List[ActionRecord] = field(default_factory=list)

    seq: int = 0

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def current_participant_id(self) -> Optional[str]:
        if self.status not in ("active", "paused") or not self.turn_order:
            return None
        return self.turn_order[self.current_turn_index]

    def ordered_participants(self) -> List[ParticipantState]:
        return [self.participants[pid] for pid in self.turn_order]

    def is_controller(self, identity: Identity, admin_role: str = "admin") -> bool:
        return identity.user_id == self.controller_id or identity.role == admin_role
