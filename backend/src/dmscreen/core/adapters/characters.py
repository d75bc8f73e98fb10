from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from dmscreen.api.schemas import CharacterData
from dmscreen.core.engine.commands import AddParticipant
from dmscreen.core.engine.state import ParticipantType
from dmscreen.core.errors import NotFound
from dmscreen.db.models import Character


@dataclass(frozen=True)
class CharacterRecord:
    id: str
    name: str
    data: CharacterData


class CharacterProvider(Protocol):
    def get_character(self, character_id: str) -> CharacterRecord: ...


class SqlCharacterProvider:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_character(self, character_id: str) -> CharacterRecord:
        row = self.db.get(Character, character_id)
        if row is None:
            raise NotFound(
                "UNKNOWN_CHARACTER",
                "Character not found",
                {"character_id": character_id},
            )
        return CharacterRecord(
            id=row.id, name=row.name, data=CharacterData.model_validate(row.data_json)
        )


@dataclass(frozen=True)
class ParticipantOverrides:
    name: Optional[str] = None
    participant_type: Optional[ParticipantType] = None
    initiative: Optional[int] = None
    initiative_roll: Optional[int] = None
    armor_class: Optional[int] = None
    max_hit_points: Optional[int] = None
    current_hit_points: Optional[int] = None
    is_visible: Optional[bool] = None
    notes: Optional[str] = None


def ability_mod(score: int) -> int:
    return (score - 10) // 2


def participant_from_character(
    character: CharacterRecord, overrides: Optional[ParticipantOverrides] = None
) -> AddParticipant:
    """
    Предзаполняет участника из листа персонажа:
    имя, КД, хиты и инициатива (initiative_bonus листа, иначе модификатор ЛВК).
    """
    data = character.data
    o = overrides or ParticipantOverrides()

    max_hp = o.max_hit_points if o.max_hit_points is not None else data.max_hit_points
    current_hp = o.current_hit_points
    if current_hp is None:
        # у персонажа могут быть свои текущие хиты, но не больше максимума боя
        current_hp = min(
            max_hp,
            data.current_hit_points if data.current_hit_points is not None else max_hp,
        )

    initiative = o.initiative
    if initiative is None:
        initiative = (
            data.initiative_bonus
            if data.initiative_bonus is not None
            else ability_mod(data.ability_scores.dex)
        )

    return AddParticipant(
        name=o.name or character.name,
        participant_type=o.participant_type or "player",
        initiative=initiative,
        initiative_roll=o.initiative_roll,
        armor_class=o.armor_class if o.armor_class is not None else data.armor_class,
        max_hit_points=max_hp,
        current_hit_points=current_hp,
        temporary_hit_points=data.temporary_hit_points,
        is_visible=True if o.is_visible is None else o.is_visible,
        character_id=character.id,
        notes=o.notes,
        stats={
            "class": data.class_,
            "level": data.level,
            "ability_scores": data.ability_scores.model_dump(by_alias=True),
        },
    )
