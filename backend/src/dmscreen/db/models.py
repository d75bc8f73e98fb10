from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dungeon_master_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Character(Base):
    __tablename__ = "characters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("campaigns.id"), nullable=True, index=True
    )

    # весь лист персонажа (class/level/ability scores/hp/ac/...) кладём сюда
    data_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class CombatSessionRow(Base):
    __tablename__ = "combat_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("campaigns.id"), nullable=True, index=True
    )
    controller_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="preparing")
    round: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_turn_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    turn_order: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    participants = relationship(
        "CombatParticipantRow", back_populates="session", order_by="CombatParticipantRow.order"
    )


class CombatParticipantRow(Base):
    __tablename__ = "combat_participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("combat_sessions.id"), nullable=False, index=True
    )
    character_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("characters.id"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    initiative: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    initiative_roll: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    armor_class: Mapped[int] = mapped_column(Integer, nullable=False)
    max_hit_points: Mapped[int] = mapped_column(Integer, nullable=False)
    current_hit_points: Mapped[int] = mapped_column(Integer, nullable=False)
    temporary_hit_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # "order" - зарезервированное слово SQL
    order: Mapped[int] = mapped_column("order_rank", Integer, nullable=False, default=0)

    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stats: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    session = relationship("CombatSessionRow", back_populates="participants")


class CombatActionRow(Base):
    __tablename__ = "combat_actions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("combat_sessions.id"), nullable=False, index=True
    )
    round: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    actor_id: Mapped[str] = mapped_column(
        ForeignKey("combat_participants.id"), nullable=False
    )
    target_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("combat_participants.id"), nullable=True
    )
    action_type: Mapped[str] = mapped_column(String(16), nullable=False)
    action_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    roll_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    damage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    damage_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    success: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    save_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    save_dc: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
