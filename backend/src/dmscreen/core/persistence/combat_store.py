from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from dmscreen.core.engine.state import (
    ActionRecord,
    Condition,
    ParticipantState,
    SessionState,
    new_id,
    utcnow,
)
from dmscreen.core.errors import NotFound
from dmscreen.core.persistence.state_codec import roll_data_from_dict
from dmscreen.db.models import (
    Campaign,
    CombatActionRow,
    CombatParticipantRow,
    CombatSessionRow,
)


class CombatStore(Protocol):
    def create_session(
        self,
        *,
        name: str,
        controller_id: str,
        campaign_id: Optional[str] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SessionState: ...

    def load_state(self, session_id: str) -> SessionState: ...

    def save_state(self, state: SessionState) -> None: ...

    def list_sessions(self, campaign_id: Optional[str] = None) -> List[SessionState]: ...

    def list_participants(self, session_id: str) -> List[ParticipantState]: ...

    def list_actions(
        self, session_id: str, round_: Optional[int] = None
    ) -> List[ActionRecord]: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


def _aware(dt: datetime) -> datetime:
    # SQLite отдаёт naive datetime даже для DateTime(timezone=True)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


# ---------- row <-> state ----------


def _session_from_row(row: CombatSessionRow) -> SessionState:
    return SessionState(
        id=row.id,
        name=row.name,
        controller_id=row.controller_id,
        campaign_id=row.campaign_id,
        description=row.description,
        notes=row.notes,
        status=row.status,  # type: ignore[arg-type]
        round=row.round,
        current_turn_index=row.current_turn_index,
        turn_order=[str(x) for x in (row.turn_order or [])],
        seq=row.seq,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _participant_from_row(row: CombatParticipantRow) -> ParticipantState:
    return ParticipantState(
        id=row.id,
        session_id=row.session_id,
        character_id=row.character_id,
        name=row.name,
        type=row.type,  # type: ignore[arg-type]
        initiative=row.initiative,
        initiative_roll=row.initiative_roll,
        armor_class=row.armor_class,
        max_hit_points=row.max_hit_points,
        current_hit_points=row.current_hit_points,
        temporary_hit_points=row.temporary_hit_points,
        conditions=[Condition.model_validate(c) for c in (row.conditions or [])],
        order=row.order,
        is_visible=row.is_visible,
        is_active=row.is_active,
        notes=row.notes,
        stats=dict(row.stats or {}),
    )


def _action_from_row(row: CombatActionRow) -> ActionRecord:
    return ActionRecord(
        id=row.id,
        session_id=row.session_id,
        round=row.round,
        seq=row.seq,
        actor_id=row.actor_id,
        target_id=row.target_id,
        action_type=row.action_type,  # type: ignore[arg-type]
        action_name=row.action_name,
        description=row.description,
        roll_data=roll_data_from_dict(row.roll_data),
        damage=row.damage,
        damage_type=row.damage_type,
        success=row.success,
        save_type=row.save_type,
        save_dc=row.save_dc,
        created_at=_aware(row.created_at),
    )


def _fill_participant_row(row: CombatParticipantRow, p: ParticipantState) -> None:
    row.session_id = p.session_id
    row.character_id = p.character_id
    row.name = p.name
    row.type = p.type
    row.initiative = p.initiative
    row.initiative_roll = p.initiative_roll
    row.armor_class = p.armor_class
    row.max_hit_points = p.max_hit_points
    row.current_hit_points = p.current_hit_points
    row.temporary_hit_points = p.temporary_hit_points
    row.conditions = [c.model_dump(mode="json") for c in p.conditions]
    row.order = p.order
    row.is_visible = p.is_visible
    row.is_active = p.is_active
    row.notes = p.notes
    row.stats = dict(p.stats)


def _action_row(a: ActionRecord) -> CombatActionRow:
    return CombatActionRow(
        id=a.id,
        session_id=a.session_id,
        round=a.round,
        seq=a.seq,
        actor_id=a.actor_id,
        target_id=a.target_id,
        action_type=a.action_type,
        action_name=a.action_name,
        description=a.description,
        roll_data=(
            a.roll_data.model_dump(mode="json") if a.roll_data is not None else None
        ),
        damage=a.damage,
        damage_type=a.damage_type,
        success=a.success,
        save_type=a.save_type,
        save_dc=a.save_dc,
        created_at=a.created_at,
    )


class SqlCombatStore:
    """
    Хранилище сессий боя поверх SQLAlchemy. Сам не коммитит:
    границу транзакции держит сервис.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _session_row(self, session_id: str) -> CombatSessionRow:
        row = self.db.get(CombatSessionRow, session_id)
        if row is None:
            raise NotFound(
                "UNKNOWN_SESSION", "Combat session not found", {"session_id": session_id}
            )
        return row

    def create_session(
        self,
        *,
        name: str,
        controller_id: str,
        campaign_id: Optional[str] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SessionState:
        if campaign_id is not None and self.db.get(Campaign, campaign_id) is None:
            raise NotFound(
                "UNKNOWN_CAMPAIGN", "Campaign not found", {"campaign_id": campaign_id}
            )
        now = utcnow()
        row = CombatSessionRow(
            id=new_id(),
            name=name,
            controller_id=controller_id,
            campaign_id=campaign_id,
            description=description,
            notes=notes,
            status="preparing",
            round=0,
            current_turn_index=0,
            turn_order=[],
            seq=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        self.db.flush()
        return _session_from_row(row)

    def load_state(self, session_id: str) -> SessionState:
        state = _session_from_row(self._session_row(session_id))
        for p in self.list_participants(session_id):
            state.participants[p.id] = p
            if p.id not in state.turn_order:
                state.turn_order.append(p.id)
        state.actions = sorted(self.list_actions(session_id), key=lambda a: a.seq)
        return state

    def save_state(self, state: SessionState) -> None:
        row = self._session_row(state.id)
        row.name = state.name
        row.description = state.description
        row.notes = state.notes
        row.status = state.status
        row.round = state.round
        row.current_turn_index = state.current_turn_index
        row.turn_order = list(state.turn_order)
        row.seq = state.seq
        row.updated_at = state.updated_at

        for p in state.participants.values():
            prow = self.db.get(CombatParticipantRow, p.id)
            if prow is None:
                prow = CombatParticipantRow(id=p.id)
                self.db.add(prow)
            _fill_participant_row(prow, p)
        # участники должны лечь раньше действий, которые на них ссылаются
        self.db.flush()

        # лог только дописываем: существующие строки не трогаем
        existing = set(
            self.db.scalars(
                select(CombatActionRow.id).where(CombatActionRow.session_id == state.id)
            )
        )
        for a in state.actions:
            if a.id not in existing:
                self.db.add(_action_row(a))
        self.db.flush()

    def list_sessions(self, campaign_id: Optional[str] = None) -> List[SessionState]:
        stmt = select(CombatSessionRow).order_by(CombatSessionRow.created_at.desc())
        if campaign_id is not None:
            stmt = stmt.where(CombatSessionRow.campaign_id == campaign_id)
        return [_session_from_row(r) for r in self.db.scalars(stmt)]

    def list_participants(self, session_id: str) -> List[ParticipantState]:
        stmt = (
            select(CombatParticipantRow)
            .where(CombatParticipantRow.session_id == session_id)
            .order_by(CombatParticipantRow.order)
        )
        return [_participant_from_row(r) for r in self.db.scalars(stmt)]

    def list_actions(
        self, session_id: str, round_: Optional[int] = None
    ) -> List[ActionRecord]:
        self._session_row(session_id)
        stmt = select(CombatActionRow).where(CombatActionRow.session_id == session_id)
        if round_ is not None:
            stmt = stmt.where(CombatActionRow.round == round_)
        stmt = stmt.order_by(
            CombatActionRow.created_at.desc(), CombatActionRow.seq.desc()
        )
        return [_action_from_row(r) for r in self.db.scalars(stmt)]

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
