from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from dmscreen.core.engine.commands import (
    AddParticipant,
    AdvanceTurn,
    ApplyHealthDelta,
    Command,
    DeactivateParticipant,
    EndCombat,
    PauseCombat,
    RecordAction,
    ResumeCombat,
    SetConditions,
    StartCombat,
    UpdateParticipant,
)
from dmscreen.core.engine.events import (
    EventEnvelope,
    ev_action_recorded,
    ev_participant_added,
    ev_participant_updated,
    ev_session_ended,
    ev_session_started,
    ev_session_status_changed,
    ev_turn_advanced,
)
from dmscreen.core.engine.rules.health import (
    HealthChange,
    adjust_damage,
    apply_health_delta,
    health_log_action,
)
from dmscreen.core.engine.rules.validator import validate_command
from dmscreen.core.engine.state import (
    ActionRecord,
    Identity,
    ParticipantState,
    SessionState,
    new_id,
    utcnow,
)
from dmscreen.core.persistence.state_codec import (
    action_to_dict,
    participant_to_dict,
    session_to_dict,
)


def _bump(state: SessionState) -> int:
    state.seq += 1
    return state.seq


def _dump(ev: EventEnvelope) -> dict:
    return ev.model_dump(mode="json")


def _touch(state: SessionState, now: datetime) -> None:
    state.updated_at = now


def _next_active_index(state: SessionState) -> Tuple[int, bool]:
    """
    return (next_index, wrapped)

    Неактивных участников пропускаем. Новый раунд - только когда индекс
    переходит через конец списка.
    """
    n = len(state.turn_order)
    idx = state.current_turn_index
    wrapped = False
    for _ in range(n):
        idx = (idx + 1) % n
        if idx == 0:
            wrapped = True
        if state.participants[state.turn_order[idx]].is_active:
            break
    return idx, wrapped


def _participant_event(
    state: SessionState, p: ParticipantState, issued_by: Optional[str]
) -> dict:
    return _dump(
        ev_participant_updated(
            seq=_bump(state),
            session_id=state.id,
            round_=state.round,
            issued_by=issued_by,
            participant=participant_to_dict(p),
        )
    )


def _append_action(
    state: SessionState, action: ActionRecord, issued_by: Optional[str]
) -> dict:
    state.actions.append(action)
    return _dump(
        ev_action_recorded(
            seq=_bump(state),
            session_id=state.id,
            round_=state.round,
            issued_by=issued_by,
            action=action_to_dict(action),
        )
    )


def apply_command(
    state: SessionState,
    cmd: Command,
    identity: Optional[Identity] = None,
    *,
    admin_role: str = "admin",
    now: Optional[datetime] = None,
) -> Tuple[SessionState, List[dict]]:
    """
    Возвращаем (state, events_as_dicts).
    При ошибке валидации бросаем CombatError и НЕ меняем state:
    вся проверка идёт до первой мутации.
    """
    validate_command(state, cmd, identity, admin_role=admin_role).raise_for_errors()

    now = now or utcnow()
    issued_by = identity.user_id if identity is not None else None
    events: List[dict] = []

    if isinstance(cmd, StartCombat):
        # стабильная сортировка: initiative desc, при равенстве - порядок добавления
        active = [pid for pid in state.turn_order if state.participants[pid].is_active]
        inactive = [pid for pid in state.turn_order if pid not in active]
        by_initiative = lambda pid: -state.participants[pid].initiative  # noqa: E731
        state.turn_order = sorted(active, key=by_initiative) + sorted(
            inactive, key=by_initiative
        )
        for rank, pid in enumerate(state.turn_order):
            state.participants[pid].order = rank

        state.round = 1
        state.current_turn_index = 0
        state.status = "active"
        _touch(state, now)

        events.append(
            _dump(
                ev_session_started(
                    seq=_bump(state),
                    session_id=state.id,
                    round_=state.round,
                    issued_by=issued_by,
                    session=session_to_dict(state),
                    participants=[
                        participant_to_dict(p) for p in state.ordered_participants()
                    ],
                )
            )
        )
        return state, events

    if isinstance(cmd, AdvanceTurn):
        idx, wrapped = _next_active_index(state)
        state.current_turn_index = idx
        if wrapped:
            state.round += 1
        _touch(state, now)

        events.append(
            _dump(
                ev_turn_advanced(
                    seq=_bump(state),
                    session_id=state.id,
                    round_=state.round,
                    issued_by=issued_by,
                    session=session_to_dict(state),
                    new_round=wrapped,
                )
            )
        )
        return state, events

    if isinstance(cmd, (PauseCombat, ResumeCombat)):
        state.status = "paused" if isinstance(cmd, PauseCombat) else "active"
        _touch(state, now)

        events.append(
            _dump(
                ev_session_status_changed(
                    seq=_bump(state),
                    session_id=state.id,
                    round_=state.round,
                    issued_by=issued_by,
                    session=session_to_dict(state),
                    status=state.status,
                )
            )
        )
        return state, events

    if isinstance(cmd, EndCombat):
        state.status = "ended"
        _touch(state, now)

        events.append(
            _dump(
                ev_session_ended(
                    seq=_bump(state),
                    session_id=state.id,
                    round_=state.round,
                    issued_by=issued_by,
                    session=session_to_dict(state),
                )
            )
        )
        return state, events

    if isinstance(cmd, AddParticipant):
        pid = cmd.participant_id or new_id()
        p = ParticipantState(
            id=pid,
            session_id=state.id,
            name=cmd.name.strip(),
            type=cmd.participant_type,
            initiative=cmd.initiative,
            initiative_roll=cmd.initiative_roll,
            armor_class=cmd.armor_class,
            max_hit_points=cmd.max_hit_points,
            current_hit_points=(
                cmd.max_hit_points
                if cmd.current_hit_points is None
                else cmd.current_hit_points
            ),
            temporary_hit_points=cmd.temporary_hit_points,
            conditions=[c.model_copy() for c in cmd.conditions],
            # в активном бою новичок встаёт в конец, текущий порядок не трогаем
            order=len(state.turn_order),
            is_visible=cmd.is_visible,
            character_id=cmd.character_id,
            notes=cmd.notes,
            stats=dict(cmd.stats),
        )
        state.participants[pid] = p
        state.turn_order.append(pid)

        events.append(
            _dump(
                ev_participant_added(
                    seq=_bump(state),
                    session_id=state.id,
                    round_=state.round,
                    issued_by=issued_by,
                    participant=participant_to_dict(p),
                )
            )
        )
        return state, events

    if isinstance(cmd, UpdateParticipant):
        p = state.participants[cmd.participant_id]
        if cmd.name is not None:
            p.name = cmd.name.strip()
        if cmd.initiative is not None:
            # порядок ходов не пересчитываем: он фиксируется на старте
            p.initiative = cmd.initiative
        if cmd.armor_class is not None:
            p.armor_class = cmd.armor_class
        if cmd.max_hit_points is not None:
            p.max_hit_points = cmd.max_hit_points
        if cmd.current_hit_points is not None:
            p.current_hit_points = cmd.current_hit_points
        if cmd.temporary_hit_points is not None:
            p.temporary_hit_points = cmd.temporary_hit_points
        if cmd.is_visible is not None:
            p.is_visible = cmd.is_visible
        if cmd.notes is not None:
            p.notes = cmd.notes
        p.current_hit_points = min(p.current_hit_points, p.max_hit_points)

        events.append(_participant_event(state, p, issued_by))
        return state, events

    if isinstance(cmd, ApplyHealthDelta):
        p = state.participants[cmd.participant_id]
        apply_health_delta(
            p,
            cmd.amount,
            is_healing=cmd.is_healing,
            is_temp_hp=cmd.is_temp_hp,
            modifier=cmd.modifier,
        )

        events.append(_participant_event(state, p, issued_by))
        return state, events

    if isinstance(cmd, SetConditions):
        p = state.participants[cmd.participant_id]
        # полная замена, без слияния
        p.conditions = [c.model_copy() for c in cmd.conditions]

        events.append(_participant_event(state, p, issued_by))
        return state, events

    if isinstance(cmd, DeactivateParticipant):
        # не удаляем: на участника ссылаются записи лога.
        # указатель хода не двигаем, AdvanceTurn просто пропустит неактивных
        p = state.participants[cmd.participant_id]
        p.is_active = False

        events.append(_participant_event(state, p, issued_by))
        return state, events

    if isinstance(cmd, RecordAction):
        action = ActionRecord(
            id=new_id(),
            session_id=state.id,
            round=state.round,
            seq=len(state.actions) + 1,
            actor_id=cmd.actor_id,
            target_id=cmd.target_id,
            action_type=cmd.action_type,
            action_name=cmd.action_name.strip(),
            description=cmd.description,
            roll_data=cmd.roll_data,
            damage=cmd.damage,
            damage_type=cmd.damage_type,
            success=cmd.success,
            save_type=cmd.save_type,
            save_dc=cmd.save_dc,
            created_at=now,
        )
        events.append(_append_action(state, action, issued_by))
        return state, events

    raise AssertionError(f"Unhandled command: {cmd.type}")


def run_command(
    state: SessionState,
    cmd: Command,
    identity: Optional[Identity] = None,
    *,
    admin_role: str = "admin",
    now: Optional[datetime] = None,
) -> Tuple[SessionState, List[dict]]:
    """
    То, что выполняет сервис: apply_command плюс составные команды.

    ApplyHealthDelta = изменение хитов + запись в лог (RecordAction),
    каждая со своим событием. Обе применяются к одному state до сохранения,
    так что снаружи это одна атомарная операция.
    """
    if not isinstance(cmd, ApplyHealthDelta):
        return apply_command(state, cmd, identity, admin_role=admin_role, now=now)

    now = now or utcnow()
    validate_command(state, cmd, identity, admin_role=admin_role).raise_for_errors()
    p = state.participants[cmd.participant_id]
    hp_before, temp_before = p.current_hit_points, p.temporary_hit_points

    state, events = apply_command(state, cmd, identity, admin_role=admin_role, now=now)
    change = HealthChange(
        raw=cmd.amount,
        adjusted=cmd.amount if cmd.is_healing else adjust_damage(cmd.amount, cmd.modifier),
        modifier=cmd.modifier,
        temp_before=temp_before,
        temp_after=p.temporary_hit_points,
        hp_before=hp_before,
        hp_after=p.current_hit_points,
    )
    state, logged = apply_command(
        state, health_log_action(cmd, change), identity, admin_role=admin_role, now=now
    )
    return state, events + logged
