from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import datetime
from typing import Any, Optional, cast

from pydantic import TypeAdapter

from dmscreen.core.engine.payloads import RollData
from dmscreen.core.engine.state import ActionRecord, ParticipantState, SessionState

_ROLL_DATA = TypeAdapter(RollData)


def _jsonable(v: Any) -> Any:
    """Привести значение к JSON-дружелюбному виду (datetime->iso, pydantic/dataclass->dict)."""
    if v is None or isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, datetime):
        return v.isoformat()
    if isinstance(v, (list, tuple, set)):
        return [_jsonable(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _jsonable(val) for k, val in v.items()}

    md = getattr(v, "model_dump", None)
    if callable(md):
        return md(mode="json")

    if is_dataclass(v) and not isinstance(v, type):
        return {f.name: _jsonable(getattr(v, f.name)) for f in fields(v)}

    return str(v)


# ---------- Participant codec ----------


def participant_to_dict(p: ParticipantState) -> dict[str, Any]:
    return cast(dict[str, Any], _jsonable(p))


# ---------- Action codec ----------


def action_to_dict(a: ActionRecord) -> dict[str, Any]:
    return cast(dict[str, Any], _jsonable(a))


def roll_data_from_dict(v: Any) -> Optional[RollData]:
    if v is None:
        return None
    return _ROLL_DATA.validate_python(v)


def sort_actions(actions: list[ActionRecord]) -> list[ActionRecord]:
    """Самые свежие первыми; seq разруливает одинаковые timestamp."""
    return sorted(actions, key=lambda a: (a.created_at, a.seq), reverse=True)


# ---------- Session codec ----------

_SESSION_SCALARS = (
    "id",
    "name",
    "controller_id",
    "campaign_id",
    "description",
    "notes",
    "status",
    "round",
    "current_turn_index",
    "seq",
)


def session_to_dict(state: SessionState) -> dict[str, Any]:
    """Снимок полей сессии без вложенных participants/actions."""
    out: dict[str, Any] = {k: getattr(state, k) for k in _SESSION_SCALARS}
    out["turn_order"] = list(state.turn_order)
    out["is_active"] = state.is_active
    out["current_participant_id"] = state.current_participant_id
    out["created_at"] = _jsonable(state.created_at)
    out["updated_at"] = _jsonable(state.updated_at)
    return out


def hidden_ids(state: SessionState) -> set[str]:
    return {p.id for p in state.participants.values() if not p.is_visible}


# ---------- Redaction for non-controllers ----------


def redact_session(session: dict[str, Any], hidden: set[str]) -> dict[str, Any]:
    """
    Убирает скрытых участников из turn_order; current_turn_index
    пересчитывается по отфильтрованному порядку.
    Если ходит скрытый участник, текущего хода зритель не видит (None).
    """
    if not hidden:
        return session
    order = [pid for pid in session.get("turn_order") or [] if pid not in hidden]
    out = {**session, "turn_order": order}
    current = session.get("current_participant_id")
    if current in hidden:
        out["current_participant_id"] = None
        out["current_turn_index"] = None
    elif current is not None:
        out["current_turn_index"] = order.index(current)
    return out


def redact_action(
    action: dict[str, Any], hidden: set[str]
) -> Optional[dict[str, Any]]:
    """None - действие скрытого участника; скрытая цель обезличивается."""
    if action.get("actor_id") in hidden:
        return None
    if action.get("target_id") in hidden:
        action = {**action, "target_id": None}
        if "target" in action:
            action["target"] = None
    return action


def session_state_to_dict(
    state: SessionState, *, include_hidden: bool = True
) -> dict[str, Any]:
    """
    Полный read model: сессия + участники в порядке ходов + лог (новые первыми).
    include_hidden=False - то, что видит не-мастер.
    """
    base = session_to_dict(state)
    participants = state.ordered_participants()
    actions = [action_to_dict(a) for a in sort_actions(state.actions)]
    if not include_hidden:
        hidden = hidden_ids(state)
        base = redact_session(base, hidden)
        participants = [p for p in participants if p.id not in hidden]
        actions = [
            a for a in (redact_action(x, hidden) for x in actions) if a is not None
        ]

    base["participants"] = [participant_to_dict(p) for p in participants]
    base["actions"] = actions
    return base

