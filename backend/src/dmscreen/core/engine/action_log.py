from __future__ import annotations

from typing import Any, List, Optional

from dmscreen.core.engine.state import ActionRecord, SessionState
from dmscreen.core.persistence.state_codec import (
    action_to_dict,
    participant_to_dict,
    sort_actions,
)


def list_actions(
    state: SessionState, round_: Optional[int] = None
) -> List[ActionRecord]:
    actions = state.actions
    if round_ is not None:
        actions = [a for a in actions if a.round == round_]
    return sort_actions(actions)


def available_rounds(state: SessionState) -> List[int]:
    return sorted({a.round for a in state.actions}, reverse=True)


def resolve_action(state: SessionState, action: ActionRecord) -> dict[str, Any]:
    """
    Запись лога + снимки actor/target на текущий момент.
    Сама запись не меняется: в ней только ссылки по id.
    """
    out = action_to_dict(action)
    actor = state.participants.get(action.actor_id)
    target = state.participants.get(action.target_id) if action.target_id else None
    out["actor"] = participant_to_dict(actor) if actor is not None else None
    out["target"] = participant_to_dict(target) if target is not None else None
    return out


def resolved_actions(
    state: SessionState, round_: Optional[int] = None
) -> List[dict[str, Any]]:
    return [resolve_action(state, a) for a in list_actions(state, round_)]
