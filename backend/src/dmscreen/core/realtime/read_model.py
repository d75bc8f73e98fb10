from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from dmscreen.core.engine.dice import DiceRoll
from dmscreen.core.engine.events import PARTICIPANT_EVENTS, SESSION_EVENTS
from dmscreen.core.persistence.state_codec import redact_action, redact_session


@dataclass(frozen=True)
class SessionView:
    """
    Read model на стороне подписчика. Меняется только через apply_delta,
    которая всегда возвращает новый объект.
    """

    session: Dict[str, Any]
    participants: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    actions: Tuple[Dict[str, Any], ...] = ()
    last_seq: int = 0

    @property
    def session_id(self) -> str:
        return str(self.session["id"])

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "SessionView":
        snap = dict(snapshot)
        participants = snap.pop("participants", None) or []
        actions = snap.pop("actions", None) or []
        return cls(
            session=snap,
            participants={str(p["id"]): dict(p) for p in participants},
            actions=tuple(dict(a) for a in actions),
            last_seq=int(snap.get("seq") or 0),
        )

    def ordered_participants(self) -> List[Dict[str, Any]]:
        return sorted(self.participants.values(), key=lambda p: p.get("order", 0))

    def current_participant(self) -> Optional[Dict[str, Any]]:
        pid = self.session.get("current_participant_id")
        return self.participants.get(pid) if pid else None


def apply_delta(view: SessionView, event: Dict[str, Any]) -> SessionView:
    """
    Применяет одно событие полной заменой сущности (без merge по полям).
    События чужой сессии игнорируются.
    """
    if str(event.get("session_id")) != view.session_id:
        return view

    etype = event.get("type")
    payload = event.get("payload") or {}
    session = view.session
    participants = dict(view.participants)
    actions = view.actions

    if etype in SESSION_EVENTS:
        session = dict(payload["session"])
        for p in payload.get("participants") or []:
            participants[str(p["id"])] = dict(p)

    elif etype in PARTICIPANT_EVENTS and payload.get("removed"):
        # участник скрыт от зрителя: убираем его и всё, что на него ссылается
        pid = str(payload["participant"]["id"])
        participants.pop(pid, None)
        session = redact_session(session, {pid})
        actions = tuple(
            a for a in (redact_action(x, {pid}) for x in actions) if a is not None
        )

    elif etype in PARTICIPANT_EVENTS:
        p = payload["participant"]
        participants[str(p["id"])] = dict(p)

    elif etype == "actionRecorded":
        action = payload["action"]
        if not any(a.get("id") == action.get("id") for a in actions):
            actions = (dict(action),) + actions

    else:
        return view

    return SessionView(
        session=session,
        participants=participants,
        actions=actions,
        last_seq=max(view.last_seq, int(event.get("seq") or 0)),
    )


class ViewerFilter:
    """
    Что пересылать не-мастеру: скрытые участники (is_visible=False)
    и их действия не уходят в канал зрителя.
    """

    def __init__(self, is_controller: bool, hidden_ids: Optional[set[str]] = None):
        self.is_controller = is_controller
        self.hidden_ids: set[str] = set(hidden_ids or ())

    @classmethod
    def from_snapshot(
        cls, snapshot: Dict[str, Any], *, is_controller: bool
    ) -> "ViewerFilter":
        hidden = {
            str(p["id"])
            for p in snapshot.get("participants") or []
            if not p.get("is_visible", True)
        }
        return cls(is_controller, hidden)

    def _track(self, participant: Dict[str, Any]) -> None:
        pid = str(participant["id"])
        if participant.get("is_visible", True):
            self.hidden_ids.discard(pid)
        else:
            self.hidden_ids.add(pid)

    def filter(self, event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        etype = event.get("type")
        payload = event.get("payload") or {}
        was_hidden = set(self.hidden_ids)

        if etype in PARTICIPANT_EVENTS:
            self._track(payload["participant"])
        for p in payload.get("participants") or []:
            self._track(p)

        if self.is_controller:
            return event

        if etype in PARTICIPANT_EVENTS:
            pid = str(payload["participant"]["id"])
            if pid not in self.hidden_ids:
                return event
            if pid in was_hidden or etype == "participantAdded":
                return None
            # был виден, стал скрыт: зритель удаляет его у себя
            removal = {"participant": {"id": pid, "is_visible": False}, "removed": True}
            return {**event, "payload": removal}

        if etype in SESSION_EVENTS:
            out = {**payload, "session": redact_session(payload["session"], self.hidden_ids)}
            if "participants" in payload:
                out["participants"] = [
                    p for p in payload["participants"]
                    if str(p["id"]) not in self.hidden_ids
                ]
            return {**event, "payload": out}

        if etype == "actionRecorded":
            action = redact_action(payload["action"], self.hidden_ids)
            if action is None:
                return None
            return {**event, "payload": {**payload, "action": action}}

        return event


class RollHistory:
    """
    История бросков с явными pending/confirmed записями.
    Подтверждённый бросок заменяет pending с тем же client_ref целиком.
    """

    def __init__(self, limit: int = 50) -> None:
        self.limit = limit
        self._rolls: List[DiceRoll] = []

    @property
    def rolls(self) -> List[DiceRoll]:
        return list(self._rolls)

    def _push(self, roll: DiceRoll) -> None:
        self._rolls.insert(0, roll)
        del self._rolls[self.limit :]

    def add_pending(self, roll: DiceRoll) -> DiceRoll:
        pending = roll.model_copy(update={"status": "pending"})
        self._push(pending)
        return pending

    def reconcile(self, confirmed: DiceRoll) -> DiceRoll:
        confirmed = confirmed.model_copy(update={"status": "confirmed"})
        if confirmed.client_ref is not None:
            for i, r in enumerate(self._rolls):
                if r.status == "pending" and r.client_ref == confirmed.client_ref:
                    self._rolls[i] = confirmed
                    return confirmed
        self._push(confirmed)
        return confirmed

    def pending(self) -> List[DiceRoll]:
        return [r for r in self._rolls if r.status == "pending"]

    def clear(self) -> None:
        self._rolls.clear()
