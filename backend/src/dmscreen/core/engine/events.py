from __future__ import annotations

from typing import Any, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

EventType = Literal[
    "sessionStarted",
    "turnAdvanced",
    "sessionStatusChanged",
    "sessionEnded",
    "participantAdded",
    "participantUpdated",
    "actionRecorded",
]

# события, в которых лежит полный снимок сессии
SESSION_EVENTS = frozenset(
    {"sessionStarted", "turnAdvanced", "sessionStatusChanged", "sessionEnded"}
)
PARTICIPANT_EVENTS = frozenset({"participantAdded", "participantUpdated"})


class EventEnvelope(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_id: UUID = Field(default_factory=uuid4)
    seq: int
    type: EventType

    session_id: str
    round: int
    issued_by: Optional[str] = None

    payload: dict[str, Any] = Field(default_factory=dict)


def ev_session_started(
    *,
    seq: int,
    session_id: str,
    round_: int,
    issued_by: Optional[str],
    session: dict,
    participants: list[dict],
) -> EventEnvelope:
    # порядок назначается всем участникам сразу, поэтому шлём их целиком
    return EventEnvelope(
        seq=seq,
        type="sessionStarted",
        session_id=session_id,
        round=round_,
        issued_by=issued_by,
        payload={"session": session, "participants": participants},
    )


def ev_turn_advanced(
    *,
    seq: int,
    session_id: str,
    round_: int,
    issued_by: Optional[str],
    session: dict,
    new_round: bool,
) -> EventEnvelope:
    return EventEnvelope(
        seq=seq,
        type="turnAdvanced",
        session_id=session_id,
        round=round_,
        issued_by=issued_by,
        payload={"session": session, "new_round": new_round},
    )


def ev_session_status_changed(
    *,
    seq: int,
    session_id: str,
    round_: int,
    issued_by: Optional[str],
    session: dict,
    status: str,
) -> EventEnvelope:
    return EventEnvelope(
        seq=seq,
        type="sessionStatusChanged",
        session_id=session_id,
        round=round_,
        issued_by=issued_by,
        payload={"session": session, "status": status},
    )


def ev_session_ended(
    *, seq: int, session_id: str, round_: int, issued_by: Optional[str], session: dict
) -> EventEnvelope:
    return EventEnvelope(
        seq=seq,
        type="sessionEnded",
        session_id=session_id,
        round=round_,
        issued_by=issued_by,
        payload={"session": session},
    )


def ev_participant_added(
    *,
    seq: int,
    session_id: str,
    round_: int,
    issued_by: Optional[str],
    participant: dict,
) -> EventEnvelope:
    return EventEnvelope(
        seq=seq,
        type="participantAdded",
        session_id=session_id,
        round=round_,
        issued_by=issued_by,
        payload={"participant": participant},
    )


def ev_participant_updated(
    *,
    seq: int,
    session_id: str,
    round_: int,
    issued_by: Optional[str],
    participant: dict,
) -> EventEnvelope:
    return EventEnvelope(
        seq=seq,
        type="participantUpdated",
        session_id=session_id,
        round=round_,
        issued_by=issued_by,
        payload={"participant": participant},
    )


def ev_action_recorded(
    *, seq: int, session_id: str, round_: int, issued_by: Optional[str], action: dict
) -> EventEnvelope:
    return EventEnvelope(
        seq=seq,
        type="actionRecorded",
        session_id=session_id,
        round=round_,
        issued_by=issued_by,
        payload={"action": action},
    )
