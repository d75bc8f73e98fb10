from __future__ import annotations

from typing import Any, Dict, List, Optional

import pydantic
from fastapi import APIRouter, Depends, Query
from pydantic import TypeAdapter

from dmscreen.api.deps import get_combat_service, get_identity
from dmscreen.api.schemas import (
    ActionsResponse,
    AddFromCharacterRequest,
    ApplyCommandRequest,
    CombatRuntimeResponse,
    CombatSessionCreate,
    HealthDeltaRequest,
    SetConditionsRequest,
    ToggleStatusRequest,
    UpdateParticipantRequest,
)
from dmscreen.core.adapters.characters import ParticipantOverrides
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
from dmscreen.core.engine.state import Identity
from dmscreen.core.errors import ValidationError
from dmscreen.core.persistence.state_codec import session_state_to_dict
from dmscreen.core.services.combat_service import CombatService

router = APIRouter(prefix="/combat", tags=["combat"])

_COMMAND = TypeAdapter(Command)


def _run(
    service: CombatService, session_id: str, cmd: Command, identity: Identity
) -> CombatRuntimeResponse:
    # команду может выполнить только мастер, поэтому отдаём полный снимок
    state, events = service.execute(session_id, cmd, identity)
    return CombatRuntimeResponse(
        session_id=session_id,
        state=session_state_to_dict(state),
        events_delta=events,
    )


# ---- sessions ----


@router.post("", response_model=CombatRuntimeResponse)
def create_session(
    req: CombatSessionCreate,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    state = service.create_session(
        identity,
        name=req.name,
        description=req.description,
        notes=req.notes,
        campaign_id=req.campaign_id,
    )
    return CombatRuntimeResponse(
        session_id=state.id, state=session_state_to_dict(state), events_delta=[]
    )


@router.get("", response_model=List[Dict[str, Any]])
def list_sessions(
    campaign_id: Optional[str] = None,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return service.list_sessions(campaign_id)


@router.get("/{session_id}", response_model=CombatRuntimeResponse)
def get_session(
    session_id: str,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return CombatRuntimeResponse(
        session_id=session_id, state=service.read_model(session_id, identity)
    )


# ---- lifecycle ----


@router.post("/{session_id}/start", response_model=CombatRuntimeResponse)
def start_combat(
    session_id: str,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return _run(service, session_id, StartCombat(), identity)


@router.post("/{session_id}/next-turn", response_model=CombatRuntimeResponse)
def next_turn(
    session_id: str,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return _run(service, session_id, AdvanceTurn(), identity)


@router.post("/{session_id}/toggle-status", response_model=CombatRuntimeResponse)
def toggle_status(
    session_id: str,
    req: ToggleStatusRequest,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    cmd = PauseCombat() if req.action == "pause" else ResumeCombat()
    return _run(service, session_id, cmd, identity)


@router.post("/{session_id}/end", response_model=CombatRuntimeResponse)
def end_combat(
    session_id: str,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return _run(service, session_id, EndCombat(), identity)


# ---- participants ----


@router.get("/{session_id}/participants", response_model=List[Dict[str, Any]])
def list_participants(
    session_id: str,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return service.read_model(session_id, identity)["participants"]


@router.post("/{session_id}/participants", response_model=CombatRuntimeResponse)
def add_participant(
    session_id: str,
    req: AddParticipant,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return _run(service, session_id, req, identity)


@router.post(
    "/{session_id}/participants:from-character", response_model=CombatRuntimeResponse
)
def add_participant_from_character(
    session_id: str,
    req: AddFromCharacterRequest,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    overrides = ParticipantOverrides(**req.model_dump(exclude={"character_id"}))
    state, events = service.add_participant_from_character(
        session_id, req.character_id, identity, overrides
    )
    return CombatRuntimeResponse(
        session_id=session_id,
        state=session_state_to_dict(state),
        events_delta=events,
    )


@router.put(
    "/{session_id}/participants/{participant_id}", response_model=CombatRuntimeResponse
)
def update_participant(
    session_id: str,
    participant_id: str,
    req: UpdateParticipantRequest,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    cmd = UpdateParticipant(participant_id=participant_id, **req.model_dump())
    return _run(service, session_id, cmd, identity)


@router.post(
    "/{session_id}/participants/{participant_id}/health",
    response_model=CombatRuntimeResponse,
)
def apply_health_delta(
    session_id: str,
    participant_id: str,
    req: HealthDeltaRequest,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    cmd = ApplyHealthDelta(participant_id=participant_id, **req.model_dump())
    return _run(service, session_id, cmd, identity)


@router.put(
    "/{session_id}/participants/{participant_id}/conditions",
    response_model=CombatRuntimeResponse,
)
def set_conditions(
    session_id: str,
    participant_id: str,
    req: SetConditionsRequest,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    cmd = SetConditions(participant_id=participant_id, conditions=req.conditions)
    return _run(service, session_id, cmd, identity)


@router.post(
    "/{session_id}/participants/{participant_id}/deactivate",
    response_model=CombatRuntimeResponse,
)
def deactivate_participant(
    session_id: str,
    participant_id: str,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    cmd = DeactivateParticipant(participant_id=participant_id)
    return _run(service, session_id, cmd, identity)


# ---- action log ----


@router.post("/{session_id}/actions", response_model=CombatRuntimeResponse)
def record_action(
    session_id: str,
    req: RecordAction,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    return _run(service, session_id, req, identity)


@router.get("/{session_id}/actions", response_model=ActionsResponse)
def list_actions(
    session_id: str,
    round_: Optional[int] = Query(default=None, alias="round"),
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    actions, rounds = service.list_actions(session_id, identity, round_)
    return ActionsResponse(
        session_id=session_id, round=round_, rounds=rounds, actions=actions
    )


# ---- generic ----


@router.post("/{session_id}/commands:apply", response_model=CombatRuntimeResponse)
def apply_command(
    session_id: str,
    req: ApplyCommandRequest,
    identity: Identity = Depends(get_identity),
    service: CombatService = Depends(get_combat_service),
):
    # Command - Union, парсим через TypeAdapter
    try:
        cmd = _COMMAND.validate_python(req.command)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "BAD_COMMAND",
            "Command payload is invalid",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e
    return _run(service, session_id, cmd, identity)
