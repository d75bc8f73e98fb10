import pytest

from dmscreen.core.engine.state import SessionState, Condition
from dmscreen.core.engine.commands import (
    AddParticipant,
    UpdateParticipant,
    SetConditions,
    DeactivateParticipant,
    StartCombat,
    PauseCombat,
)
from dmscreen.core.engine.rules.apply import apply_command
from dmscreen.core.errors import ValidationError, InvalidTransition, NotFound


def _empty():
    return SessionState(id="S1", name="Tavern brawl", controller_id="dm")


def test_add_defaults_current_hp_to_max():
    state, ev = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )

    p = state.participants["O"]
    assert p.current_hit_points == 15
    assert p.temporary_hit_points == 0
    assert p.type == "monster"
    assert p.is_active is True
    assert state.turn_order == ["O"]

    assert len(ev) == 1
    assert ev[0]["type"] == "participantAdded"
    assert ev[0]["payload"]["participant"]["max_hit_points"] == 15


def test_add_generates_id_when_missing():
    state, _ = apply_command(_empty(), AddParticipant(name="Orc", max_hit_points=15))
    (pid,) = state.participants
    assert pid
    assert state.participants[pid].session_id == "S1"


@pytest.mark.parametrize(
    "kwargs,code",
    [
        ({"max_hit_points": 0}, "BAD_MAX_HP"),
        ({"max_hit_points": -5}, "BAD_MAX_HP"),
        ({"max_hit_points": 10, "current_hit_points": 11}, "BAD_CURRENT_HP"),
        ({"max_hit_points": 10, "temporary_hit_points": -1}, "BAD_TEMP_HP"),
        ({"max_hit_points": 10, "name": "   "}, "MISSING_NAME"),
    ],
)
def test_add_validation(kwargs, code):
    state = _empty()
    params = {"name": "Orc", **kwargs}

    with pytest.raises(ValidationError) as ei:
        apply_command(state, AddParticipant(**params))

    assert ei.value.code == code
    assert state.participants == {}


def test_add_duplicate_id_rejected():
    state, _ = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )
    with pytest.raises(ValidationError):
        apply_command(
            state, AddParticipant(participant_id="O", name="Orc 2", max_hit_points=15)
        )


def test_add_allowed_while_paused():
    state, _ = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )
    state, _ = apply_command(state, StartCombat())
    state, _ = apply_command(state, PauseCombat())

    state, _ = apply_command(
        state, AddParticipant(participant_id="W", name="Wolf", max_hit_points=11)
    )
    assert state.turn_order == ["O", "W"]


def test_update_clamps_current_hp_to_new_max():
    state, _ = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )

    state, ev = apply_command(
        state,
        UpdateParticipant(participant_id="O", max_hit_points=9, name="Weak Orc", notes="poisoned"),
    )

    p = state.participants["O"]
    assert p.max_hit_points == 9
    assert p.current_hit_points == 9
    assert p.name == "Weak Orc"
    assert p.notes == "poisoned"
    assert ev[0]["type"] == "participantUpdated"


def test_update_initiative_does_not_reshuffle():
    state = _empty()
    state, _ = apply_command(state, AddParticipant(participant_id="A", name="A", initiative=5, max_hit_points=5))
    state, _ = apply_command(state, AddParticipant(participant_id="B", name="B", initiative=3, max_hit_points=5))
    state, _ = apply_command(state, StartCombat())

    state, _ = apply_command(state, UpdateParticipant(participant_id="B", initiative=25))

    assert state.turn_order == ["A", "B"]
    assert state.participants["B"].initiative == 25


def test_update_unknown_participant():
    with pytest.raises(NotFound):
        apply_command(_empty(), UpdateParticipant(participant_id="ghost", name="x"))


def test_set_conditions_is_full_replace():
    state, _ = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )
    state, _ = apply_command(
        state,
        SetConditions(
            participant_id="O",
            conditions=[Condition(name="prone"), Condition(name="frightened", duration=2)],
        ),
    )
    state, ev = apply_command(
        state, SetConditions(participant_id="O", conditions=[Condition(name="blinded")])
    )

    assert [c.name for c in state.participants["O"].conditions] == ["blinded"]
    assert ev[0]["payload"]["participant"]["conditions"] == [
        {"name": "blinded", "duration": None, "description": None}
    ]


def test_set_conditions_validation():
    state, _ = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )
    with pytest.raises(ValidationError):
        apply_command(
            state,
            SetConditions(participant_id="O", conditions=[Condition(name="stunned", duration=-1)]),
        )


def test_deactivate_keeps_participant():
    state, _ = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )
    state, ev = apply_command(state, DeactivateParticipant(participant_id="O"))

    assert "O" in state.participants
    assert state.participants["O"].is_active is False
    assert ev[0]["payload"]["participant"]["is_active"] is False

    with pytest.raises(InvalidTransition):
        apply_command(state, DeactivateParticipant(participant_id="O"))


def test_start_needs_an_active_participant():
    state, _ = apply_command(
        _empty(), AddParticipant(participant_id="O", name="Orc", max_hit_points=15)
    )
    state, _ = apply_command(state, DeactivateParticipant(participant_id="O"))

    with pytest.raises(InvalidTransition):
        apply_command(state, StartCombat())


def test_inactive_participants_sort_after_active():
    state = _empty()
    state, _ = apply_command(state, AddParticipant(participant_id="A", name="A", initiative=20, max_hit_points=5))
    state, _ = apply_command(state, AddParticipant(participant_id="B", name="B", initiative=10, max_hit_points=5))
    state, _ = apply_command(state, DeactivateParticipant(participant_id="A"))

    state, _ = apply_command(state, StartCombat())

    assert state.turn_order == ["B", "A"]
    assert state.current_participant_id == "B"
