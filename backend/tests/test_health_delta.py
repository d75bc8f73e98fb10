import pytest

from dmscreen.core.engine.state import SessionState, ParticipantState
from dmscreen.core.engine.commands import ApplyHealthDelta, StartCombat
from dmscreen.core.engine.rules.apply import apply_command, run_command
from dmscreen.core.engine.rules.health import adjust_damage
from dmscreen.core.errors import ValidationError, NotFound


def _state(hp=20, max_hp=20, temp=0):
    state = SessionState(id="S1", name="Crypt", controller_id="dm")
    state.participants["P"] = ParticipantState(
        id="P",
        session_id="S1",
        name="Paladin",
        max_hit_points=max_hp,
        current_hit_points=hp,
        temporary_hit_points=temp,
    )
    state.participants["G"] = ParticipantState(
        id="G", session_id="S1", name="Ghoul", max_hit_points=22, current_hit_points=22
    )
    state.turn_order = ["P", "G"]
    return state


def _hit(state, amount, **kw):
    state, ev = run_command(state, ApplyHealthDelta(participant_id="P", amount=amount, **kw))
    return state.participants["P"], ev


def test_overkill_floors_at_zero():
    p, _ = _hit(_state(hp=20, temp=0), 25)
    assert p.temporary_hit_points == 0
    assert p.current_hit_points == 0


def test_temp_hp_absorbs_first_then_carries_over():
    p, _ = _hit(_state(hp=5, temp=3), 10)
    assert p.temporary_hit_points == 0
    assert p.current_hit_points == 0


@pytest.mark.parametrize("temp,dmg", [(5, 3), (5, 5), (7, 1)])
def test_damage_within_temp_hp_leaves_hp_alone(temp, dmg):
    p, _ = _hit(_state(hp=12, temp=temp), dmg)
    assert p.temporary_hit_points == temp - dmg
    assert p.current_hit_points == 12


def test_damage_beyond_temp_hp_reduces_hp():
    p, _ = _hit(_state(hp=12, temp=4), 9)
    assert p.temporary_hit_points == 0
    assert p.current_hit_points == 7


def test_zero_damage_is_noop_but_logged():
    state = _state(hp=12, temp=2)
    p, ev = _hit(state, 0)

    assert p.current_hit_points == 12
    assert p.temporary_hit_points == 2
    assert [e["type"] for e in ev] == ["participantUpdated", "actionRecorded"]
    assert len(state.actions) == 1
    assert state.actions[0].damage == 0


def test_healing_capped_at_max():
    p, _ = _hit(_state(hp=15, max_hp=20), 12, is_healing=True)
    assert p.current_hit_points == 20


def test_healing_does_not_touch_temp_hp():
    p, _ = _hit(_state(hp=10, temp=4), 3, is_healing=True)
    assert p.current_hit_points == 13
    assert p.temporary_hit_points == 4


def test_temp_hp_does_not_stack():
    p, _ = _hit(_state(temp=5), 3, is_healing=True, is_temp_hp=True)
    assert p.temporary_hit_points == 5

    state = _state(temp=5)
    p, _ = _hit(state, 8, is_temp_hp=True)
    assert p.temporary_hit_points == 8
    assert p.current_hit_points == 20
    assert state.actions[0].action_name == "Temporary Hit Points"


def test_resistance_halves_rounding_down():
    p, ev = _hit(_state(hp=20), 7, modifier="resistance", damage_type="fire")
    assert p.current_hit_points == 17

    roll = ev[1]["payload"]["action"]["roll_data"]
    assert roll["kind"] == "damage"
    assert roll["raw"] == 7
    assert roll["adjusted"] == 3
    assert roll["modifier"] == "resistance"


def test_vulnerability_doubles():
    p, _ = _hit(_state(hp=20), 6, modifier="vulnerability")
    assert p.current_hit_points == 8


def test_adjust_damage():
    assert adjust_damage(9, "resistance") == 4
    assert adjust_damage(9, "vulnerability") == 18
    assert adjust_damage(9, "none") == 9


def test_healing_ignores_damage_modifier():
    cmd = ApplyHealthDelta(participant_id="P", amount=6, is_healing=True, modifier="resistance")
    assert cmd.modifier == "none"
    assert cmd.damage_type == "healing"

    p, _ = _hit(_state(hp=10), 6, is_healing=True, modifier="vulnerability")
    assert p.current_hit_points == 16


def test_negative_amount_rejected():
    state = _state()
    with pytest.raises(ValidationError):
        run_command(state, ApplyHealthDelta(participant_id="P", amount=-3))
    assert state.participants["P"].current_hit_points == 20
    assert state.seq == 0


def test_unknown_participant():
    with pytest.raises(NotFound):
        run_command(_state(), ApplyHealthDelta(participant_id="nope", amount=3))


def test_log_entry_for_damage_from_source():
    state = _state()
    state, _ = apply_command(state, StartCombat())

    state, ev = run_command(
        state,
        ApplyHealthDelta(
            participant_id="P", amount=5, source_id="G", damage_type="necrotic"
        ),
    )

    a = state.actions[-1]
    assert a.actor_id == "G"
    assert a.target_id == "P"
    assert a.action_type == "attack"
    assert a.action_name == "Damage"
    assert a.round == 1
    assert a.damage_type == "necrotic"
    assert a.roll_data.hp_before == 20
    assert a.roll_data.hp_after == 15
    assert [e["seq"] for e in ev] == [2, 3]


def test_self_healing_log_entry():
    state = _state(hp=4)
    state, _ = run_command(
        state, ApplyHealthDelta(participant_id="P", amount=5, is_healing=True)
    )

    a = state.actions[-1]
    assert a.actor_id == "P"
    assert a.target_id is None
    assert a.action_type == "ability"
    assert a.action_name == "Healing"


def test_apply_command_alone_emits_one_event():
    state, ev = apply_command(_state(), ApplyHealthDelta(participant_id="P", amount=4))
    assert [e["type"] for e in ev] == ["participantUpdated"]
    assert state.actions == []
