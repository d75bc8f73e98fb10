from __future__ import annotations

from dataclasses import dataclass

from dmscreen.core.engine.commands import ApplyHealthDelta, RecordAction
from dmscreen.core.engine.payloads import DamageModifier, DamagePayload
from dmscreen.core.engine.state import ParticipantState


@dataclass(frozen=True)
class HealthChange:
    raw: int
    adjusted: int
    modifier: DamageModifier
    temp_before: int
    temp_after: int
    hp_before: int
    hp_after: int


def adjust_damage(raw: int, modifier: DamageModifier) -> int:
    """
    resistance -> половина, округление вниз
    vulnerability -> x2
    Одновременно быть не могут: modifier одно значение.
    """
    raw = max(0, raw)
    if modifier == "resistance":
        return raw // 2
    if modifier == "vulnerability":
        return raw * 2
    return raw


def _apply_damage_with_temp_hp(target: ParticipantState, dmg: int) -> None:
    remaining = max(0, dmg)

    if target.temporary_hit_points > 0 and remaining > 0:
        absorbed = min(target.temporary_hit_points, remaining)
        target.temporary_hit_points -= absorbed
        remaining -= absorbed

    if remaining > 0:
        target.current_hit_points = max(0, target.current_hit_points - remaining)


def apply_health_delta(
    target: ParticipantState,
    amount: int,
    *,
    is_healing: bool = False,
    is_temp_hp: bool = False,
    modifier: DamageModifier = "none",
) -> HealthChange:
    temp_before = target.temporary_hit_points
    hp_before = target.current_hit_points

    if is_healing:
        adjusted = max(0, amount)
        modifier = "none"
        if is_temp_hp:
            # temp hp не складываются: новый запас только если он больше текущего
            target.temporary_hit_points = max(target.temporary_hit_points, adjusted)
        else:
            target.current_hit_points = min(
                target.max_hit_points, target.current_hit_points + adjusted
            )
    else:
        adjusted = adjust_damage(amount, modifier)
        _apply_damage_with_temp_hp(target, adjusted)

    return HealthChange(
        raw=amount,
        adjusted=adjusted,
        modifier=modifier,
        temp_before=temp_before,
        temp_after=target.temporary_hit_points,
        hp_before=hp_before,
        hp_after=target.current_hit_points,
    )


def health_log_action(cmd: ApplyHealthDelta, change: HealthChange) -> RecordAction:
    """
    Запись лога для изменения хитов. Пишется всегда, даже при amount=0.
    Урон - attack, лечение и temp hp - ability.
    """
    if cmd.is_temp_hp:
        action_name = "Temporary Hit Points"
    elif cmd.is_healing:
        action_name = "Healing"
    else:
        action_name = "Damage"

    actor_id = cmd.source_id or cmd.participant_id
    return RecordAction(
        actor_id=actor_id,
        target_id=cmd.participant_id if actor_id != cmd.participant_id else None,
        action_type="ability" if cmd.is_healing else "attack",
        action_name=action_name,
        description=cmd.description,
        roll_data=DamagePayload(
            raw=change.raw,
            adjusted=change.adjusted,
            modifier=change.modifier,
            damage_type=cmd.damage_type,
            is_healing=cmd.is_healing,
            is_temp_hp=cmd.is_temp_hp,
            temp_hp_before=change.temp_before,
            temp_hp_after=change.temp_after,
            hp_before=change.hp_before,
            hp_after=change.hp_after,
        ),
        damage=change.adjusted,
        damage_type=cmd.damage_type,
    )
