from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

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
from dmscreen.core.engine.state import Identity, SessionState
from dmscreen.core.errors import ERRORS_BY_KIND, CombatError


@dataclass
class ValidationIssue:
    kind: str  # validation | invalid_transition | permission_denied | not_found
    code: str
    message: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_exception(self) -> CombatError:
        return ERRORS_BY_KIND[self.kind](self.code, self.message, self.meta)


@dataclass
class ValidationResult:
    ok: bool
    errors: List[ValidationIssue] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if not self.ok:
            raise self.errors[0].to_exception()


_OK = ValidationResult(ok=True)


def _err(kind: str, code: str, message: str, **meta: Any) -> ValidationResult:
    return ValidationResult(
        ok=False, errors=[ValidationIssue(kind=kind, code=code, message=message, meta=meta)]
    )


def _bad_status(cmd: Command, state: SessionState, allowed: tuple[str, ...]) -> ValidationResult:
    return _err(
        "invalid_transition",
        "BAD_STATUS",
        f"{cmd.type} requires status in {list(allowed)}",
        status=state.status,
        allowed=list(allowed),
    )


def _unknown_participant(pid: Optional[str]) -> ValidationResult:
    return _err(
        "not_found", "UNKNOWN_PARTICIPANT", "Unknown participant_id", participant_id=pid
    )


def _check_hit_points(
    max_hp: Optional[int], current_hp: Optional[int], temp_hp: Optional[int]
) -> Optional[ValidationResult]:
    if max_hp is not None and max_hp <= 0:
        return _err(
            "validation", "BAD_MAX_HP", "max_hit_points must be > 0", max_hit_points=max_hp
        )
    if current_hp is not None and current_hp < 0:
        return _err(
            "validation",
            "BAD_CURRENT_HP",
            "current_hit_points must be >= 0",
            current_hit_points=current_hp,
        )
    if temp_hp is not None and temp_hp < 0:
        return _err(
            "validation",
            "BAD_TEMP_HP",
            "temporary_hit_points must be >= 0",
            temporary_hit_points=temp_hp,
        )
    return None


def validate_command(
    state: SessionState,
    cmd: Command,
    identity: Optional[Identity] = None,
    *,
    admin_role: str = "admin",
) -> ValidationResult:
    # --- single writer: все команды только от мастера сессии ---
    # identity=None - внутренний вызов (тесты/импорт), проверка пропускается
    if identity is not None and not state.is_controller(identity, admin_role):
        return _err(
            "permission_denied",
            "NOT_CONTROLLER",
            "Only the session controller may issue this command",
            user_id=identity.user_id,
        )

    if isinstance(cmd, StartCombat):
        if state.status != "preparing":
            return _bad_status(cmd, state, ("preparing",))
        if not any(p.is_active for p in state.participants.values()):
            return _err(
                "invalid_transition",
                "NO_PARTICIPANTS",
                "Cannot start combat with zero participants",
            )
        return _OK

    if isinstance(cmd, AdvanceTurn):
        if state.status != "active":
            return _bad_status(cmd, state, ("active",))
        if not any(p.is_active for p in state.participants.values()):
            return _err(
                "invalid_transition",
                "NO_ACTIVE_PARTICIPANTS",
                "No active participants left to take a turn",
            )
        return _OK

    if isinstance(cmd, PauseCombat):
        if state.status != "active":
            return _bad_status(cmd, state, ("active",))
        return _OK

    if isinstance(cmd, ResumeCombat):
        if state.status != "paused":
            return _bad_status(cmd, state, ("paused",))
        return _OK

    if isinstance(cmd, EndCombat):
        # preparing -> ended запрещён: бой должен хотя бы начаться
        if state.status not in ("active", "paused"):
            return _bad_status(cmd, state, ("active", "paused"))
        return _OK

    # всё остальное - мутации участников/лога, после конца боя запрещены
    if state.status == "ended":
        return _err(
            "invalid_transition",
            "SESSION_ENDED",
            "Combat session has ended; it is read-only",
        )

    if isinstance(cmd, AddParticipant):
        if not cmd.name.strip():
            return _err("validation", "MISSING_NAME", "Participant name is required")
        bad = _check_hit_points(
            cmd.max_hit_points, cmd.current_hit_points, cmd.temporary_hit_points
        )
        if bad is not None:
            return bad
        if cmd.current_hit_points is not None and cmd.current_hit_points > cmd.max_hit_points:
            return _err(
                "validation",
                "BAD_CURRENT_HP",
                "current_hit_points cannot exceed max_hit_points",
                current_hit_points=cmd.current_hit_points,
                max_hit_points=cmd.max_hit_points,
            )
        if cmd.participant_id is not None and cmd.participant_id in state.participants:
            return _err(
                "validation",
                "DUPLICATE_PARTICIPANT",
                "participant_id already exists in session",
                participant_id=cmd.participant_id,
            )
        return _OK

    if isinstance(cmd, UpdateParticipant):
        if cmd.participant_id not in state.participants:
            return _unknown_participant(cmd.participant_id)
        if cmd.name is not None and not cmd.name.strip():
            return _err("validation", "MISSING_NAME", "Participant name is required")
        bad = _check_hit_points(
            cmd.max_hit_points, cmd.current_hit_points, cmd.temporary_hit_points
        )
        return bad if bad is not None else _OK

    if isinstance(cmd, ApplyHealthDelta):
        if cmd.participant_id not in state.participants:
            return _unknown_participant(cmd.participant_id)
        if cmd.source_id is not None and cmd.source_id not in state.participants:
            return _unknown_participant(cmd.source_id)
        if cmd.amount < 0:
            return _err(
                "validation", "NEGATIVE_AMOUNT", "amount must be >= 0", amount=cmd.amount
            )
        return _OK

    if isinstance(cmd, SetConditions):
        if cmd.participant_id not in state.participants:
            return _unknown_participant(cmd.participant_id)
        for c in cmd.conditions:
            if not c.name.strip():
                return _err("validation", "BAD_CONDITION", "Condition name is required")
            if c.duration is not None and c.duration < 0:
                return _err(
                    "validation",
                    "BAD_CONDITION",
                    "Condition duration must be >= 0",
                    condition=c.name,
                )
        return _OK

    if isinstance(cmd, DeactivateParticipant):
        if cmd.participant_id not in state.participants:
            return _unknown_participant(cmd.participant_id)
        if not state.participants[cmd.participant_id].is_active:
            return _err(
                "invalid_transition",
                "ALREADY_INACTIVE",
                "Participant is already inactive",
                participant_id=cmd.participant_id,
            )
        return _OK

    if isinstance(cmd, RecordAction):
        if cmd.actor_id not in state.participants:
            return _unknown_participant(cmd.actor_id)
        if cmd.target_id is not None and cmd.target_id not in state.participants:
            return _unknown_participant(cmd.target_id)
        if not cmd.action_name.strip():
            return _err("validation", "MISSING_ACTION_NAME", "action_name is required")
        if cmd.damage is not None and cmd.damage < 0:
            return _err(
                "validation", "NEGATIVE_DAMAGE", "damage must be >= 0", damage=cmd.damage
            )
        return _OK

    return _err("validation", "UNKNOWN_COMMAND", "Unknown command")
