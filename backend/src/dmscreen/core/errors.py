from __future__ import annotations

from typing import Any, Dict, Optional


class CombatError(Exception):
    kind = "error"
    status_code = 400

    def __init__(
        self, code: str, message: str, meta: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = dict(meta or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "meta": self.meta,
        }


class ValidationError(CombatError):
    kind = "validation"
    status_code = 422


class InvalidTransition(CombatError):
    kind = "invalid_transition"
    status_code = 409


class PermissionDenied(CombatError):
    kind = "permission_denied"
    status_code = 403


class NotFound(CombatError):
    kind = "not_found"
    status_code = 404


class TransportError(CombatError):
    """
    Команда уже применена (или частично применена), но persistence/publish упал.
    Клиент должен перечитать сессию целиком.
    """

    kind = "transport"
    status_code = 503


ERRORS_BY_KIND: dict[str, type[CombatError]] = {
    cls.kind: cls
    for cls in (
        ValidationError,
        InvalidTransition,
        PermissionDenied,
        NotFound,
        TransportError,
    )
}
