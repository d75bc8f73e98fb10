from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from dmscreen.core.adapters.characters import SqlCharacterProvider
from dmscreen.core.engine.state import Identity
from dmscreen.core.persistence.combat_store import SqlCombatStore
from dmscreen.core.realtime.broker import InMemoryBroker
from dmscreen.core.realtime.gateway import RealtimeGateway
from dmscreen.core.services.combat_service import CombatService
from dmscreen.db.deps import get_db

# один брокер на процесс: и роуты, и WebSocket-хендлеры ходят через него
broker = InMemoryBroker()


def get_broker() -> InMemoryBroker:
    return broker


def get_gateway(pubsub: InMemoryBroker = Depends(get_broker)) -> RealtimeGateway:
    return RealtimeGateway(pubsub)


def get_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Identity:
    """
    Аутентификация живёт снаружи (прокси/фронт), сюда приходит уже
    проверенный пользователь в заголовках.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return Identity(user_id=x_user_id, role=x_user_role or "player")


def get_combat_service(
    db: Session = Depends(get_db),
    gateway: RealtimeGateway = Depends(get_gateway),
) -> CombatService:
    return CombatService(
        SqlCombatStore(db), gateway, characters=SqlCharacterProvider(db)
    )
