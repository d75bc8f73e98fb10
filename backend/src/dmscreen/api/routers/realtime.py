"""
WebSocket каналы.

Протокол: каждое сообщение - {"event": <имя>, "data": <payload>}.
Первое сообщение в канале боя - sessionSnapshot (полный read model);
после переподключения клиент получает новый снимок, а не повтор пропущенных дельт.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Set, Tuple

import anyio
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from dmscreen.api.deps import get_broker
from dmscreen.core.engine.state import Identity
from dmscreen.core.errors import NotFound
from dmscreen.core.persistence.combat_store import SqlCombatStore
from dmscreen.core.persistence.state_codec import hidden_ids, session_state_to_dict
from dmscreen.core.realtime.broker import InMemoryBroker, Subscription
from dmscreen.core.realtime.gateway import campaign_channel, combat_channel
from dmscreen.core.realtime.read_model import ViewerFilter
from dmscreen.db import session as db_session
from dmscreen.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _send(ws: WebSocket, event: str, data: Dict[str, Any]) -> None:
    await ws.send_json({"event": event, "data": data})


async def _wait_disconnect(ws: WebSocket) -> None:
    # входящие сообщения игнорируем, ждём только закрытия
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        return


async def _pump(ws: WebSocket, sub: Subscription, forward) -> None:
    """
    Пересылает сообщения подписки, пока клиент не отключится.
    Отправитель живёт в task group хендлера и гасится через её cancel scope.
    """
    try:
        async with anyio.create_task_group() as tg:

            async def sender() -> None:
                try:
                    await forward()
                except WebSocketDisconnect:
                    logger.debug("send to closed socket on %s", sub.channel)
                tg.cancel_scope.cancel()

            tg.start_soon(sender)
            await _wait_disconnect(ws)
            tg.cancel_scope.cancel()
    finally:
        sub.close()


def _load_snapshot(
    session_id: str, identity: Identity
) -> Tuple[bool, Dict[str, Any], Set[str]]:
    """return (is_controller, snapshot, hidden_ids)"""
    # короткая сессия БД: соединение не держим всё время жизни сокета
    db = db_session.SessionLocal()
    try:
        state = SqlCombatStore(db).load_state(session_id)
    finally:
        db.close()

    is_controller = state.is_controller(identity, settings.admin_role)
    snapshot = session_state_to_dict(state, include_hidden=is_controller)
    hidden = hidden_ids(state)
    return is_controller, snapshot, hidden


@router.websocket("/combat/{session_id}/ws")
async def combat_ws(
    websocket: WebSocket,
    session_id: str,
    user_id: str,
    role: str = "player",
    broker: InMemoryBroker = Depends(get_broker),
):
    identity = Identity(user_id=user_id, role=role)

    # подписываемся до снимка: иначе событие между чтением и подпиской потеряется
    sub = broker.subscribe(combat_channel(session_id))
    try:
        is_controller, snapshot, hidden = await run_in_threadpool(
            _load_snapshot, session_id, identity
        )
    except NotFound:
        sub.close()
        await websocket.close(code=4404)
        return

    last_seq = int(snapshot.get("seq") or 0)
    viewer = ViewerFilter(is_controller, hidden)

    await websocket.accept()
    await _send(websocket, "sessionSnapshot", snapshot)
    logger.debug("viewer %s joined %s (controller=%s)", user_id, session_id, is_controller)

    async def forward() -> None:
        async for event_name, payload in sub:
            # уже вошло в снимок
            if int(payload.get("seq") or 0) <= last_seq:
                continue
            out = viewer.filter(payload)
            if out is not None:
                await _send(websocket, event_name, out)

    await _pump(websocket, sub, forward)
    logger.debug("viewer %s left %s", user_id, session_id)


@router.websocket("/campaigns/{campaign_id}/ws")
async def campaign_ws(
    websocket: WebSocket,
    campaign_id: str,
    broker: InMemoryBroker = Depends(get_broker),
):
    sub = broker.subscribe(campaign_channel(campaign_id))
    await websocket.accept()

    async def forward() -> None:
        async for event_name, payload in sub:
            await _send(websocket, event_name, payload)

    await _pump(websocket, sub, forward)
