from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from dmscreen.core.adapters.characters import (
    CharacterProvider,
    ParticipantOverrides,
    participant_from_character,
)
from dmscreen.core.engine.action_log import available_rounds, resolved_actions
from dmscreen.core.engine.commands import Command
from dmscreen.core.engine.rules.apply import run_command
from dmscreen.core.engine.state import Identity, SessionState
from dmscreen.core.errors import CombatError, TransportError, ValidationError
from dmscreen.core.persistence.combat_store import CombatStore
from dmscreen.core.persistence.state_codec import (
    hidden_ids,
    redact_action,
    session_state_to_dict,
    session_to_dict,
)
from dmscreen.core.realtime.gateway import RealtimeGateway
from dmscreen.settings import settings

logger = logging.getLogger(__name__)


class SessionLocks:
    """
    Один lock на сессию: команды одной сессии идут строго по очереди.
    Lock живёт, пока его кто-то держит или ждёт; потом выкидывается.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def for_session(self, session_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
            self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[session_id] -= 1
                if not self._users[session_id]:
                    del self._users[session_id]
                    del self._locks[session_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


DEFAULT_LOCKS = SessionLocks()


class CombatService:
    def __init__(
        self,
        store: CombatStore,
        gateway: RealtimeGateway,
        *,
        characters: Optional[CharacterProvider] = None,
        locks: SessionLocks = DEFAULT_LOCKS,
        admin_role: Optional[str] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.characters = characters
        self.locks = locks
        self.admin_role = admin_role or settings.admin_role

    # --- reads ---

    def get_state(self, session_id: str) -> SessionState:
        return self.store.load_state(session_id)

    def read_model(self, session_id: str, identity: Identity) -> Dict[str, Any]:
        state = self.store.load_state(session_id)
        return session_state_to_dict(
            state, include_hidden=state.is_controller(identity, self.admin_role)
        )

    def list_sessions(self, campaign_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [session_to_dict(s) for s in self.store.list_sessions(campaign_id)]

    def list_actions(
        self, session_id: str, identity: Identity, round_: Optional[int] = None
    ) -> Tuple[List[Dict[str, Any]], List[int]]:
        state = self.store.load_state(session_id)
        actions = resolved_actions(state, round_)
        if not state.is_controller(identity, self.admin_role):
            hidden = hidden_ids(state)
            actions = [
                a for a in (redact_action(x, hidden) for x in actions) if a is not None
            ]
        return actions, available_rounds(state)

    # --- writes ---

    def create_session(
        self,
        identity: Identity,
        *,
        name: str,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        campaign_id: Optional[str] = None,
    ) -> SessionState:
        if not name.strip():
            raise ValidationError("MISSING_NAME", "Combat session name is required")
        state = self.store.create_session(
            name=name.strip(),
            controller_id=identity.user_id,
            campaign_id=campaign_id,
            description=description,
            notes=notes,
        )
        self._persist(state.id, "CreateSession")
        logger.info("combat session %s created by %s", state.id, identity.user_id)
        return state

    def execute(
        self, session_id: str, cmd: Command, identity: Optional[Identity]
    ) -> Tuple[SessionState, List[dict]]:
        """
        load -> validate/apply -> persist -> publish, под lock'ом сессии.
        Публикуем тоже под lock'ом, чтобы порядок событий совпадал с порядком команд.
        """
        with self.locks.for_session(session_id):
            state = self.store.load_state(session_id)
            try:
                state, events = run_command(
                    state, cmd, identity, admin_role=self.admin_role
                )
            except CombatError as e:
                logger.info(
                    "command %s rejected on session %s: %s (%s)",
                    cmd.type,
                    session_id,
                    e.code,
                    e.kind,
                )
                raise

            self._persist(session_id, cmd.type, state)

            try:
                self.gateway.publish_events(session_id, events)
            except TransportError as e:
                logger.error(
                    "partial success: %s committed on session %s but publish failed "
                    "(seq=%s); subscribers must re-fetch: %s",
                    cmd.type,
                    session_id,
                    e.meta.get("seq"),
                    e.message,
                )
                raise

        return state, events

    def add_participant_from_character(
        self,
        session_id: str,
        character_id: str,
        identity: Optional[Identity],
        overrides: Optional[ParticipantOverrides] = None,
    ) -> Tuple[SessionState, List[dict]]:
        if self.characters is None:
            raise ValidationError(
                "NO_CHARACTER_SOURCE", "Character data access is not configured"
            )
        character = self.characters.get_character(character_id)
        cmd = participant_from_character(character, overrides)
        return self.execute(session_id, cmd, identity)

    def _persist(
        self, session_id: str, what: str, state: Optional[SessionState] = None
    ) -> None:
        try:
            if state is not None:
                self.store.save_state(state)
            self.store.commit()
        except SQLAlchemyError as e:
            self.store.rollback()
            logger.error(
                "partial success risk: persistence failed for %s on session %s: %s",
                what,
                session_id,
                e,
            )
            raise TransportError(
                "PERSIST_FAILED",
                f"Failed to persist {what}",
                {"session_id": session_id, "committed": False},
            ) from e
