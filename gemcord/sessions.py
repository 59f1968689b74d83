"""Session-scoped conversation history."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from gemcord.db import Database
from gemcord.models import ROLE_USER, Turn


@dataclass(slots=True)
class ChatSession:
    """Context for one chat exchange, keyed by channel or thread id."""

    session_id: str
    replay_history: bool
    history: list[Turn] = field(default_factory=list)


class SessionStore(ABC):
    """Explicit get-or-create access to chat sessions."""

    @abstractmethod
    def get_or_create(self, session_id: str, replay_history: bool) -> ChatSession:
        """Return the session, with prior turns loaded when replay is enabled."""

    @abstractmethod
    def save(self, session: ChatSession, new_turns: list[Turn]) -> None:
        """Persist turns produced during one exchange."""


class SqliteSessionStore(SessionStore):
    """Session store backed by the `session_turns` table."""

    def __init__(self, db: Database, history_turns: int = 50) -> None:
        self._db = db
        self._history_turns = history_turns

    def get_or_create(self, session_id: str, replay_history: bool) -> ChatSession:
        history: list[Turn] = []
        if replay_history:
            history = _from_first_user_turn(self._db.get_session_turns(session_id, self._history_turns))
        return ChatSession(session_id=session_id, replay_history=replay_history, history=history)

    def save(self, session: ChatSession, new_turns: list[Turn]) -> None:
        # Only replayed sessions need their turns on record.
        if session.replay_history and new_turns:
            self._db.append_session_turns(session.session_id, new_turns)
            session.history.extend(new_turns)


def _from_first_user_turn(turns: list[Turn]) -> list[Turn]:
    """Drop turns before the first user turn so a truncated window never opens mid tool exchange."""
    for index, turn in enumerate(turns):
        if turn.role == ROLE_USER:
            return turns[index:]
    return []
