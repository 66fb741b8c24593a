"""
Conversation Memory

Per-session turn history with a hard cap on stored entries. Appends for the
same session are serialized so both turns of an exchange stay adjacent.
"""

from collections import defaultdict
from typing import Dict, List, Literal
import asyncio

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class ConversationTurn(BaseModel):
    """One remembered message."""
    role: Literal["user", "assistant"]
    content: str


class MemoryStore:
    """In-memory session histories, oldest entries dropped first."""

    def __init__(self, max_entries: int = 20):
        if max_entries < 2:
            raise ValueError("max_entries must hold at least one user/assistant pair")
        self.max_entries = max_entries
        self._sessions: Dict[str, List[ConversationTurn]] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, session_id: str) -> List[ConversationTurn]:
        """Copy of a session's history; empty for unknown sessions."""
        return list(self._sessions.get(session_id, ()))

    async def append(self, session_id: str, user_turn: str, assistant_turn: str) -> None:
        """Record one exchange and trim the session to its cap."""
        async with self._locks[session_id]:
            history = list(self._sessions.get(session_id, ()))
            history.append(ConversationTurn(role="user", content=user_turn))
            history.append(ConversationTurn(role="assistant", content=assistant_turn))
            if len(history) > self.max_entries:
                history = history[-self.max_entries:]
            self._sessions[session_id] = history

        logger.debug("Memory appended", session_id=session_id, entries=len(history))

    def clear(self, session_id: str) -> None:
        """Forget a session. Unknown sessions are ignored."""
        self._sessions.pop(session_id, None)
        # A held lock stays so a pending append keeps serializing against it
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]
        logger.info("Session cleared", session_id=session_id)

    def session_count(self) -> int:
        return len(self._sessions)
