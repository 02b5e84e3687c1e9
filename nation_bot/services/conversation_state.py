"""In-memory per-user conversation state with TTL pruning."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

AWAITING_AGENT_PROMPT = "awaiting_agent_prompt"


@dataclass(slots=True)
class ConversationState:
    """Marks a user as mid-flow, e.g. waiting for an agent prompt."""

    user_key: str
    name: str
    created_at: float = 0.0


class ConversationStateStore:
    """Process-lifetime state keyed by user, expired after ``ttl_seconds``."""

    def __init__(
        self,
        ttl_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._states: Dict[str, ConversationState] = {}
        self._lock = threading.Lock()

    def _prune(self) -> None:
        threshold = self._clock() - self._ttl
        expired = [
            key for key, state in self._states.items() if state.created_at < threshold
        ]
        for key in expired:
            del self._states[key]

    def set(self, user_key: str, name: str) -> ConversationState:
        state = ConversationState(
            user_key=str(user_key),
            name=name,
            created_at=self._clock(),
        )
        with self._lock:
            self._prune()
            self._states[state.user_key] = state
        logger.debug("Set user %s state to %s", user_key, name)
        return state

    def get(self, user_key: str) -> Optional[ConversationState]:
        with self._lock:
            self._prune()
            return self._states.get(str(user_key))

    def pop(self, user_key: str, name: Optional[str] = None) -> Optional[ConversationState]:
        """Remove and return the user's state; with ``name``, only if it matches."""
        key = str(user_key)
        with self._lock:
            self._prune()
            state = self._states.get(key)
            if state is None or (name is not None and state.name != name):
                return None
            del self._states[key]
        return state

    def clear(self, user_key: str) -> None:
        with self._lock:
            if self._states.pop(str(user_key), None) is not None:
                logger.debug("Cleared state for user %s", user_key)


__all__ = ["AWAITING_AGENT_PROMPT", "ConversationState", "ConversationStateStore"]
