# SPDX-License-Identifier: Apache-2.0
"""
Session pool for kvsim simulations served over HTTP.

Each session holds the latest immutable ``SimulationState`` of one run.
Stepping replaces the stored snapshot under the pool lock, so concurrent
requests against the same session apply their ticks one after another.

When ``max_sessions`` is reached, the least recently used session is
dropped to make room for a new one.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .config import SimulationConfig
from .exceptions import InvalidSimulationConfigError, SessionNotFoundError
from .logging_config import SessionLogContext
from .simulator import SimulationState, advance, reset

logger = logging.getLogger(__name__)


@dataclass
class SessionEntry:
    """Per-session state in the pool."""

    session_id: str
    state: SimulationState
    created_at: float
    last_access: float = 0.0  # Timestamp for LRU


def validate_config(config: SimulationConfig) -> None:
    """
    Reject a config before any state is built from it.

    Raises:
        InvalidSimulationConfigError: If validation reports any problem.
    """
    errors = config.validate()
    if errors:
        raise InvalidSimulationConfigError(errors)


class SessionPool:
    """
    In-memory table of simulation sessions.

    Thread-safe: every read-modify-write of an entry happens under one lock.
    """

    def __init__(self, max_sessions: int = 64):
        self._entries: Dict[str, SessionEntry] = {}
        self._lock = threading.Lock()
        self._max_sessions = max_sessions

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    @property
    def session_count(self) -> int:
        return len(self._entries)

    def get_session_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def create(self, config: SimulationConfig) -> SessionEntry:
        """
        Validate ``config``, reset a new simulation and store it.

        Raises:
            InvalidSimulationConfigError: If the config is invalid.
        """
        validate_config(config)
        state = reset(config)
        now = time.time()
        entry = SessionEntry(
            session_id=f"sim-{uuid.uuid4().hex[:12]}",
            state=state,
            created_at=now,
            last_access=now,
        )

        with self._lock:
            while len(self._entries) >= self._max_sessions:
                victim = self._find_lru_victim()
                if victim is None:
                    break
                del self._entries[victim]
                logger.info(f"Dropped least recently used session {victim}")
            self._entries[entry.session_id] = entry

        with SessionLogContext(entry.session_id):
            logger.info(
                f"Created session: policy={config.eviction_policy.value}, "
                f"blocks={config.block_count}x{config.block_capacity}, "
                f"sequences={config.prompt_count}"
            )
        return entry

    def _find_lru_victim(self) -> Optional[str]:
        """Find the least recently used session. Caller holds the lock."""
        if not self._entries:
            return None
        return min(self._entries.values(), key=lambda e: e.last_access).session_id

    def _get_locked(self, session_id: str) -> SessionEntry:
        entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)
        entry.last_access = time.time()
        return entry

    def get(self, session_id: str) -> SessionEntry:
        """
        Look up a session.

        Raises:
            SessionNotFoundError: If no session has this id.
        """
        with self._lock:
            return self._get_locked(session_id)

    def step(
        self,
        session_id: str,
        ticks: int = 1,
        generated: Optional[Sequence[str]] = None,
    ) -> SimulationState:
        """Advance a session by ``ticks`` ticks and store the new snapshot."""
        with self._lock:
            entry = self._get_locked(session_id)
            entry.state = advance(entry.state, ticks, generated)
            state = entry.state

        with SessionLogContext(session_id):
            logger.debug(
                f"Stepped {ticks} tick(s): tick={state.tick}, mode={state.mode.value}, "
                f"write_clock={state.write_clock}, evictions={state.eviction_count}"
            )
        return state

    def reset(
        self, session_id: str, config: Optional[SimulationConfig] = None
    ) -> SimulationState:
        """
        Reset a session, keeping its config unless a new one is given.

        Raises:
            SessionNotFoundError: If no session has this id.
            InvalidSimulationConfigError: If the new config is invalid.
        """
        if config is not None:
            validate_config(config)

        with self._lock:
            entry = self._get_locked(session_id)
            entry.state = reset(config or entry.state.config)
            state = entry.state

        with SessionLogContext(session_id):
            logger.info(f"Reset session: policy={state.policy.value}")
        return state

    def delete(self, session_id: str) -> None:
        """
        Remove a session.

        Raises:
            SessionNotFoundError: If no session has this id.
        """
        with self._lock:
            if self._entries.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
        logger.info(f"Deleted session {session_id}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_status(self) -> dict:
        """Pool summary for the health endpoint."""
        with self._lock:
            return {
                "session_count": len(self._entries),
                "max_sessions": self._max_sessions,
            }
