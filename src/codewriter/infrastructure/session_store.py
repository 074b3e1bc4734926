from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from ..config import get_settings
from ..domain.models import ConversationTurn, Session


LOG = logging.getLogger("codewriter.sessions")


class SessionNotFoundError(KeyError):
    """Raised when a session id is unknown (never created or already evicted)."""


class SessionStore(Protocol):
    def new_id(self) -> str: ...

    def create(
        self,
        history: Optional[Iterable[ConversationTurn]] = None,
        session_id: Optional[str] = None,
    ) -> str: ...

    def get(self, session_id: str) -> Optional[Session]: ...

    def append(self, session_id: str, turn: ConversationTurn) -> Session: ...

    def touch(self, session_id: str) -> None: ...

    def evict(self) -> int: ...

    def count(self) -> int: ...


@dataclass
class _Entry:
    session_id: str
    created_at: float
    history: List[ConversationTurn] = field(default_factory=list)


class InMemorySessionStore:
    """Volatile per-process session map.

    Entries are kept in insertion order; that order only matters for capacity
    eviction. ``created_at`` drives the TTL sweep and is refreshed by
    :meth:`touch`.
    """

    def __init__(
        self,
        capacity: int = 100,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._capacity = max(1, int(capacity))
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = RLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def _model(self, entry: _Entry) -> Session:
        return Session(
            session_id=entry.session_id,
            history=[turn.model_copy() for turn in entry.history],
            created_at=entry.created_at,
        )

    def create(
        self,
        history: Optional[Iterable[ConversationTurn]] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Store a new session and return its id.

        ``session_id`` lets a caller commit an id it reserved earlier with
        :meth:`new_id`; an id already in use is replaced by a fresh one.
        """

        with self._lock:
            sid = session_id if session_id and session_id not in self._entries else self.new_id()
            self._entries[sid] = _Entry(
                session_id=sid,
                created_at=self._clock(),
                history=[turn.model_copy() for turn in (history or [])],
            )
            self._evict_over_capacity()
            return sid

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            entry = self._entries.get(session_id)
            if not entry:
                return None
            return self._model(entry)

    def append(self, session_id: str, turn: ConversationTurn) -> Session:
        with self._lock:
            entry = self._entries.get(session_id)
            if not entry:
                raise SessionNotFoundError(session_id)
            entry.history.append(turn.model_copy())
            return self._model(entry)

    def touch(self, session_id: str) -> None:
        with self._lock:
            entry = self._entries.get(session_id)
            if not entry:
                raise SessionNotFoundError(session_id)
            entry.created_at = self._clock()

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_over_capacity(self) -> int:
        removed = 0
        while len(self._entries) > self._capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            removed += 1
            LOG.info("session_evicted_capacity", extra={"session_id": oldest, "capacity": self._capacity})
        return removed

    def evict_expired(self) -> int:
        with self._lock:
            cutoff = self._clock() - self._ttl
            expired = [sid for sid, entry in self._entries.items() if entry.created_at < cutoff]
            for sid in expired:
                del self._entries[sid]
            if expired:
                LOG.info("session_evicted_ttl", extra={"count": len(expired), "ttl_s": self._ttl})
            return len(expired)

    def evict(self) -> int:
        """Apply both eviction policies and return how many sessions were dropped."""

        with self._lock:
            return self.evict_expired() + self._evict_over_capacity()


class SessionSweeper:
    """Daemon thread that runs ``store.evict()`` on a fixed interval."""

    def __init__(self, store: SessionStore, interval_seconds: float) -> None:
        self._store = store
        self._interval = max(0.01, float(interval_seconds))
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="codewriter-session-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._store.evict()
            except Exception:
                # A failed sweep only delays memory reclamation.
                LOG.exception("session_sweep_failed")


_store: Optional[InMemorySessionStore] = None


def get_session_store() -> InMemorySessionStore:
    global _store
    if _store is None:
        settings = get_settings()
        _store = InMemorySessionStore(
            capacity=settings.session_capacity,
            ttl_seconds=settings.session_ttl_seconds,
        )
    return _store


def reset_session_store(store: Optional[InMemorySessionStore] = None) -> None:
    global _store
    _store = store
