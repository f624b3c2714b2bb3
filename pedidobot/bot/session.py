from __future__ import annotations

import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Iterator

from pedidobot.core.config import DEDUP_CACHE_SIZE, DEDUP_WINDOW_SECONDS, SESSION_CACHE_SIZE, SESSION_EVICTION

EVICTION_POLICIES = ("fifo", "lru")


@dataclass
class SessionState:
    phone: str
    assistant_mode: bool = False
    user_id: int | None = None
    holders: int = field(default=0, repr=False, compare=False)
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    @property
    def state(self) -> str:
        return "assistant" if self.assistant_mode else "idle"


class SessionStore:
    """Process-local per-phone session flags with bounded size.

    ``fifo`` evicts the oldest created session, ``lru`` the least recently
    read one. Sessions in the middle of a turn are never evicted; a session
    that is evicted starts again in idle mode.
    """

    def __init__(self, *, capacity: int = SESSION_CACHE_SIZE, eviction: str = SESSION_EVICTION) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if eviction not in EVICTION_POLICIES:
            raise ValueError(f"eviction must be one of {EVICTION_POLICIES}")
        self.capacity = capacity
        self.eviction = eviction
        self._sessions: OrderedDict[str, SessionState] = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, phone: str) -> bool:
        return phone in self._sessions

    def get(self, phone: str) -> SessionState:
        with self._lock:
            return self._get_locked(phone)

    def _get_locked(self, phone: str) -> SessionState:
        session = self._sessions.get(phone)
        if session is not None:
            if self.eviction == "lru":
                self._sessions.move_to_end(phone)
            return session
        session = SessionState(phone=phone)
        self._sessions[phone] = session
        self._evict(keep=phone)
        return session

    def _evict(self, keep: str) -> None:
        # sessions in a turn keep their lock, the store may grow past capacity meanwhile
        while len(self._sessions) > self.capacity:
            victim = next(
                (
                    phone
                    for phone, session in self._sessions.items()
                    if phone != keep and not session.holders and not session.lock.locked()
                ),
                None,
            )
            if victim is None:
                return
            del self._sessions[victim]

    def lock_for(self, phone: str) -> Lock:
        return self.get(phone).lock

    @contextmanager
    def hold(self, phone: str) -> Iterator[SessionState]:
        """Run a turn under the phone's lock; the session is not evicted meanwhile."""
        with self._lock:
            session = self._get_locked(phone)
            session.holders += 1
        try:
            with session.lock:
                yield session
        finally:
            with self._lock:
                session.holders -= 1

    def set_assistant_mode(self, phone: str, enabled: bool) -> SessionState:
        session = self.get(phone)
        session.assistant_mode = enabled
        return session

    def is_assistant_mode(self, phone: str) -> bool:
        return self.get(phone).assistant_mode


class DedupCache:
    """Fingerprints of recent inbound messages (sender, text, time bucket).

    Oldest fingerprints are evicted first once ``capacity`` is exceeded.
    """

    def __init__(
        self,
        *,
        capacity: int = DEDUP_CACHE_SIZE,
        window_seconds: int = DEDUP_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.capacity = capacity
        self.clock = clock
        self.window_seconds = max(1, window_seconds)
        self._seen: OrderedDict[tuple[str, str, int], None] = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def fingerprint(self, sender: str, text: str, now: float | None = None) -> tuple[str, str, int]:
        moment = self.clock() if now is None else now
        return (sender, (text or "").strip(), int(moment // self.window_seconds))

    def seen(self, sender: str, text: str, now: float | None = None) -> bool:
        """Record the message and return True when it was already recorded."""
        key = self.fingerprint(sender, text, now)
        with self._lock:
            if key in self._seen:
                return True
            self._seen[key] = None
            while len(self._seen) > self.capacity:
                self._seen.popitem(last=False)
            return False

    def forget(self, sender: str, text: str) -> None:
        """Drop every fingerprint of a message so a redelivery is processed again."""
        text = (text or "").strip()
        with self._lock:
            for key in [key for key in self._seen if key[0] == sender and key[1] == text]:
                del self._seen[key]
