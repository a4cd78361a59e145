"""Server-side session storage.

The browser only ever holds a signed, opaque session id; what that id maps to
lives here. ``SessionStore`` is the seam for swapping in a shared store
(Redis, a database table) when running more than one process.
"""

import secrets
import time
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Optional, Tuple


class SessionStore(ABC):
    @abstractmethod
    def get(self, sid: str) -> Optional[dict]:
        ...

    @abstractmethod
    def set(self, sid: str, data: dict, ttl: int) -> None:
        ...

    @abstractmethod
    def delete(self, sid: str) -> None:
        ...

    @staticmethod
    def new_sid() -> str:
        return secrets.token_urlsafe(32)


class MemorySessionStore(SessionStore):
    """Process-local store; contents vanish on restart."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._items: Dict[str, Tuple[float, dict]] = {}
        self._lock = RLock()

    def get(self, sid: str) -> Optional[dict]:
        with self._lock:
            self._purge()
            entry = self._items.get(sid)
            return dict(entry[1]) if entry else None

    def set(self, sid: str, data: dict, ttl: int) -> None:
        with self._lock:
            self._items[sid] = (self._clock() + ttl, dict(data))

    def delete(self, sid: str) -> None:
        with self._lock:
            self._items.pop(sid, None)

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._items)

    def _purge(self) -> None:
        now = self._clock()
        expired = [sid for sid, (expires_at, _) in self._items.items() if expires_at <= now]
        for sid in expired:
            del self._items[sid]
