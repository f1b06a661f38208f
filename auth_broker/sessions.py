"""
Session records and the in-memory session store.
The store is the only mutable shared structure: readers run concurrently, writers are exclusive.
Records are immutable snapshots; resolution swaps in a new record so readers never see a half-update.
"""
import enum
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any

from auth_broker.errors import StaleResolution, UnknownSession

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    FAILED = "failed"


@dataclass(frozen=True)
class AccessCredential:
    token: str
    secret: str


@dataclass(frozen=True)
class SessionError:
    message: str
    reason: str = "upstream"


@dataclass(frozen=True)
class Session:
    id: str
    application_name: str
    created_at: float
    pending_credential: Any = None
    state: SessionState = SessionState.PENDING
    result: AccessCredential | SessionError | None = None
    updated_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not SessionState.PENDING

    @property
    def last_activity(self) -> float:
        return self.updated_at if self.updated_at is not None else self.created_at

    def resolved(self, result: AccessCredential | SessionError, now: float) -> "Session":
        """Return the terminal version of this (pending) session."""
        state = SessionState.AUTHORIZED if isinstance(result, AccessCredential) else SessionState.FAILED
        return replace(self, state=state, result=result, pending_credential=None, updated_at=now)


@dataclass(frozen=True)
class _Reservation:
    created_at: float

    @property
    def last_activity(self) -> float:
        return self.created_at


class ReadWriteLock:
    """Many readers or one writer. Writers waiting block new readers so they cannot starve."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def reading(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def writing(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class SessionStore:
    """
    Mapping of session id -> Session (or a reservation placeholder).
    If a hub is attached, resolve() notifies it and eviction discards evicted ids from it.
    """

    def __init__(self, hub=None):
        self._entries: dict[str, Session | _Reservation] = {}
        self._lock = ReadWriteLock()
        self._hub = hub

    def __len__(self) -> int:
        with self._lock.reading():
            return sum(1 for e in self._entries.values() if isinstance(e, Session))

    def reserve(self, sid: str, now: float) -> bool:
        """Insert a placeholder for sid if the slot is free. Atomic with respect to other writers."""
        with self._lock.writing():
            if sid in self._entries:
                return False
            self._entries[sid] = _Reservation(created_at=now)
            return True

    def try_insert(self, sid: str, session: Session) -> bool:
        """Store the final record. Fills an empty slot or sid's reservation; False if a session holds it."""
        with self._lock.writing():
            if isinstance(self._entries.get(sid), Session):
                return False
            self._entries[sid] = session
            return True

    def release(self, sid: str) -> None:
        """Drop sid's reservation. A real session under sid is left alone."""
        with self._lock.writing():
            if isinstance(self._entries.get(sid), _Reservation):
                del self._entries[sid]

    def get(self, sid: str) -> Session | None:
        with self._lock.reading():
            entry = self._entries.get(sid)
        return entry if isinstance(entry, Session) else None

    def resolve(self, sid: str, result: AccessCredential | SessionError, now: float) -> Session:
        """
        Move a pending session to its terminal state. Only the first resolution wins;
        later attempts raise StaleResolution and leave the stored result untouched.
        """
        with self._lock.writing():
            current = self._entries.get(sid)
            if not isinstance(current, Session):
                raise UnknownSession(sid)
            if current.is_terminal:
                raise StaleResolution(sid)
            session = current.resolved(result, now)
            self._entries[sid] = session
            # Under the write lock so an eviction's discard() can only come after this notify.
            if self._hub is not None:
                self._hub.notify(sid)
        logger.info("Session %s resolved: %s", sid, session.state.value)
        return session

    def evict_older_than(self, max_age: float, now: float) -> list[str]:
        """Remove every entry idle for more than max_age, resolved or not. Returns the evicted ids."""
        cutoff = now - max_age
        with self._lock.writing():
            evicted = [sid for sid, e in self._entries.items() if e.last_activity < cutoff]
            for sid in evicted:
                del self._entries[sid]
                if self._hub is not None:
                    self._hub.discard(sid)
        if evicted:
            logger.info("Evicted %d idle session(s)", len(evicted))
        return evicted
