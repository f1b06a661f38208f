"""
Per-session broadcast of "resolved" to every poller waiting on that session.

Each waiter owns its own Event, so one waiter waking never consumes the signal for the others.
Once a session id has been notified, later subscriptions start out already set and never block.
"""
import logging
import threading

logger = logging.getLogger(__name__)


class Subscription:
    """A single waiter's handle. Close it (or use it as a context manager) to unregister."""

    def __init__(self, hub: "NotificationHub", sid: str, event: threading.Event):
        self._hub = hub
        self.sid = sid
        self._event = event

    @property
    def notified(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until notified or timeout seconds pass (None: no limit). Returns True if notified."""
        return self._event.wait(timeout)

    def close(self) -> None:
        self._hub._unregister(self.sid, self._event)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class NotificationHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._waiters: dict[str, set[threading.Event]] = {}
        self._resolved: set[str] = set()

    def subscribe(self, sid: str) -> Subscription:
        event = threading.Event()
        with self._lock:
            if sid in self._resolved:
                event.set()
            else:
                self._waiters.setdefault(sid, set()).add(event)
        return Subscription(self, sid, event)

    def notify(self, sid: str) -> None:
        """Mark sid resolved and wake every registered waiter. Repeated calls are no-ops."""
        with self._lock:
            if sid in self._resolved:
                return
            self._resolved.add(sid)
            waiters = self._waiters.pop(sid, set())
        for event in waiters:
            event.set()
        logger.debug("Notified %d waiter(s) for session %s", len(waiters), sid)

    def discard(self, sid: str) -> None:
        """Forget sid entirely, waking anyone still waiting on it (the session is gone)."""
        with self._lock:
            self._resolved.discard(sid)
            waiters = self._waiters.pop(sid, set())
        for event in waiters:
            event.set()

    def waiter_count(self, sid: str) -> int:
        with self._lock:
            return len(self._waiters.get(sid, ()))

    def _unregister(self, sid: str, event: threading.Event) -> None:
        with self._lock:
            waiters = self._waiters.get(sid)
            if waiters is None:
                return
            waiters.discard(event)
            if not waiters:
                del self._waiters[sid]
