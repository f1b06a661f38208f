"""
Session broker: start a delegated-authorization flow, resolve it from the provider callback,
and let clients poll (or long-poll) for the outcome.
"""
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from auth_broker.errors import (
    MissingVerifier,
    SessionConflict,
    StaleResolution,
    UnknownApplication,
    UnknownSession,
    UpstreamError,
    ValidationError,
)
from auth_broker.ids import IdentifierAllocator
from auth_broker.notify import NotificationHub
from auth_broker.sessions import AccessCredential, Session, SessionError, SessionStore
from auth_broker.wait_policy import WaitPolicy

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/oauth/callback"


class ProtocolClient(Protocol):
    def begin(self, callback_url: str) -> tuple[Any, str]: ...

    def complete(self, request_token: Any, verifier: str) -> AccessCredential: ...


@dataclass(frozen=True)
class PollResult:
    session: Session

    @property
    def resolved(self) -> bool:
        return self.session.is_terminal


class EvictionPolicy:
    """Evict sessions idle longer than max_age; maybe_evict() runs a pass with the given probability."""

    def __init__(self, max_age: float, probability: float, rng: random.Random | None = None):
        self.max_age = max_age
        self.probability = probability
        self._rng = rng or random.Random()

    def should_run(self) -> bool:
        return self.probability > 0 and self._rng.random() < self.probability


class SessionBroker:
    def __init__(
        self,
        consumers: Mapping[str, ProtocolClient],
        callback_prefix: str,
        *,
        store: SessionStore | None = None,
        hub: NotificationHub | None = None,
        allocator: IdentifierAllocator | None = None,
        wait_policy: WaitPolicy | None = None,
        eviction: EvictionPolicy | None = None,
        clock=time.monotonic,
    ):
        self.consumers = consumers
        self.callback_prefix = callback_prefix.rstrip("/")
        self.hub = hub if hub is not None else NotificationHub()
        self.store = store if store is not None else SessionStore(hub=self.hub)
        self.clock = clock
        self.allocator = allocator or IdentifierAllocator(self.store, clock=clock)
        self.wait_policy = wait_policy or WaitPolicy()
        self.eviction = eviction or EvictionPolicy(max_age=900, probability=0.0)

    def start(self, application_name: str | None) -> tuple[str, str]:
        """Begin a flow for the named app. Returns (sid, authorize_url)."""
        if not application_name:
            raise ValidationError("'app' missing")
        consumer = self.consumers.get(application_name)
        if consumer is None:
            raise UnknownApplication(application_name)

        sid = self.allocator.allocate()
        try:
            request_token, url = consumer.begin(f"{self.callback_prefix}{CALLBACK_PATH}?sid={sid}")
        except UpstreamError:
            self.store.release(sid)
            raise
        except Exception as e:
            self.store.release(sid)
            raise UpstreamError(str(e)) from e

        session = Session(
            id=sid,
            application_name=application_name,
            created_at=self.clock(),
            pending_credential=request_token,
        )
        if not self.store.try_insert(sid, session):
            # Only possible if the reservation was evicted and the id reallocated while begin() ran.
            raise SessionConflict(sid)
        logger.info("Started session %s for app %s", sid, application_name)
        return sid, url

    def handle_callback(self, sid: str | None, verifier: str | None) -> Session:
        """
        Resolve a pending session from the provider's redirect. Only the first call per session
        has any effect; duplicates raise StaleResolution and keep the first outcome.
        """
        if not sid:
            raise ValidationError("'sid' missing")
        session = self._require(sid)
        if session.is_terminal:
            raise StaleResolution(sid)

        if not verifier:
            self.store.resolve(
                sid,
                SessionError("oauth_verifier not found in callback request", reason="missing_verifier"),
                self.clock(),
            )
            raise MissingVerifier("no oauth_verifier found")

        consumer = self.consumers.get(session.application_name)
        try:
            if consumer is None:
                raise UpstreamError(f"app no longer registered: {session.application_name}")
            credential = consumer.complete(session.pending_credential, verifier)
        except Exception as e:
            logger.warning("Access token exchange failed for session %s: %s", sid, e)
            self.store.resolve(sid, SessionError(f"cannot obtain access token: {e}"), self.clock())
            if isinstance(e, UpstreamError):
                raise
            raise UpstreamError(str(e)) from e
        return self.store.resolve(sid, credential, self.clock())

    def poll(self, sid: str | None, wait: str | None = None, now: float | None = None) -> PollResult:
        """
        Return the session's outcome, blocking until it resolves or the wait deadline
        (measured from `now`, the poll's arrival) passes.
        """
        if not sid:
            raise ValidationError("'sid' missing")
        arrival = self.clock() if now is None else now
        deadline = self.wait_policy.deadline(wait, arrival)

        session = self._require(sid)
        if session.is_terminal:
            return PollResult(session)

        with self.hub.subscribe(sid) as subscription:
            # Re-read after registering: a resolution in between has already set our handle.
            session = self._require(sid)
            if not session.is_terminal:
                timeout = None if deadline is None else deadline - self.clock()
                if timeout is None or timeout > 0:
                    logger.debug("Waiting on session %s (timeout=%s)", sid, timeout)
                    subscription.wait(timeout)
                session = self._require(sid)
        return PollResult(session)

    def evict_stale(self, now: float | None = None) -> list[str]:
        return self.store.evict_older_than(self.eviction.max_age, self.clock() if now is None else now)

    def maybe_evict(self) -> list[str]:
        if self.eviction.should_run():
            return self.evict_stale()
        return []

    def _require(self, sid: str) -> Session:
        session = self.store.get(sid)
        if session is None:
            raise UnknownSession(sid)
        return session
