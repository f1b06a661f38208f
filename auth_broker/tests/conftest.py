"""
Shared fixtures: a stub protocol client (no network) and a controllable clock.
"""
import threading
from urllib.parse import parse_qs, urlsplit

import pytest

from auth_broker.broker import EvictionPolicy, SessionBroker
from auth_broker.errors import UpstreamError
from auth_broker.sessions import AccessCredential, Session

CALLBACK_PREFIX = "http://broker.test:8080"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubConsumer:
    """Stands in for OAuth1Consumer. Records calls; fails on demand."""

    def __init__(self, credential=("tok", "sec"), begin_error=None, complete_error=None):
        self.credential = AccessCredential(*credential)
        self.begin_error = begin_error
        self.complete_error = complete_error
        self.callback_urls = []
        self.completions = []
        self._lock = threading.Lock()

    def begin(self, callback_url):
        with self._lock:
            self.callback_urls.append(callback_url)
        if self.begin_error is not None:
            raise self.begin_error
        return f"request-token-{len(self.callback_urls)}", "https://provider.test/authorize?oauth_token=rt"

    def complete(self, request_token, verifier):
        with self._lock:
            self.completions.append((request_token, verifier))
        if self.complete_error is not None:
            raise self.complete_error
        return self.credential


@pytest.fixture
def consumer():
    return StubConsumer()


@pytest.fixture
def broker(consumer):
    """Broker on the real monotonic clock (needed for tests that actually block)."""
    return SessionBroker({"demo": consumer}, CALLBACK_PREFIX)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def clocked_broker(consumer, clock):
    return SessionBroker(
        {"demo": consumer, "broken": StubConsumer(begin_error=UpstreamError("provider down"))},
        CALLBACK_PREFIX,
        clock=clock,
        eviction=EvictionPolicy(max_age=60, probability=0.0),
    )


@pytest.fixture
def make_consumer():
    return StubConsumer


class SlotTakingConsumer(StubConsumer):
    """begin() stores an unrelated session under the new id, as if the reservation had been lost."""

    def __init__(self):
        super().__init__()
        self.store = None

    def begin(self, callback_url):
        sid = parse_qs(urlsplit(callback_url).query)["sid"][0]
        self.store.try_insert(sid, Session(id=sid, application_name="other", created_at=0.0))
        return super().begin(callback_url)


@pytest.fixture
def conflicted_broker():
    consumer = SlotTakingConsumer()
    broker = SessionBroker({"demo": consumer}, CALLBACK_PREFIX)
    consumer.store = broker.store
    return broker
