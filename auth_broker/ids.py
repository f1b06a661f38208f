"""
Session id allocation.

Ids are 24 characters drawn uniformly from the 52 ASCII letters: 52**24 ~ 1.6e41 possible ids.
With n live entries a single draw collides with probability n / 52**24 (about 6e-36 at a million
sessions), so the resample loop below has no bound; it terminates after one draw in practice.
"""
import logging
import secrets
import string
import time

logger = logging.getLogger(__name__)

SID_LENGTH = 24
SID_ALPHABET = string.ascii_letters


def random_sid(length: int = SID_LENGTH, alphabet: str = SID_ALPHABET) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


class IdentifierAllocator:
    """Draws ids and reserves them in the store in one atomic insert-if-absent."""

    def __init__(self, store, clock=time.monotonic, generate=random_sid):
        self._store = store
        self._clock = clock
        self._generate = generate

    def allocate(self) -> str:
        while True:
            sid = self._generate()
            if self._store.reserve(sid, self._clock()):
                return sid
            logger.warning("Session id collision, drawing again")
