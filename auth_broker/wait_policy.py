"""
Interpret a poll request's `wait` parameter as a deadline (seconds, same clock as the arrival time).
"""
from auth_broker.errors import ValidationError

WAIT_FOREVER = "true"

# Longer waits are treated as "true"; sessions are evicted long before this anyway.
# Keeps timeouts well under threading.TIMEOUT_MAX.
MAX_WAIT_SECONDS = 365 * 24 * 3600


class WaitPolicy:
    """
    None or ""     -> deadline = arrival (check once, don't block)
    "true"         -> no deadline (block until resolved)
    "N" (N >= 0)   -> deadline = arrival + N, or no deadline if N > MAX_WAIT_SECONDS
    Anything else is rejected rather than coerced.
    """

    def deadline(self, wait: str | None, arrival: float) -> float | None:
        if wait is None or wait == "":
            return arrival
        if wait == WAIT_FOREVER:
            return None
        if not (wait.isascii() and wait.isdigit()):
            raise ValidationError(f"invalid wait: {wait}")
        digits = wait.lstrip("0") or "0"
        # compare lengths first so int() never sees an arbitrarily long string
        if len(digits) > len(str(MAX_WAIT_SECONDS)) or int(digits) > MAX_WAIT_SECONDS:
            return None
        return arrival + int(digits)
