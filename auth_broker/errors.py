"""
Error taxonomy for the broker. Routes in main.py map these to HTTP status codes.
"""


class BrokerError(Exception):
    """Base class for every error raised by the broker core."""


class ValidationError(BrokerError):
    """Missing or malformed request parameter (400)."""


class NotFoundError(BrokerError):
    """Unknown application or session id (404)."""


class UnknownApplication(NotFoundError):
    def __init__(self, name: str):
        super().__init__(f"invalid app: {name}")
        self.name = name


class UnknownSession(NotFoundError):
    def __init__(self, sid: str):
        super().__init__(f"invalid session ID: {sid}")
        self.sid = sid


class UpstreamError(BrokerError):
    """The provider failed the request-token or access-token step. Never retried."""


class StaleResolution(BrokerError):
    """Resolution attempted on a session that is already terminal (duplicate callback)."""

    def __init__(self, sid: str):
        super().__init__(f"session already resolved: {sid}")
        self.sid = sid


class MissingVerifier(BrokerError):
    """Callback arrived without oauth_verifier; the session is resolved as failed."""


class SessionConflict(BrokerError):
    """A freshly started session could not be stored because its id is held by another session."""

    def __init__(self, sid: str):
        super().__init__(f"session ID already in use: {sid}")
        self.sid = sid


class ConfigError(ValueError):
    """Invalid provider or consumer catalog."""
