"""Error taxonomy for the Slump core.

Every error carries a stable ``code`` so the bridge can turn it into a
structured ``{"success": False, "error": code, ...}`` response.
"""


class SlumpError(Exception):
    """Base class for all errors raised by the core."""

    code = "slump_error"

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__.strip())

    @property
    def description(self) -> str:
        return str(self)


# ============== Authentication ==============

class AuthError(SlumpError):
    """Authorization failed."""

    code = "auth_error"


class ConfigurationError(AuthError):
    """Required OAuth configuration is missing."""

    code = "configuration_error"

    def __init__(self, message: str = None, missing: list = None):
        self.missing = list(missing or [])
        if message is None and self.missing:
            message = f"Missing OAuth configuration: {', '.join(self.missing)}"
        super().__init__(message)


class ListenerBindError(AuthError):
    """Could not bind the local redirect listener."""

    code = "listener_bind_error"


class StateMismatchError(AuthError):
    """Callback state does not match the pending authorization."""

    code = "state_mismatch"


class AuthenticationTimeoutError(AuthError):
    """No valid callback arrived before the authorization expired."""

    code = "authentication_timeout"


class TokenExchangeError(AuthError):
    """The authorization code could not be exchanged for tokens."""

    code = "token_exchange_error"

    def __init__(self, message: str = None, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


# ============== Streaming ==============

class StreamError(SlumpError):
    """Streaming operation failed."""

    code = "stream_error"


class ValidationError(StreamError):
    """Invalid stream configuration."""

    code = "validation_error"


class AlreadyActiveError(StreamError):
    """A stream session is already active. Stop it first."""

    code = "already_active"


class NotActiveError(StreamError):
    """No stream session is connected."""

    code = "not_active"


class EngineError(StreamError):
    """The streaming engine reported a failure."""

    code = "engine_error"
