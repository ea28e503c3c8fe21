"""In-memory authentication state.

Tokens are never persisted: a new process always starts logged out.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional


def _mask(value: Optional[str]) -> str:
    if not value:
        return "None"
    return f"{value[:4]}...({len(value)} chars)"


@dataclass(frozen=True)
class TokenSet:
    """Tokens returned by a successful code exchange."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_response(cls, payload: dict) -> "TokenSet":
        """Build a TokenSet from a token endpoint JSON payload.

        Raises ValueError if the payload has no usable access token.
        """
        if not isinstance(payload, dict):
            raise ValueError("token response is not a JSON object")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response has no access_token")

        refresh_token = payload.get("refresh_token") or None
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = int(expires_in)
            except (TypeError, ValueError):
                expires_in = None

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            raw=dict(payload),
        )

    def __repr__(self) -> str:
        return (
            f"TokenSet(access_token={_mask(self.access_token)}, "
            f"refresh_token={_mask(self.refresh_token)}, expires_in={self.expires_in})"
        )


@dataclass(frozen=True)
class AppSession:
    authenticated: bool = False
    tokens: Optional[TokenSet] = None


class SessionStore:
    """Holds the authentication state of one app context."""

    def __init__(self):
        self._lock = threading.RLock()
        self._session = AppSession()

    @contextmanager
    def locked(self):
        """Hold the store lock across a compound update."""
        with self._lock:
            yield self

    def status(self) -> bool:
        with self._lock:
            return self._session.authenticated

    def tokens(self) -> Optional[TokenSet]:
        with self._lock:
            return self._session.tokens

    def snapshot(self) -> AppSession:
        with self._lock:
            return self._session

    def mark_authenticated(self, tokens: TokenSet) -> None:
        if tokens is None:
            raise ValueError("mark_authenticated requires a TokenSet")
        with self._lock:
            self._session = AppSession(authenticated=True, tokens=tokens)

    def logout(self) -> bool:
        """Forget the tokens. Safe to call when already logged out."""
        with self._lock:
            self._session = AppSession()
        return True
