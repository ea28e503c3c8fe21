"""OAuth2 authorization-code flow over a loopback redirect.

One attempt at a time: ``start_authorization()`` tears down whatever is
pending, binds a fresh listener, opens the provider's consent page in the
system browser and returns. The outcome arrives later on the
``on_authenticated`` / ``on_auth_failed`` channels.

Locking: the session store lock is always taken before the pending-slot
lock. Neither is held across the token request or a listener shutdown.
"""

import logging
import secrets
import threading
import time
from typing import Callable, Optional
from urllib.parse import urlencode, quote

import requests

from config import Config, OAuthSettings, load_config
from errors import (
    AuthenticationTimeoutError,
    ConfigurationError,
    ListenerBindError,
    StateMismatchError,
    TokenExchangeError,
)
from events import EventChannel
from oauth.loopback import CALLBACK_PATH, LoopbackListener, open_browser
from oauth.stores import SessionStore, TokenSet

logger = logging.getLogger(__name__)


class PendingAuthorization:
    """The single in-flight authorization attempt."""

    def __init__(self, state: str, settings: OAuthSettings, listener: LoopbackListener):
        self.state = state
        self.settings = settings
        self.listener = listener
        self.redirect_uri = settings.redirect_uri(listener.port)
        self.created_at = time.monotonic()
        self.timer: Optional[threading.Timer] = None
        self.authorization_url = build_authorization_url(settings, self.redirect_uri, state)
        # Set once a valid callback has started the code exchange
        self.claimed = False

    def teardown(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
        self.listener.close()


def build_authorization_url(settings: OAuthSettings, redirect_uri: str, state: str) -> str:
    """Provider consent URL for one attempt."""
    params = {
        "client_id": settings.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(settings.scopes),
        "state": state,
    }
    separator = "&" if "?" in settings.auth_url else "?"
    return f"{settings.auth_url}{separator}{urlencode(params, quote_via=quote)}"


class AuthOrchestrator:
    """Drives the desktop login and writes the result into a SessionStore."""

    def __init__(
        self,
        store: SessionStore,
        config: Config = None,
        open_url: Callable[[str], bool] = open_browser,
        http: requests.Session = None,
    ):
        self.store = store
        self.config = config
        self.open_url = open_url
        self.http = http or requests.Session()

        self.authenticated = EventChannel("authenticated")
        self.failed = EventChannel("auth_failed")

        self._lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._pending: Optional[PendingAuthorization] = None

    # ============== Subscriptions ==============

    def on_authenticated(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call ``callback()`` after each successful exchange."""
        return self.authenticated.subscribe(callback)

    def on_auth_failed(self, callback: Callable[[Exception], None]) -> Callable[[], None]:
        """Call ``callback(error)`` on timeout or token exchange failure.

        Attempts dropped by ``cancel()`` (a superseding start, logout or
        shutdown) end silently: neither channel fires for them.
        """
        return self.failed.subscribe(callback)

    # ============== Attempt lifecycle ==============

    @property
    def pending(self) -> Optional[PendingAuthorization]:
        with self._lock:
            return self._pending

    def _settings(self) -> OAuthSettings:
        # Read lazily so a missing .env only fails the login, not startup
        config = self.config if self.config is not None else load_config()
        return config.oauth_settings()

    def start_authorization(self) -> bool:
        """Begin a new attempt, superseding any pending one.

        Raises ConfigurationError or ListenerBindError. Returns True once the
        listener is bound and the browser has been asked to open.
        """
        settings = self._settings()

        with self._start_lock:
            self.cancel()

            state = secrets.token_urlsafe(32)
            listener = LoopbackListener(settings.redirect_port, self.handle_callback)
            try:
                listener.start()
            except OSError as e:
                logger.warning(f"[OAUTH] Could not bind port {settings.redirect_port}: {e}")
                raise ListenerBindError(
                    f"Could not listen on port {settings.redirect_port}: {e.strerror or e}"
                ) from e

            attempt = PendingAuthorization(state, settings, listener)
            attempt.timer = threading.Timer(settings.timeout, self._expire, args=(attempt,))
            attempt.timer.daemon = True

            with self._lock:
                self._pending = attempt
            attempt.timer.start()

            auth_url = attempt.authorization_url
            logger.info(f"[OAUTH] Authorization started, redirect_uri={attempt.redirect_uri}")
            try:
                opened = self.open_url(auth_url)
            except Exception:
                logger.exception("[OAUTH] Browser launch failed")
                opened = False
            if opened is False:
                logger.warning(f"[OAUTH] Browser did not open for {settings.auth_url}")
            return True

    def cancel(self) -> bool:
        """Drop the pending attempt, if any. Its state can never succeed again."""
        with self._lock:
            attempt, self._pending = self._pending, None
        if attempt is None:
            return False
        logger.info("[OAUTH] Pending authorization cancelled")
        attempt.teardown()
        return True

    def shutdown(self) -> None:
        self.cancel()
        self.http.close()

    def _release(self, attempt: PendingAuthorization) -> bool:
        """Compare-and-clear the pending slot. False if someone else won."""
        with self._lock:
            if self._pending is not attempt:
                return False
            self._pending = None
        return True

    def _expire(self, attempt: PendingAuthorization) -> None:
        with self._lock:
            if self._pending is not attempt or attempt.claimed:
                return
            self._pending = None

        attempt.listener.close()
        logger.warning(f"[OAUTH] No valid callback within {attempt.settings.timeout:g}s")
        self.failed.emit(
            AuthenticationTimeoutError(
                f"No valid callback within {attempt.settings.timeout:g} seconds"
            )
        )

    # ============== Callback ==============

    def _match(self, params: dict) -> PendingAuthorization:
        """Return the pending attempt these parameters belong to.

        Raises StateMismatchError for anything that must be ignored.
        """
        code = params.get("code")
        state = params.get("state") or ""

        with self._lock:
            attempt = self._pending
            if attempt is None:
                raise StateMismatchError("no authorization is pending")
            if not secrets.compare_digest(state.encode(), attempt.state.encode()):
                raise StateMismatchError("state does not match the pending authorization")
            if params.get("error"):
                raise StateMismatchError(f"provider returned error={params['error']}")
            if not code:
                raise StateMismatchError("callback carries no code")
            if attempt.claimed:
                raise StateMismatchError("authorization is already being exchanged")
            attempt.claimed = True

        if attempt.timer is not None:
            attempt.timer.cancel()
        return attempt

    def handle_callback(self, path: str, params: dict) -> None:
        """Listener entry point, called for every incoming request."""
        if path != CALLBACK_PATH:
            logger.debug(f"[OAUTH] Ignoring request for {path}")
            return

        try:
            attempt = self._match(params)
        except StateMismatchError as e:
            logger.warning(f"[OAUTH] Ignoring callback: {e}")
            return

        # Exchange off the listener thread so the browser gets its page now
        threading.Thread(
            target=self.exchange_code,
            args=(params["code"], attempt),
            name="slump-token-exchange",
            daemon=True,
        ).start()

    # ============== Token exchange ==============

    def _request_tokens(self, code: str, attempt: PendingAuthorization) -> TokenSet:
        settings = attempt.settings
        try:
            response = self.http.post(
                settings.token_url,
                data={
                    "client_id": settings.client_id,
                    "client_secret": settings.client_secret,
                    "redirect_uri": attempt.redirect_uri,
                    "code": code,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
                timeout=settings.token_timeout,
            )
        except requests.RequestException as e:
            raise TokenExchangeError(f"Network error: {e}") from e

        if not 200 <= response.status_code < 300:
            raise TokenExchangeError(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenExchangeError("Token endpoint returned invalid JSON",
                                     status_code=response.status_code) from e

        try:
            return TokenSet.from_response(payload)
        except ValueError as e:
            raise TokenExchangeError(f"Malformed token response: {e}",
                                     status_code=response.status_code) from e

    def exchange_code(self, code: str, attempt: PendingAuthorization = None) -> None:
        """Trade ``code`` for tokens and conclude the attempt.

        Defaults to the current pending attempt. A result for an attempt that
        was superseded meanwhile is discarded.
        """
        if attempt is None:
            with self._lock:
                attempt = self._pending
                if attempt is None or attempt.claimed:
                    logger.warning("[OAUTH] exchange_code called with nothing to exchange")
                    return
                attempt.claimed = True
            if attempt.timer is not None:
                attempt.timer.cancel()

        try:
            tokens = self._request_tokens(code, attempt)
        except TokenExchangeError as e:
            if not self._release(attempt):
                logger.info("[OAUTH] Discarding failure of a superseded attempt")
                return
            attempt.teardown()
            logger.error(f"[OAUTH] Token exchange failed: {e}")
            self.failed.emit(e)
            return

        with self.store.locked():
            if not self._release(attempt):
                logger.info("[OAUTH] Discarding tokens of a superseded attempt")
                return
            self.store.mark_authenticated(tokens)

        attempt.teardown()
        logger.info(f"[OAUTH] Authenticated, expires_in={tokens.expires_in}")
        self.authenticated.emit()
