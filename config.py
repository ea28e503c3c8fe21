"""Config management for Slump.

Settings come from the environment. ``load_env()`` fills it from ``.env``
(local override) or the bundled ``.env.public``. Nothing is ever written
back: credentials and tokens stay in process memory.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigurationError


# Required OAuth settings, in the order they are reported when missing
OAUTH_ENV_VARS = {
    "client_id": "META_CLIENT_ID",
    "client_secret": "META_CLIENT_SECRET",
    "auth_url": "META_OAUTH_AUTH_URL",
    "token_url": "META_OAUTH_TOKEN_URL",
    "redirect_port": "META_REDIRECT_PORT",
    "scopes": "OAUTH_SCOPES",
}

DEFAULTS = {
    "SLUMP_REDIRECT_HOST": "localhost",
    "SLUMP_AUTH_TIMEOUT": "120",
    "SLUMP_TOKEN_TIMEOUT": "30",
    "SLUMP_STATS_INTERVAL": "1.0",
    "SLUMP_MAX_POLL_FAILURES": "5",
    "SLUMP_ENGINE_MODULE": "slump_native",
    "SLUMP_API_HOST": "127.0.0.1",
    "SLUMP_API_PORT": "8767",
    # "null" is the Origin of the renderer loaded from file://
    "SLUMP_ALLOWED_ORIGINS": "null,http://localhost:8080,http://127.0.0.1:8080",
    "SLUMP_LOG_LEVEL": "INFO",
    "SLUMP_BITRATE_KBPS": "12000",
    "SLUMP_RESOLUTION": "1920x1080",
    "SLUMP_FPS": "90",
}


def load_env() -> None:
    """Load environment: .env (local override) or .env.public (bundled defaults)."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)
        return

    public_env = Path(__file__).parent / ".env.public"
    if public_env.exists():
        load_dotenv(public_env)


@dataclass(frozen=True)
class OAuthSettings:
    """Validated settings for one authorization attempt."""

    client_id: str
    client_secret: str
    auth_url: str
    token_url: str
    redirect_port: int
    scopes: tuple
    redirect_host: str = "localhost"
    timeout: float = 120.0
    token_timeout: float = 30.0

    def redirect_uri(self, port: int = None) -> str:
        return f"http://{self.redirect_host}:{port or self.redirect_port}/callback"


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    def _get(self, key: str) -> Optional[str]:
        value = self.data.get(key)
        if value is None or not str(value).strip():
            return DEFAULTS.get(key)
        return str(value).strip()

    def _float(self, key: str) -> float:
        try:
            return float(self._get(key))
        except (TypeError, ValueError):
            return float(DEFAULTS[key])

    def _int(self, key: str) -> int:
        try:
            return int(self._get(key))
        except (TypeError, ValueError):
            return int(DEFAULTS[key])

    @property
    def client_id(self) -> Optional[str]:
        return self._get("META_CLIENT_ID")

    @property
    def client_secret(self) -> Optional[str]:
        return self._get("META_CLIENT_SECRET")

    @property
    def auth_url(self) -> Optional[str]:
        return self._get("META_OAUTH_AUTH_URL")

    @property
    def token_url(self) -> Optional[str]:
        return self._get("META_OAUTH_TOKEN_URL")

    @property
    def redirect_port(self) -> Optional[str]:
        return self._get("META_REDIRECT_PORT")

    @property
    def scopes(self) -> list[str]:
        raw = self._get("OAUTH_SCOPES") or ""
        return [s.strip() for s in raw.split(",") if s.strip()]

    @property
    def redirect_host(self) -> str:
        return self._get("SLUMP_REDIRECT_HOST")

    @property
    def auth_timeout(self) -> float:
        return self._float("SLUMP_AUTH_TIMEOUT")

    @property
    def token_timeout(self) -> float:
        return self._float("SLUMP_TOKEN_TIMEOUT")

    @property
    def stats_interval(self) -> float:
        return self._float("SLUMP_STATS_INTERVAL")

    @property
    def max_poll_failures(self) -> int:
        return self._int("SLUMP_MAX_POLL_FAILURES")

    @property
    def engine_module(self) -> str:
        return self._get("SLUMP_ENGINE_MODULE")

    @property
    def api_host(self) -> str:
        return self._get("SLUMP_API_HOST")

    @property
    def api_port(self) -> int:
        return self._int("SLUMP_API_PORT")

    @property
    def allowed_origins(self) -> list[str]:
        """Browser origins allowed to call the local API."""
        return [o.strip() for o in self._get("SLUMP_ALLOWED_ORIGINS").split(",") if o.strip()]

    @property
    def log_level(self) -> str:
        return self._get("SLUMP_LOG_LEVEL").upper()

    @property
    def log_file(self) -> Optional[str]:
        return self._get("SLUMP_LOG_FILE")

    def missing_oauth_settings(self) -> list[str]:
        """Names of the required OAuth variables that are unset."""
        missing = []
        for attr, env_var in OAUTH_ENV_VARS.items():
            value = getattr(self, attr)
            if not value:
                missing.append(env_var)
        return missing

    def oauth_settings(self) -> OAuthSettings:
        """Return validated OAuth settings or raise ConfigurationError."""
        missing = self.missing_oauth_settings()
        if missing:
            raise ConfigurationError(missing=missing)

        try:
            port = int(self.redirect_port)
        except ValueError:
            raise ConfigurationError(f"META_REDIRECT_PORT is not a number: {self.redirect_port!r}")
        if not 0 <= port <= 65535:
            raise ConfigurationError(f"META_REDIRECT_PORT out of range: {port}")

        return OAuthSettings(
            client_id=self.client_id,
            client_secret=self.client_secret,
            auth_url=self.auth_url,
            token_url=self.token_url,
            redirect_port=port,
            scopes=tuple(self.scopes),
            redirect_host=self.redirect_host,
            timeout=self.auth_timeout,
            token_timeout=self.token_timeout,
        )

    def stream_defaults(self) -> dict:
        """Default stream settings (bitrate, resolution, fps)."""
        try:
            width, height = parse_resolution(self._get("SLUMP_RESOLUTION"))
        except ValueError:
            width, height = parse_resolution(DEFAULTS["SLUMP_RESOLUTION"])
        return {
            "bitrate_kbps": self._int("SLUMP_BITRATE_KBPS"),
            "width": width,
            "height": height,
            "fps": self._int("SLUMP_FPS"),
        }


def parse_resolution(value: str) -> tuple[int, int]:
    """Parse ``"1920x1080"`` into ``(1920, 1080)``."""
    width, sep, height = str(value).strip().lower().partition("x")
    if not sep:
        raise ValueError(f"Resolution must look like 1920x1080, got {value!r}")
    return int(width), int(height)


def load_config() -> Config:
    """Load config from the environment."""
    return Config(dict(os.environ))
