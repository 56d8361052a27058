"""Settings management for Kick Chat Relay."""

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from appdirs import user_config_dir

APP_NAME = "kick-chat-relay"
APP_AUTHOR = "kick-chat-relay"


def get_config_dir() -> Path:
    """Get the configuration directory."""
    path = Path(user_config_dir(APP_NAME, APP_AUTHOR))
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass
class ServerSettings:
    """Downstream Socket.IO server settings."""

    host: str = "0.0.0.0"
    port: int = 3001
    cors_allowed_origins: str = "*"
    log_level: str = "INFO"


@dataclass
class KickSettings:
    """Upstream Kick / Pusher settings."""

    api_base: str = "https://kick.com/api/v2"
    site_base: str = "https://kick.com"
    # Pusher app key and cluster are static, not per channel
    pusher_app_key: str = "32cbd69e4b950bf97679"
    pusher_cluster: str = "us2"
    pusher_host: str = "pusher.com"
    pusher_version: str = "4.3.1"
    connect_timeout: float = 10.0  # seconds to wait for connection_established
    inactivity_timeout: float = 120.0  # seconds without ids or messages
    subscribe_with_fallback: bool = False  # degraded subscribe on guessed ids

    @property
    def pusher_url(self) -> str:
        """Full Pusher WebSocket URL."""
        return (
            f"wss://ws-{self.pusher_cluster}.{self.pusher_host}/app/{self.pusher_app_key}"
            f"?protocol=7&client=js&version={self.pusher_version}&flash=false"
        )


@dataclass
class HttpSettings:
    """Outbound HTTP client settings."""

    timeout: float = 15.0
    max_retries: int = 2
    proxy_url: str = ""  # empty = direct connection
    rotate_user_agent: bool = True


@dataclass
class SevenTVSettings:
    """7TV emote and cosmetics settings."""

    api_base: str = "https://7tv.io/v3"
    cosmetics_enabled: bool = True
    cosmetic_timeout: float = 2.0  # upper bound on delaying a message


@dataclass
class DiscoverySettings:
    """Identifier discovery settings."""

    use_api: bool = True
    use_scraping: bool = True
    use_browser: bool = True
    browser_headless: bool = True
    browser_timeout: float = 30.0
    browser_settle_delay: float = 3.0  # seconds to let the channel page hydrate


@dataclass
class ChatSettings:
    """Message relay settings."""

    history_size: int = 50  # per-channel in-memory replay buffer
    badge_timeout: float = 1.0  # max wait for a channel's subscriber badges per message
    badge_retry_interval: float = 60.0  # seconds before refetching after a failed load


@dataclass
class Settings:
    """Application settings."""

    server: ServerSettings = field(default_factory=ServerSettings)
    kick: KickSettings = field(default_factory=KickSettings)
    http: HttpSettings = field(default_factory=HttpSettings)
    seventv: SevenTVSettings = field(default_factory=SevenTVSettings)
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)
    chat: ChatSettings = field(default_factory=ChatSettings)

    @classmethod
    def load(cls, path: Path | None = None, apply_env: bool = True) -> "Settings":
        """Load settings from file, then apply environment overrides."""
        if path is None:
            path = get_config_dir() / "settings.json"

        settings = cls()
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
                settings = cls._from_dict(data)
            except (json.JSONDecodeError, KeyError, TypeError, AttributeError):
                settings = cls()

        if apply_env:
            settings.apply_env(os.environ)
        return settings

    def save(self, path: Path | None = None) -> None:
        """Save settings to file."""
        if path is None:
            path = get_config_dir() / "settings.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: write to temp file then rename to prevent corruption on crash
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix="settings_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._to_dict(), f, indent=2)
            os.replace(tmp_path, path)  # Atomic on POSIX
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def apply_env(self, env) -> None:
        """Apply environment variable overrides (PORT, PROXY_URL, ...)."""
        if env.get("PORT"):
            self.server.port = self._validate_int(
                _to_int(env["PORT"]), self.server.port, min_val=1, max_val=65535
            )
        if env.get("HOST"):
            self.server.host = env["HOST"]
        if env.get("LOG_LEVEL"):
            self.server.log_level = env["LOG_LEVEL"].upper()
        if env.get("PROXY_URL"):
            self.http.proxy_url = env["PROXY_URL"]
        if env.get("SEVENTV_ENABLED", "").lower() == "false":
            self.seventv.cosmetics_enabled = False
        if env.get("KICK_RELAY_BROWSER", "").lower() == "false":
            self.discovery.use_browser = False

    @staticmethod
    def _validate_int(value, default: int, min_val: int = 0, max_val: int | None = None) -> int:
        """Validate and constrain an integer value."""
        if not isinstance(value, int) or isinstance(value, bool):
            return default
        if value < min_val:
            return min_val
        if max_val is not None and value > max_val:
            return max_val
        return value

    @staticmethod
    def _validate_float(value, default: float, min_val: float = 0.0) -> float:
        """Validate a positive number, accepting ints."""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return max(float(value), min_val)

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create Settings from a dictionary with validation."""
        settings = cls()

        server = data.get("server", {})
        settings.server.host = server.get("host", settings.server.host)
        settings.server.port = cls._validate_int(
            server.get("port"), settings.server.port, min_val=1, max_val=65535
        )
        settings.server.cors_allowed_origins = server.get(
            "cors_allowed_origins", settings.server.cors_allowed_origins
        )
        settings.server.log_level = server.get("log_level", settings.server.log_level)

        kick = data.get("kick", {})
        for key in (
            "api_base",
            "site_base",
            "pusher_app_key",
            "pusher_cluster",
            "pusher_host",
            "pusher_version",
        ):
            setattr(settings.kick, key, kick.get(key, getattr(settings.kick, key)))
        settings.kick.connect_timeout = cls._validate_float(
            kick.get("connect_timeout"), settings.kick.connect_timeout, min_val=1.0
        )
        settings.kick.inactivity_timeout = cls._validate_float(
            kick.get("inactivity_timeout"), settings.kick.inactivity_timeout, min_val=5.0
        )
        settings.kick.subscribe_with_fallback = bool(
            kick.get("subscribe_with_fallback", settings.kick.subscribe_with_fallback)
        )

        http = data.get("http", {})
        settings.http.timeout = cls._validate_float(
            http.get("timeout"), settings.http.timeout, min_val=1.0
        )
        settings.http.max_retries = cls._validate_int(
            http.get("max_retries"), settings.http.max_retries, min_val=0, max_val=10
        )
        settings.http.proxy_url = http.get("proxy_url", settings.http.proxy_url)
        settings.http.rotate_user_agent = bool(
            http.get("rotate_user_agent", settings.http.rotate_user_agent)
        )

        seventv = data.get("seventv", {})
        settings.seventv.api_base = seventv.get("api_base", settings.seventv.api_base)
        settings.seventv.cosmetics_enabled = bool(
            seventv.get("cosmetics_enabled", settings.seventv.cosmetics_enabled)
        )
        settings.seventv.cosmetic_timeout = cls._validate_float(
            seventv.get("cosmetic_timeout"), settings.seventv.cosmetic_timeout, min_val=0.1
        )

        discovery = data.get("discovery", {})
        for key in ("use_api", "use_scraping", "use_browser", "browser_headless"):
            setattr(settings.discovery, key, bool(discovery.get(key, getattr(settings.discovery, key))))
        settings.discovery.browser_timeout = cls._validate_float(
            discovery.get("browser_timeout"), settings.discovery.browser_timeout, min_val=1.0
        )
        settings.discovery.browser_settle_delay = cls._validate_float(
            discovery.get("browser_settle_delay"), settings.discovery.browser_settle_delay
        )

        chat = data.get("chat", {})
        settings.chat.history_size = cls._validate_int(
            chat.get("history_size"), settings.chat.history_size, min_val=0, max_val=1000
        )
        settings.chat.badge_timeout = cls._validate_float(
            chat.get("badge_timeout"), settings.chat.badge_timeout
        )
        settings.chat.badge_retry_interval = cls._validate_float(
            chat.get("badge_retry_interval"), settings.chat.badge_retry_interval
        )

        return settings

    def _to_dict(self) -> dict:
        """Convert Settings to a dictionary."""
        return {
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "cors_allowed_origins": self.server.cors_allowed_origins,
                "log_level": self.server.log_level,
            },
            "kick": {
                "api_base": self.kick.api_base,
                "site_base": self.kick.site_base,
                "pusher_app_key": self.kick.pusher_app_key,
                "pusher_cluster": self.kick.pusher_cluster,
                "pusher_host": self.kick.pusher_host,
                "pusher_version": self.kick.pusher_version,
                "connect_timeout": self.kick.connect_timeout,
                "inactivity_timeout": self.kick.inactivity_timeout,
                "subscribe_with_fallback": self.kick.subscribe_with_fallback,
            },
            "http": {
                "timeout": self.http.timeout,
                "max_retries": self.http.max_retries,
                "proxy_url": self.http.proxy_url,
                "rotate_user_agent": self.http.rotate_user_agent,
            },
            "seventv": {
                "api_base": self.seventv.api_base,
                "cosmetics_enabled": self.seventv.cosmetics_enabled,
                "cosmetic_timeout": self.seventv.cosmetic_timeout,
            },
            "discovery": {
                "use_api": self.discovery.use_api,
                "use_scraping": self.discovery.use_scraping,
                "use_browser": self.discovery.use_browser,
                "browser_headless": self.discovery.browser_headless,
                "browser_timeout": self.discovery.browser_timeout,
                "browser_settle_delay": self.discovery.browser_settle_delay,
            },
            "chat": {
                "history_size": self.chat.history_size,
                "badge_timeout": self.chat.badge_timeout,
                "badge_retry_interval": self.chat.badge_retry_interval,
            },
        }


def _to_int(value: str) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
