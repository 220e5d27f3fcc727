"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path
from urllib.parse import urlsplit

from pydantic_settings import BaseSettings, SettingsConfigDict

from treadmill_sync.errors import InvalidEndpoint


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Every variable is prefixed with ``TREADMILL_`` (e.g. ``TREADMILL_ORIGIN_HOST``).
    """

    # --- App ---
    app_name: str = "Treadmill Sync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # --- Origin (capture service) ---
    origin_host: str = "localhost"
    origin_port: int = 8080
    origin_use_https: bool = False
    origin_base_url: str = ""  # overrides host/port/https when set
    request_timeout_seconds: float = 30.0

    # --- Local state ---
    ledger_path: Path = Path("data/sync_ledger.sqlite3")
    sink_dir: Path = Path("data/workouts")

    # --- Behaviour ---
    live_enabled: bool = True
    scheduler_enabled: bool = True
    sync_config_path: Path | None = None  # None = bundled sync_config.yaml

    model_config = SettingsConfigDict(
        env_prefix="TREADMILL_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def base_url(self) -> str:
        if self.origin_base_url:
            return self.origin_base_url.rstrip("/")
        scheme = "https" if self.origin_use_https else "http"
        return f"{scheme}://{self.origin_host}:{self.origin_port}"


def live_url_for(base_url: str, path: str = "/ws/live") -> str:
    """Derive the WebSocket URL for the live feed from the origin base URL.

    ``http://`` becomes ``ws://``, ``https://`` becomes ``wss://`` and a bare
    ``host[:port]`` is treated as plain ``ws://``.

    Raises:
        InvalidEndpoint: If the result has no host.
    """
    base = base_url.strip().rstrip("/")
    if base.startswith("https://"):
        url = "wss://" + base[len("https://"):] + path
    elif base.startswith("http://"):
        url = "ws://" + base[len("http://"):] + path
    elif "://" in base:
        raise InvalidEndpoint(f"Unsupported origin scheme in {base_url!r}")
    else:
        url = f"ws://{base}{path}"

    try:
        parts = urlsplit(url)
        _ = parts.port  # ValueError on a malformed port
    except ValueError as exc:
        raise InvalidEndpoint(f"Malformed origin URL {base_url!r}: {exc}") from exc
    if not parts.hostname:
        raise InvalidEndpoint(f"Origin URL {base_url!r} has no host")
    return url


@lru_cache
def get_settings() -> Settings:
    return Settings()
