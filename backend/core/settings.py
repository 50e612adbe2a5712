"""Runtime configuration.

AppSettings is built from environment variables once at startup and passed
explicitly into the services. SettingsStore layers the user-editable values
(provider access key, theme) kept in the key-value store on top of it and
notifies listeners when they change, so running services pick up a new key
without a restart.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date

import structlog

from backend.core.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)

NASA_API_BASE = "https://api.nasa.gov/planetary/apod"

# Rate limited, but works without signing up
DEMO_KEY = "DEMO_KEY"

# First published APOD
APOD_EARLIEST = date(1995, 6, 16)

THEMES = ("dark", "light")


class StorageKeys:
    """Key names used in the key-value store."""
    NASA_API_KEY = "cosmic_lens_nasa_key"
    GEMINI_API_KEY = "cosmic_lens_gemini_key"  # reserved
    CACHE_PREFIX = "cosmic_lens_cache_"
    THEME = "cosmic_lens_theme"


@dataclass(frozen=True)
class AppSettings:
    """Effective configuration for the backend.

    Attributes:
        nasa_api_key: Access key for the APOD API.
        nasa_api_base: APOD endpoint URL.
        nasa_timeout: HTTP timeout in seconds for APOD requests.
        gemini_api_key: Google AI key for the assistant (empty = unavailable).
        gemini_model: Gemini model identifier.
        database_url: SQLAlchemy URL for the key-value store.
        theme: UI theme preference.
    """
    nasa_api_key: str = DEMO_KEY
    nasa_api_base: str = NASA_API_BASE
    nasa_timeout: float = 15.0
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    database_url: str = "sqlite:///data/cosmic_lens.sqlite"
    theme: str = "dark"

    @property
    def using_demo_key(self) -> bool:
        return self.nasa_api_key == DEMO_KEY

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Read settings from the process environment."""
        return cls(
            nasa_api_key=os.environ.get("NASA_API_KEY") or DEMO_KEY,
            nasa_api_base=os.environ.get("NASA_API_BASE", NASA_API_BASE),
            nasa_timeout=float(os.environ.get("NASA_TIMEOUT", "15")),
            gemini_api_key=os.environ.get("GEMINI_API_KEY", ""),
            gemini_model=os.environ.get("GEMINI_MODEL", "gemini-2.5-flash"),
            database_url=os.environ.get("DATABASE_URL", "sqlite:///data/cosmic_lens.sqlite"),
        )


class SettingsStore:
    """User-editable settings persisted in the key-value store."""

    def __init__(self, store: KeyValueStore, defaults: AppSettings):
        self._store = store
        self._defaults = defaults
        self._listeners: list[Callable[[AppSettings], None]] = []

    def current(self) -> AppSettings:
        """Stored values win over the environment defaults."""
        stored_key = self._store.get(StorageKeys.NASA_API_KEY)
        stored_theme = self._store.get(StorageKeys.THEME)

        settings = self._defaults
        if stored_key:
            settings = replace(settings, nasa_api_key=stored_key)
        if stored_theme in THEMES:
            settings = replace(settings, theme=stored_theme)
        return settings

    def subscribe(self, listener: Callable[[AppSettings], None]) -> None:
        """Register a callback invoked with the new settings after every update."""
        self._listeners.append(listener)

    def update(self, nasa_api_key: str | None = None, theme: str | None = None) -> AppSettings:
        """Persist changed values and notify listeners.

        Args:
            nasa_api_key: New provider key. None leaves it unchanged, an empty
                string removes the stored key (falls back to env / DEMO_KEY).
            theme: "dark" or "light". None leaves it unchanged.

        Returns:
            The effective settings after the update.

        Raises:
            ValueError: If the theme is not recognised.
        """
        if theme is not None and theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")

        if nasa_api_key is not None:
            nasa_api_key = nasa_api_key.strip()
            if nasa_api_key:
                self._store.set(StorageKeys.NASA_API_KEY, nasa_api_key)
            else:
                self._store.remove(StorageKeys.NASA_API_KEY)

        if theme is not None:
            self._store.set(StorageKeys.THEME, theme)

        settings = self.current()
        logger.info("settings.updated", using_demo_key=settings.using_demo_key, theme=settings.theme)

        for listener in self._listeners:
            listener(settings)
        return settings
