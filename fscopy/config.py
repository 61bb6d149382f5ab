"""Configuration and credential management for fscopy.

Settings are stored as a JSON file under ``~/.fscopy/``.  Access tokens are
never written to disk: they come from the environment or are delegated to
``keyring``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

_KEYRING_SERVICE = "fscopy"

# Environment variables consulted before the keyring, per provider.
TOKEN_ENV_VARS: dict[str, str] = {
    "yandex": "YANDEX_ACCESS_TOKEN",
}

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: dict[str, Any] = {
    "yandex_base_url": "https://cloud-api.yandex.net/",
    "chunk_size": 32768,
    "http_timeout": 30,
    "show_progress": True,
}

# ---------------------------------------------------------------------------
# ConfigManager
# ---------------------------------------------------------------------------


class ConfigManager:
    """Manages fscopy settings.

    Writes files atomically (write-to-temp, then rename) to prevent
    corruption on unexpected exit.  A corrupt config triggers a warning and
    a safe reset; it never crashes the application.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        """Initialise, creating ``~/.fscopy/`` if necessary."""
        self._base = base_dir or Path.home() / ".fscopy"
        self._config_path = self._base / "config.json"

        self._base.mkdir(parents=True, exist_ok=True)
        self._config: dict[str, Any] = self._load_config()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _atomic_write(self, path: Path, data: Any) -> None:
        """Serialise *data* as JSON and write atomically to *path*."""
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise

    def _load_config(self) -> dict[str, Any]:
        """Load ``config.json``, resetting to defaults on corruption."""
        if not self._config_path.exists():
            logger.debug("No config file, creating defaults")
            config = dict(DEFAULT_CONFIG)
            self._atomic_write(self._config_path, config)
            return config

        try:
            raw = self._config_path.read_text(encoding="utf-8")
            loaded = json.loads(raw)
            if not isinstance(loaded, dict):
                raise ValueError("Config root must be a JSON object")
            # Merge with defaults so new keys are always present
            merged = dict(DEFAULT_CONFIG)
            merged.update(loaded)
            return merged
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Corrupt config.json (%s), resetting to defaults", exc)
            config = dict(DEFAULT_CONFIG)
            self._atomic_write(self._config_path, config)
            return config

    # ------------------------------------------------------------------
    # Config access
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._config_path

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key*, or *default* if missing."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set *key* to *value* and persist the config file."""
        self._config[key] = value
        self._atomic_write(self._config_path, self._config)
        logger.debug("Config updated: %s = %r", key, value)

    def get_all(self) -> dict[str, Any]:
        """Return a shallow copy of the full config dict."""
        return dict(self._config)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def get_access_token(provider: str) -> str:
    """Return the default access token for *provider*.

    The environment variable listed in :data:`TOKEN_ENV_VARS` wins; otherwise
    the OS keyring is consulted.  Returns ``""`` when neither has one.
    """
    env_var = TOKEN_ENV_VARS.get(provider)
    if env_var:
        token = os.environ.get(env_var, "")
        if token:
            return token

    try:
        token = keyring.get_password(_KEYRING_SERVICE, provider)
    except KeyringError as exc:
        logger.debug("Keyring unavailable for %s: %s", provider, exc)
        return ""
    return token or ""


def store_access_token(provider: str, token: str) -> None:
    """Store *token* in the OS keyring for *provider*."""
    keyring.set_password(_KEYRING_SERVICE, provider, token)
    logger.debug("Access token stored in keyring for %s", provider)


def delete_access_token(provider: str) -> None:
    """Remove the stored token for *provider* from the OS keyring."""
    try:
        keyring.delete_password(_KEYRING_SERVICE, provider)
    except PasswordDeleteError:
        pass
    logger.debug("Access token deleted from keyring for %s", provider)
