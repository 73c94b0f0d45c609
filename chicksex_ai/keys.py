"""
API key management for ChickSex-AI.

Keys are looked up in three places, first match wins:
1. Environment variable (preferred for CI/production)
2. OS keychain via keyring
3. Local JSON file (~/.chicksex/keys.json, mode 0600)

Usage:
    from chicksex_ai.keys import KeyManager

    km = KeyManager()
    km.set_key("gemini", "AIza...")
    key = km.get_key("gemini")
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from chicksex_ai.config import DATA_DIR

logger = logging.getLogger(__name__)

# Supported services and their env var names
SERVICES = {
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
}


@dataclass
class KeyInfo:
    """Where a key was found and how to display it."""
    service: str
    is_set: bool
    source: str  # 'env', 'keyring', 'config', 'none'
    masked_value: str


def env_var_for(service: str) -> str:
    return SERVICES.get(service.lower(), f"{service.upper()}_API_KEY")


class KeyManager:
    """Look up, store and delete provider API keys.

    Priority order for retrieval: environment, OS keychain, config file.
    """

    SERVICE_NAME = "ChickSex-AI"

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or DATA_DIR / "keys.json"
        self._keyring_available = self._check_keyring()

    def _check_keyring(self) -> bool:
        try:
            import keyring
            keyring.get_keyring()
            return True
        except Exception:
            return False

    def _read_config(self) -> dict:
        if not self.config_file.exists():
            return {}
        try:
            return json.loads(self.config_file.read_text())
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable key file %s", self.config_file)
            return {}

    def _write_config(self, config: dict) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(json.dumps(config, indent=2))
        self.config_file.chmod(0o600)

    def _lookup(self, service: str) -> Iterator[tuple[str, str]]:
        """Yield (source, key) pairs in priority order."""
        if env_val := os.getenv(env_var_for(service)):
            yield "env", env_val

        if self._keyring_available:
            try:
                import keyring
                if key := keyring.get_password(self.SERVICE_NAME, service):
                    yield "keyring", key
            except Exception:
                logger.debug("Keyring lookup failed for %s", service, exc_info=True)

        if key := self._read_config().get(service):
            yield "config", key

    def get_key(self, service: str) -> Optional[str]:
        """Return the highest-priority key for ``service`` or None."""
        for _, key in self._lookup(service.lower()):
            return key
        return None

    def get_key_info(self, service: str) -> KeyInfo:
        service = service.lower()
        for source, key in self._lookup(service):
            return KeyInfo(service=service, is_set=True, source=source, masked_value=mask_key(key))
        return KeyInfo(service=service, is_set=False, source="none", masked_value="")

    def list_keys(self) -> list[KeyInfo]:
        return [self.get_key_info(service) for service in SERVICES]

    def set_key(self, service: str, key: str, use_keyring: bool = True) -> str:
        """Store a key and return where it went ('keyring' or 'config')."""
        service = service.lower()

        if use_keyring and self._keyring_available:
            try:
                import keyring
                keyring.set_password(self.SERVICE_NAME, service, key)
                return "keyring"
            except Exception:
                logger.warning("Keyring unavailable, falling back to %s", self.config_file)

        config = self._read_config()
        config[service] = key
        self._write_config(config)
        return "config"

    def delete_key(self, service: str) -> bool:
        service = service.lower()
        deleted = False

        if self._keyring_available:
            import keyring
            from keyring.errors import PasswordDeleteError
            try:
                keyring.delete_password(self.SERVICE_NAME, service)
                deleted = True
            except PasswordDeleteError:
                logger.debug("No keyring entry for %s", service)

        config = self._read_config()
        if service in config:
            del config[service]
            self._write_config(config)
            deleted = True

        return deleted


def mask_key(key: str) -> str:
    """Show the first and last 4 characters only."""
    if len(key) <= 12:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


def get_key(service: str) -> Optional[str]:
    """Convenience function to get an API key."""
    return KeyManager().get_key(service)


def export_to_env(manager: Optional[KeyManager] = None) -> dict[str, str]:
    """Map env var names to stored keys, for shell export."""
    manager = manager or KeyManager()
    env_vars = {}
    for service in SERVICES:
        key = manager.get_key(service)
        if key:
            env_vars[env_var_for(service)] = key
    return env_vars
