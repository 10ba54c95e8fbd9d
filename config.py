"""Configuration management for the bot.

Provides a ConfigManager class that loads bot configuration from a YAML file
and merges it over sensible defaults.
"""
import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict

from core.errors import ConfigurationError
from storage.file_store import YAMLFileStore

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "api": {
        "host": "https://api.telegram.org",
        "token": "",
        # must exceed the long-poll timeout below
        "timeout_seconds": 60,
    },
    "dispatch": {
        # None means one worker per CPU core
        "workers": None,
        "queue_size": 100,
        "close_on_shutdown": False,
    },
    "polling": {
        # polling is still used when the webhook is not enabled
        "enabled": False,
        "timeout": 30,
        "limit": 100,
        "idle_delay_seconds": 1.0,
    },
    "webhook": {
        "enabled": False,
        "domain": "",
        "path": "/webhook",
        "listen": "0.0.0.0:8443",
        "exposed_port": "",
        "certificate": None,
        "ip_address": None,
        "max_connections": None,
        "drop_pending_updates": False,
        "secret_token": None,
        "grace_period_seconds": 30,
    },
    "logging": {
        "level": "INFO",
    },
}


@dataclass
class ConfigManager:
    """Loads bot configuration from a YAML file.

    Attributes:
        path: Path to the YAML configuration file
        env: Environment used for the BOT_TOKEN override
    """
    path: str
    env: Dict[str, str] = field(default_factory=lambda: dict(os.environ))
    _store: YAMLFileStore = field(init=False)

    def __post_init__(self) -> None:
        self._store = YAMLFileStore(self.path)

    def load(self) -> Dict[str, Any]:
        """Load configuration from file, falling back to defaults.

        Raises:
            ConfigurationError: If the file is malformed or no token is set
        """
        merged = copy.deepcopy(DEFAULT_CONFIG)
        if self._store.exists():
            data = self._store.read()
        else:
            logger.info("Config file %s not found, using defaults", self.path)
            data = {}

        # Merge defaults with file contents, one section at a time
        for section, values in data.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values

        token = self.env.get("BOT_TOKEN")
        if token:
            merged["api"]["token"] = token
        if not merged["api"].get("token"):
            raise ConfigurationError(["no API token configured (api.token or BOT_TOKEN)"])

        return merged
