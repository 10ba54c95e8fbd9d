"""File-based storage utilities for reading bot configuration.

Provides a YAMLFileStore class for loading YAML documents from disk.
"""
import logging
import os
from typing import Any, Dict

import yaml

from core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class YAMLFileStore:
    """Reads a YAML mapping from a file.

    Attributes:
        path: Path to the YAML file
    """
    def __init__(self, path: str) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if the YAML file exists."""
        return os.path.exists(self.path)

    def read(self) -> Dict[str, Any]:
        """Read and parse the YAML file.

        Returns:
            Parsed mapping; an empty document yields an empty dict

        Raises:
            ConfigurationError: If the file is not valid YAML or not a mapping
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError([f"{self.path}: invalid YAML: {exc}"]) from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError([f"{self.path}: top level must be a mapping"])
        logger.debug("Read %d sections from %s", len(data), self.path)
        return data
