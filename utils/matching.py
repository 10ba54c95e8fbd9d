"""Text matching utilities for command tokens.

Provides normalization so "/Start@my_bot", "/start" and "start" all resolve
to the same registered command name.
"""
from typing import Optional


def normalize_command(name: str) -> str:
    """
    Normalize a command name for registry lookups.
    - strip whitespace and a single leading slash
    - drop an "@botname" suffix
    - lower-case
    """
    name = name.strip()
    if name.startswith("/"):
        name = name[1:]
    return name.split("@", 1)[0].lower()


def command_token(text: str) -> Optional[str]:
    """Return the normalized command at the start of text, or None."""
    text = text.lstrip()
    if not text.startswith("/"):
        return None
    token = normalize_command(text.split(maxsplit=1)[0])
    return token or None
