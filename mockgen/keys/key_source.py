"""
Credential sourcing for the key pool.

Keys come from a text file (one per line) or from the MOCKGEN_GEMINI_API_KEYS
setting. Blank lines and `#` comments are ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from mockgen.errors import ConfigurationError

if TYPE_CHECKING:
    from config import Settings


def load_api_keys(path: str | Path) -> list[str]:
    """
    Read API keys from a file, one per line.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or empty.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"API key file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Could not read API key file '{path}': {e}") from e

    keys = [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
    if not keys:
        raise ConfigurationError(f"No API keys found in '{path}'")

    logger.debug(f"Read {len(keys)} API key(s) from {path}")
    return keys


def keys_from_settings(settings: Settings, api_key_file: str | Path | None = None) -> list[str]:
    """Resolve keys: explicit file first, then the env setting, then the default file."""
    if api_key_file is not None:
        return load_api_keys(api_key_file)

    if settings.gemini_api_keys:
        keys = [k.strip() for k in settings.gemini_api_keys.split(",") if k.strip()]
        if not keys:
            raise ConfigurationError("MOCKGEN_GEMINI_API_KEYS is set but contains no keys")
        return keys

    return load_api_keys(settings.api_key_file)


def mask_key(key: str) -> str:
    """Show only the first and last four characters of a key."""
    key = key.strip()
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}…{key[-4:]}"
