"""
Shared configuration helpers.
"""

from typing import Any, Iterable, Optional


class ConfigurationError(Exception):
    """Required configuration is missing or invalid; the process must not start."""

    def __init__(self, missing: list[str], message: Optional[str] = None):
        self.missing = missing
        super().__init__(message or f"Missing required configuration: {', '.join(missing)}")


def require(settings: Any, names: Iterable[str]) -> None:
    """
    Raise ConfigurationError listing every empty setting in `names`.

    Names are attribute names; the error lists their env var spelling.
    """
    missing = [name.upper() for name in names if not getattr(settings, name, None)]
    if missing:
        raise ConfigurationError(missing)
