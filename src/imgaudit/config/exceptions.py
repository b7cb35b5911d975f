"""Exceptions raised while loading or validating imgaudit configuration."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised when configuration data cannot be read, merged or validated.

    Attributes:
        source: Layer the offending value came from (``file``, ``environment``
            or ``cli``), when it is known.
    """

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source
