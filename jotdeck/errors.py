"""Error kinds raised at the storage, terminal and form boundaries."""

from __future__ import annotations


class JotdeckError(Exception):
    """Base class for every error jotdeck raises on purpose."""


class StorageError(JotdeckError):
    """The persistence layer failed; the operation was not applied."""


class TerminalError(JotdeckError):
    """The terminal could not be set up (or is too small to use)."""


class ValidationError(JotdeckError):
    """User input in a form is not acceptable."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConfigError(JotdeckError):
    """The configuration file could not be read at all."""
