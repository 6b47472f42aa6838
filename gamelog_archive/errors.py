"""Exceptions raised by gamelog_archive."""


class GameLogError(Exception):
    """Base class for all errors raised by this package."""


class MalformedReferenceError(GameLogError, ValueError):
    """A player reference in a log line could not be resolved."""


class CacheReadError(GameLogError):
    """A cache query did not produce results in the expected shape."""


class UnknownEventKindError(CacheReadError, KeyError):
    """A storage unit or event kind name is not known to the registry."""

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the plain message instead
        return str(self.args[0]) if self.args else ""


class ConfigError(GameLogError):
    """Configuration could not be loaded or is invalid."""
