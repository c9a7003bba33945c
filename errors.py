"""
Exception hierarchy for the map core.

Every rejected mutation raises before the document is touched, so callers
can catch these without worrying about partially applied state.
"""


class MapCoreError(Exception):
    """Base class for all map core errors."""


class InvariantViolation(MapCoreError):
    """A mutation would break a document invariant (last layer, unknown id, ...)."""


class InvalidInput(MapCoreError, ValueError):
    """Numeric or text input outside the accepted range. Never clamped."""


class ConfigError(MapCoreError):
    """Editor defaults or an override file could not be read."""


class StorageError(MapCoreError):
    """The map data file is unreadable or malformed."""
