"""
Duet — Error taxonomy.

Validation and configuration errors mean the operation was not performed.
Storage errors mean the persistent store rejected a read or write; the
previously committed value is still in place.
"""


class DuetError(Exception):
    """Base class for every error the core reports to its callers."""


class ValidationError(DuetError):
    """Input rejected before any state was touched."""


class ConfigurationError(DuetError):
    """The session is not configured well enough to run the operation."""


class StorageError(DuetError):
    """A persistent-store read or write failed."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key
