"""Exceptions for kbforge.

Content problems are reported as diagnostics; these cover operational
failures only.
"""


class KBForgeError(Exception):
    """Base class for kbforge errors."""
    pass


class ConfigError(KBForgeError):
    """Raised when configuration cannot be loaded or is invalid."""
    pass


class IndexIOError(KBForgeError):
    """Raised when the persisted index cannot be written or read."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path
