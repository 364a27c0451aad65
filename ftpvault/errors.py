"""
Errors raised by the user store.
"""


class UserStoreError(Exception):
    """Base class for all user store errors."""
    pass


class ConfigurationError(UserStoreError):
    """Backing resource missing, unreadable or malformed."""
    pass


class PersistenceError(UserStoreError):
    """User data could not be written to disk."""
    pass


class InvalidArgumentError(UserStoreError, ValueError):
    """Required field missing."""
    pass


class AuthenticationFailedError(UserStoreError):
    """Credential rejected. Deliberately says nothing about why."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class UnsupportedAuthKindError(UserStoreError, TypeError):
    """Authentication object of a kind the store does not handle."""
    pass


class ClosedStoreError(UserStoreError, RuntimeError):
    """Store was used after dispose()."""

    def __init__(self, message: str = "User store has been disposed"):
        super().__init__(message)


class PropertiesParseError(UserStoreError, ValueError):
    """Malformed key/value text."""
    pass
