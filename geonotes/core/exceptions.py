"""
Custom Exceptions.

Application-specific exception classes for consistent error handling.
None of these are fatal to a running session; each is recoverable by
retrying the user action that triggered it.
"""


class ApplicationError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, code: str = "SYS_INTERNAL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class NotFoundError(ApplicationError):
    """Raised when a resource cannot be found."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, code="RES_NOT_FOUND")


class ClassificationError(ApplicationError):
    """Raised when the remote content classifier call fails or is unusable."""

    def __init__(self, message: str = "Content classifier unavailable") -> None:
        super().__init__(message, code="MOD_CLASSIFIER_FAILED")


class PersistenceError(ApplicationError):
    """Raised when a note insert, select or delete fails on the backend."""

    def __init__(self, message: str = "Persistence error") -> None:
        super().__init__(message, code="SYS_PERSISTENCE_ERROR")


class SearchProviderError(ApplicationError):
    """Raised when the geocoding provider call fails."""

    def __init__(self, message: str = "Search provider error") -> None:
        super().__init__(message, code="SYS_SEARCH_PROVIDER_ERROR")


class InvalidStateError(ApplicationError):
    """Raised when an operation is not allowed in the current pin state."""

    def __init__(self, message: str = "Invalid state transition") -> None:
        super().__init__(message, code="STATE_INVALID_TRANSITION")


class ConfigurationError(ApplicationError):
    """Raised when configuration selects something that does not exist."""

    def __init__(self, message: str = "Invalid configuration") -> None:
        super().__init__(message, code="SYS_CONFIGURATION_ERROR")
