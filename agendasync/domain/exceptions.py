"""
Domain-specific exception hierarchy for the agenda engine.
"""


class AgendaError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(AgendaError):
    """Raised when required settings or secrets are missing. Not retryable."""


class AuthConfigError(ConfigurationError):
    """Raised when service-account material is absent or cannot sign."""


class AuthExchangeError(AgendaError):
    """Raised when the token endpoint rejects the assertion or is unreachable."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class UpstreamQueryError(AgendaError):
    """Raised when external calendar events cannot be listed or parsed."""


class UpstreamWriteError(AgendaError):
    """Raised when an external calendar event cannot be created."""


class IncompleteDataError(AgendaError):
    """Raised when an appointment lacks the data needed to synchronize it."""


class NotificationError(AgendaError):
    """Raised by notifiers when a message cannot be delivered."""


class BookingError(AgendaError):
    """Base class for booking-flow rejections."""


class NotFoundError(BookingError):
    """Raised when a referenced appointment, service or patient does not exist."""


class SlotUnavailableError(BookingError):
    """Raised when the requested slot is not offered or already busy."""


class SlotConflictError(BookingError):
    """Raised by storage when another active appointment holds the same start."""


class InvalidTransitionError(BookingError):
    """Raised when an operator action does not apply to the appointment status."""
