class BookingError(Exception):
    """
    Base error for the booking flow. Carries a user-facing message and the
    HTTP status the booking server answers with.
    """

    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidInputError(BookingError):
    """Malformed booking parameters. Never reaches the gateway."""

    status_code = 400


class ServerValidationError(BookingError):
    """The booking server rejected the amount/items payload."""

    status_code = 400


class GatewayRequestError(BookingError):
    """Network failure or the gateway refused to issue an authorization."""

    status_code = 502


class GatewayConfirmationError(BookingError):
    """Payment declined or the confirmation step failed."""

    status_code = 402


class SessionStateError(BookingError):
    """An orchestrator operation was invoked from a state that does not allow it."""

    status_code = 409
