class MoneyTrackerError(Exception):
    """Base error carrying a user-facing message and an HTTP status."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MoneyTrackerError):
    status_code = 400
    default_message = "Invalid input."


class NotFoundError(MoneyTrackerError):
    status_code = 404
    default_message = "Not found."


class ConflictError(MoneyTrackerError):
    # Existing clients expect a 400 for a taken username.
    status_code = 400
    default_message = "Username already exists"


class AuthError(MoneyTrackerError):
    status_code = 401
    default_message = "Invalid username or password"


class TransientError(MoneyTrackerError):
    status_code = 500
    default_message = "Server error"


class DatabaseInitError(TransientError):
    """Raised when the credential database cannot be opened or migrated."""
