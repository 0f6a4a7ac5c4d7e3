class DomainError(Exception):
    """Base class for failures raised by domain operations."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Bad input shape or range."""

    status_code = 400


class NotFound(DomainError):
    """A referenced entity does not exist."""

    status_code = 404


class Conflict(DomainError):
    """Unique constraint or state precondition violated."""

    status_code = 409


class AuthenticationError(DomainError):
    status_code = 401
