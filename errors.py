class BashhubError(Exception):
    """Base class for errors that handlers map to an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BashhubError):
    status_code = 400


class AuthError(BashhubError):
    status_code = 401


class ConflictError(BashhubError):
    status_code = 409


class NotFoundError(BashhubError):
    status_code = 404
