class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class ConflictError(AppError):
    """A create collided with an existing unique identifier."""


class BackendUnavailableError(AppError):
    """The storage backend could not be reached or failed mid-operation."""


class RequestRejectedError(AppError):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class OfflineUnavailableError(AppError):
    pass
