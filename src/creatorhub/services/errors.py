"""Domain errors shared by the service layer.

Services raise these; route handlers translate them to HTTP status codes
(404, 403, 409). Plain ValueError is used for bad input (400).
"""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist."""


class PermissionDeniedError(Exception):
    """Raised when the caller may not touch an entity."""


class InvalidStateError(Exception):
    """Raised when an entity is not in a state that allows the operation."""


class UserNotFoundError(NotFoundError):
    pass
