"""Error taxonomy shared by the mutation service, the HTTP layer and the client."""


class TaskBoardError(Exception):
    """Base class for board errors."""

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Forbidden(TaskBoardError):
    """Actor lacks the OWNER or EDITOR role on the project."""

    status_code = 403
    default_detail = "Forbidden"


class NotFound(TaskBoardError):
    """Task or project reference is invalid, possibly deleted concurrently."""

    status_code = 404
    default_detail = "Not found"


class InvalidInput(TaskBoardError):
    status_code = 400
    default_detail = "Invalid input"


class TransientFailure(TaskBoardError):
    """Network, timeout or storage failure. The only retryable class."""

    status_code = 503
    default_detail = "Service temporarily unavailable"
