class FinanceError(Exception):
    status_code = 500

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(FinanceError):
    status_code = 400


class NotFound(FinanceError):
    status_code = 404


class AuthError(FinanceError):
    status_code = 401


class InternalError(FinanceError):
    """Storage or transaction failure.

    The message is kept for the log; clients only ever see the generic text.
    """

    status_code = 500
    public_message = "Internal server error"


class Conflict(FinanceError):
    status_code = 409
