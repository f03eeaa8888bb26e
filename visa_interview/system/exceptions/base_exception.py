from fastapi import status


class BaseHTTPException(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal server error"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class SessionNotFoundHTTPException(BaseHTTPException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Session not found"


class InvalidTransitionHTTPException(BaseHTTPException):
    status_code = status.HTTP_409_CONFLICT
    detail = "Operation not allowed in the current session state"
