from visa_interview.system.exceptions.api_exception_handler import (
    common_exception_handler,
    interview_exception_handler,
)
from visa_interview.system.exceptions.base_exception import (
    BaseHTTPException,
    InvalidTransitionHTTPException,
    SessionNotFoundHTTPException,
)

__all__ = [
    "BaseHTTPException",
    "InvalidTransitionHTTPException",
    "SessionNotFoundHTTPException",
    "common_exception_handler",
    "interview_exception_handler"
]
