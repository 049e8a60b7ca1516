"""
Error envelope and the error taxonomy raised by the store and the HTTP layer.
"""
import traceback
from typing import List, Optional


class ApiError(Exception):
    """
    Error variant of the operation result.

    Always carries ``data=None`` and ``success=False``. When no trace is
    supplied, the stack at construction time is captured.
    """

    default_status_code = 500
    default_message = "something went wrong"

    def __init__(
        self,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
        errors: Optional[List[str]] = None,
        trace: str = "",
    ):
        status_code = self.default_status_code if status_code is None else status_code
        if status_code < 400:
            raise ValueError(f"ApiError needs a status code >= 400, got {status_code}")

        message = message or self.default_message
        super().__init__(message)
        self.status_code = status_code
        self.data = None
        self.message = message
        self.success = False
        self.errors = list(errors or [])
        if trace:
            self.trace = trace
        else:
            # drop this frame
            self.trace = "".join(traceback.format_stack()[:-1])

    def to_dict(self, include_trace: bool = False) -> dict:
        body = {
            "status_code": self.status_code,
            "data": self.data,
            "message": self.message,
            "success": self.success,
            "errors": self.errors,
        }
        if include_trace:
            body["trace"] = self.trace
        return body

    def __repr__(self):
        return f"{type(self).__name__}(status_code={self.status_code}, message={self.message!r})"


class ValidationError(ApiError):
    default_status_code = 422
    default_message = "validation failed"


class NotFoundError(ApiError):
    default_status_code = 404
    default_message = "resource not found"


class UploadError(ApiError):
    default_status_code = 502
    default_message = "upload to media provider failed"


class StoreConnectionError(ApiError):
    default_status_code = 503
    default_message = "database unavailable"
