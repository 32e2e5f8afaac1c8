from typing import Any, List, Optional
from fastapi import HTTPException, status


class ApiError(HTTPException):
    """HTTPException carrying the structured status/message pair returned to clients."""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_default = "Something went wrong"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None, headers: Optional[dict] = None):
        self.message = message or self.message_default
        self.errors = errors or []
        super().__init__(status_code=self.status_code_default, detail=self.message, headers=headers)


class BadRequest(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Bad request"


class Unauthorized(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message_default = "Unauthorized request"


class NotFound(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "Not found"


class Conflict(ApiError):
    status_code_default = status.HTTP_409_CONFLICT
    message_default = "Conflict"


class InternalFault(ApiError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    message_default = "Internal server error"


def error_body(status_code: int, message: str, errors: Optional[List[Any]] = None) -> dict:
    return {
        "statusCode": status_code,
        "message": message,
        "success": False,
        "errors": errors or [],
    }
