"""
Error kinds for the deep dive pipeline.

Every error is terminal for the current analysis. Each carries a stable code,
a generic user-facing message and the HTTP status used by the API layer.
Raw engine payloads are kept on the exception for logging only.
"""

from typing import Optional, Sequence

from fastapi import HTTPException


class DeepDiveError(Exception):
    code = "DEEP_DIVE_FAILED"
    user_message = "An unexpected error occurred during the deep dive."
    status_code = 500

    def __init__(self, user_message: Optional[str] = None):
        if user_message:
            self.user_message = user_message
        super().__init__(self.user_message)


class InvalidRequest(DeepDiveError):
    code = "INVALID_REQUEST"
    user_message = "Please fill in the tool name, website, license tier and scenario."
    status_code = 400

    def __init__(self, missing: Sequence[str] = (), user_message: Optional[str] = None):
        self.missing = list(missing)
        if not user_message and self.missing:
            user_message = f"Missing or invalid fields: {', '.join(self.missing)}."
        super().__init__(user_message)


class EngineUnavailable(DeepDiveError):
    code = "ENGINE_UNAVAILABLE"
    user_message = "The research engine is unavailable right now. Please try again."
    status_code = 503


class EmptyResponse(DeepDiveError):
    code = "EMPTY_RESPONSE"
    user_message = "No response generated. Please try again."
    status_code = 502


class SchemaViolation(DeepDiveError):
    code = "SCHEMA_VIOLATION"
    user_message = "Invalid response format from AI. Please try again."
    status_code = 502

    def __init__(self, raw_text: str, reason: str = ""):
        self.raw_text = raw_text
        self.reason = reason
        super().__init__()


def to_http_exception(exc: DeepDiveError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "code": exc.code,
            "message": exc.user_message,
        },
    )
