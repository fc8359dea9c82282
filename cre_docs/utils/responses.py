"""Response envelope helpers shared by the API endpoints."""

from typing import Any, Dict, Optional

from cre_docs.core.exceptions import (
    APITimeoutError,
    AppError,
    AuthenticationError,
    ConcurrentModificationError,
    ExtractionPolicyError,
    InvalidStateTransition,
    ModelDeploymentError,
    NotFoundError,
    RateLimitError,
    UpstreamServerError,
    ValidationError,
)

# Checked in order, first match wins
_ERROR_STATUS = (
    (NotFoundError, 404),
    (ConcurrentModificationError, 409),
    (InvalidStateTransition, 409),
    (ModelDeploymentError, 409),
    (ValidationError, 400),
    (ExtractionPolicyError, 400),
    (AuthenticationError, 401),
    (RateLimitError, 429),
    (UpstreamServerError, 502),
    (APITimeoutError, 504),
)


def create_api_response(
    data: Any = None,
    message: Optional[str] = None,
    success: bool = True,
) -> Dict[str, Any]:
    """Build the standard success envelope.

    Args:
        data: Response payload
        message: Optional human-readable message

    Returns:
        dict: ``{"success": ..., "data": ..., "message": ...}``
    """
    response: Dict[str, Any] = {"success": success, "data": data}
    if message is not None:
        response["message"] = message
    return response


def create_error_response(error: str) -> Dict[str, Any]:
    """Build the error envelope. Never includes stack traces."""
    return {"success": False, "error": error}


def status_code_for_error(error: AppError) -> int:
    """Map an application error to the HTTP status returned for it."""
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500
