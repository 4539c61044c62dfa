"""
Translation of engine errors into HTTP errors, shared by the routers.
"""

from fastapi import HTTPException, status

from slotwise.db.helpers import DatabaseError
from slotwise.services.errors import (
    AssertionExchangeFailed,
    CommitFailure,
    CredentialMalformed,
    InsufficientCapacity,
    InvalidGrant,
    InvalidPlan,
    InvalidState,
    InvalidWorkingHours,
    NotConnected,
    PlanGenerationError,
    ProviderUnavailable,
    SchedulingEngineError,
    SchedulingInProgress,
    Unauthenticated,
)
from slotwise.services.oauth.google_oauth_client import GoogleOAuthConfigError

_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (Unauthenticated, status.HTTP_401_UNAUTHORIZED),
    (InvalidState, status.HTTP_400_BAD_REQUEST),
    (NotConnected, status.HTTP_404_NOT_FOUND),
    (InvalidGrant, status.HTTP_502_BAD_GATEWAY),
    (ProviderUnavailable, status.HTTP_502_BAD_GATEWAY),
    (InsufficientCapacity, status.HTTP_409_CONFLICT),
    (SchedulingInProgress, status.HTTP_409_CONFLICT),
    (InvalidPlan, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidWorkingHours, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (CredentialMalformed, status.HTTP_503_SERVICE_UNAVAILABLE),
    (AssertionExchangeFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GoogleOAuthConfigError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PlanGenerationError, status.HTTP_502_BAD_GATEWAY),
    (CommitFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def to_http_exception(error: SchedulingEngineError | DatabaseError) -> HTTPException:
    """Build the HTTPException for an engine or storage error."""
    if isinstance(error, DatabaseError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error_code": "storage_unavailable", "message": "Storage temporarily unavailable"},
        )

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = mapped
            break

    detail: dict = {"error_code": error.error_code, "message": str(error)}

    if isinstance(error, ProviderUnavailable):
        if error.timed_out:
            status_code = status.HTTP_504_GATEWAY_TIMEOUT
        if error.status_code is not None:
            detail["provider_status"] = error.status_code
    if isinstance(error, InvalidGrant):
        detail["message"] = "Reconnect your calendar"
    if isinstance(error, InsufficientCapacity):
        detail["task_title"] = error.task_title
        detail["remaining_minutes"] = error.remaining_minutes
    if isinstance(error, CommitFailure):
        detail["sessions"] = error.sessions

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def require_user_id(claims: dict | None) -> str:
    """The caller's user id from verified claims; 401 when the token names no subject."""
    if not claims:
        raise to_http_exception(Unauthenticated())
    user_id = claims.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise to_http_exception(Unauthenticated("Token has no subject"))
    return user_id
