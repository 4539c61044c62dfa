"""
Delegated Google Calendar authorization routes.
/oauth/start redirects the browser to Google's consent screen;
/callback completes the code exchange.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from slotwise.auth.verify import browser_auth_dependency
from slotwise.db.helpers import DatabaseError
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.routes.errors import require_user_id, to_http_exception
from slotwise.services.errors import SchedulingEngineError
from slotwise.services.oauth.calendar_gateway import calendar_gateway

router = APIRouter(tags=["calendar-oauth"])
logger = get_logger(__name__)


@router.get("/oauth/start")
async def oauth_start(
    return_url: str | None = Query(default=None, description="Where to send the user afterwards"),
    claims: dict | None = Depends(browser_auth_dependency),
):
    """Redirect to the Google consent screen (read-only calendar scope)."""
    user_id = require_user_id(claims)
    try:
        url = calendar_gateway.start(user_id, return_url)
    except SchedulingEngineError as e:
        raise to_http_exception(e) from e

    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
async def oauth_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
):
    """Complete authorization: verify state, exchange the code, store tokens."""
    if error:
        logger.warning("Calendar authorization denied by user", error=error)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error_code": "authorization_denied", "message": error},
        )

    try:
        result = await calendar_gateway.callback(code, state)
    except (SchedulingEngineError, DatabaseError) as e:
        raise to_http_exception(e) from e

    if result.return_to:
        return RedirectResponse(result.return_to, status_code=status.HTTP_302_FOUND)

    return {"status": "connected", "provider": "google", "email": result.email}
