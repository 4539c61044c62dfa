"""
Delegated OAuth gateway for Google Calendar.

Drives a user's credential through NotConnected -> AuthorizationRequested
-> Authorized, and hands out access tokens that are valid (refreshed when
they expire within a minute). The single retry the engine performs lives
here: one forced refresh after the provider answers 401.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from slotwise.infrastructure.observability.logging import get_logger, preview
from slotwise.services.calendar.google_client import GoogleCalendarClient, google_calendar_client
from slotwise.services.errors import (
    InvalidGrant,
    InvalidState,
    NotConnected,
    ProviderUnavailable,
    Unauthenticated,
)
from slotwise.services.oauth.google_oauth_client import GoogleOAuthClient, google_oauth_client
from slotwise.services.oauth.oauth_state import decode_state, encode_state
from slotwise.services.oauth.token_vault import CalendarAccountRepository, calendar_accounts

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CallbackResult:
    user_id: str
    return_to: str | None
    email: str | None


class DelegatedOAuthGateway:
    """Authorization flow and token lifecycle for delegated calendar access."""

    def __init__(
        self,
        vault: CalendarAccountRepository | None = None,
        oauth_client: GoogleOAuthClient | None = None,
        calendar_client: GoogleCalendarClient | None = None,
    ):
        self.vault = vault or calendar_accounts
        self.oauth_client = oauth_client or google_oauth_client
        self.calendar_client = calendar_client or google_calendar_client

    def start(self, user_id: str | None, return_location: str | None = None) -> str:
        """
        Begin authorization: returns the Google consent URL to redirect to.

        Raises:
            Unauthenticated: No caller identity
        """
        if not user_id:
            raise Unauthenticated()

        state = encode_state(user_id, return_location)
        logger.info("Calendar authorization started", user_id=user_id)
        return self.oauth_client.generate_oauth_url(state)

    async def callback(self, code: str | None, state: str | None) -> CallbackResult:
        """
        Complete authorization: verify state, exchange the code, store tokens.

        The state is verified before any network call.

        Raises:
            InvalidState: Bad, forged or expired state, or no code
            ProviderUnavailable / InvalidGrant: Token exchange failed
        """
        payload = decode_state(state)
        if not code:
            raise InvalidState("Missing authorization code")

        tokens = await self.oauth_client.exchange_code_for_tokens(code)
        if not tokens.refresh_token:
            logger.warning(
                "Token exchange returned no refresh token; offline refresh unavailable",
                user_id=payload.uid,
            )

        email = await self.calendar_client.primary_email(tokens.access_token)

        await self.vault.upsert(
            payload.uid,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_expiry=tokens.expires_at,
            scopes=tokens.scopes,
            email=email,
        )

        logger.info(
            "Calendar connected",
            user_id=payload.uid,
            has_refresh_token=bool(tokens.refresh_token),
            has_email=bool(email),
        )
        return CallbackResult(user_id=payload.uid, return_to=payload.return_to, email=email)

    async def get_valid_access_token(self, user_id: str) -> str:
        """
        Current access token, refreshed first if it expires within 60 seconds.

        A failed refresh is logged and the stored token is returned; the
        provider call that follows decides whether it still works.

        Raises:
            NotConnected: No stored credential
        """
        account = await self.vault.get(user_id)
        if account is None:
            raise NotConnected(user_id)

        if not account.needs_refresh() or not account.can_refresh():
            return account.access_token

        try:
            return await self._refresh_and_store(user_id, account.refresh_token)
        except ProviderUnavailable as e:
            logger.warning(
                "Token refresh failed, using stored access token",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return account.access_token

    async def force_refresh(self, user_id: str) -> str:
        """
        Refresh regardless of expiry (after a provider 401).

        Raises:
            NotConnected: No stored credential
            InvalidGrant: No refresh token, or Google rejected it
            ProviderUnavailable: Token endpoint failure
        """
        account = await self.vault.get(user_id)
        if account is None:
            raise NotConnected(user_id)
        if not account.can_refresh():
            raise InvalidGrant(
                "Calendar authorization expired. Please reconnect your calendar.",
                operation="token_refresh",
                status_code=401,
            )
        return await self._refresh_and_store(user_id, account.refresh_token)

    async def _refresh_and_store(self, user_id: str, refresh_token: str) -> str:
        tokens = await self.oauth_client.refresh_access_token(refresh_token)
        await self.vault.upsert(
            user_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or refresh_token,
            token_expiry=tokens.expires_at,
            scopes=tokens.scopes,
        )
        logger.info(
            "Access token refreshed",
            user_id=user_id,
            token_preview=preview(tokens.access_token),
        )
        return tokens.access_token

    async def with_valid_token(self, user_id: str, call: Callable[[str], Awaitable[T]]) -> T:
        """
        Run a provider call with a valid token, refreshing and retrying once on 401.
        """
        token = await self.get_valid_access_token(user_id)
        try:
            return await call(token)
        except ProviderUnavailable as e:
            if e.status_code != 401:
                raise
            logger.info("Provider returned 401, forcing token refresh", user_id=user_id)

        token = await self.force_refresh(user_id)
        return await call(token)


# Singleton instance for application use
calendar_gateway = DelegatedOAuthGateway()
