"""
Google OAuth client for delegated calendar access.
Builds the consent URL and talks to the token endpoint (code exchange, refresh).
"""

from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx

from slotwise.config import settings
from slotwise.infrastructure.observability.logging import get_logger, preview
from slotwise.services.errors import InvalidGrant, ProviderUnavailable, SchedulingEngineError

logger = get_logger(__name__)

GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


class GoogleOAuthConfigError(SchedulingEngineError):
    """Raised when the OAuth client credentials are not configured."""

    error_code = "oauth_not_configured"

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class TokenResponse:
    """Structured representation of OAuth token response."""

    def __init__(self, data: dict):
        self.access_token = data.get("access_token")
        self.refresh_token = data.get("refresh_token")
        self.token_type = data.get("token_type", "Bearer")
        self.expires_in = data.get("expires_in")
        self.scope = data.get("scope", "")

        if self.expires_in:
            self.expires_at = datetime.now(UTC) + timedelta(seconds=int(self.expires_in))
        else:
            self.expires_at = None

    def is_valid(self) -> bool:
        return bool(self.access_token and self.token_type)

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []


class GoogleOAuthClient:
    """
    Authorization-code and refresh-token grants against Google's token endpoint.

    No retries happen here; a failed call surfaces as ProviderUnavailable
    (InvalidGrant when Google rejects the code or refresh token).
    """

    def __init__(self):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.calendar_redirect_uri()
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS

    def _validate_config(self) -> None:
        if not self.client_id:
            raise GoogleOAuthConfigError("GOOGLE_CLIENT_ID not configured")
        if not self.client_secret:
            raise GoogleOAuthConfigError("GOOGLE_CLIENT_SECRET not configured")

    def generate_oauth_url(self, state: str) -> str:
        """
        Build the consent URL (offline access, forced consent, read-only calendar).

        Args:
            state: Signed state value

        Returns:
            str: Complete authorization URL
        """
        self._validate_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(CALENDAR_SCOPES),
            "response_type": "code",
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        oauth_url = f"{GOOGLE_OAUTH_BASE_URL}?{urlencode(params)}"

        logger.info(
            "OAuth URL generated",
            state_preview=preview(state),
            redirect_uri=self.redirect_uri,
        )
        return oauth_url

    async def exchange_code_for_tokens(self, authorization_code: str) -> TokenResponse:
        """
        Exchange an authorization code for access and refresh tokens.

        Raises:
            InvalidGrant: Code expired, reused or issued to another client
            ProviderUnavailable: Any other failure, including timeouts
        """
        self._validate_config()
        logger.info("Exchanging authorization code", code_preview=preview(authorization_code, 12))

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": authorization_code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        response = await self._post_form(data, operation="code_exchange")
        return self._handle_token_response(response, "code_exchange")

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """
        Refresh an access token.

        Google usually omits refresh_token on refresh; the presented one is
        carried over so callers never lose it.

        Raises:
            InvalidGrant: Refresh token revoked or expired
            ProviderUnavailable: Any other failure, including timeouts
        """
        self._validate_config()
        logger.info(
            "Refreshing access token", refresh_token_preview=preview(refresh_token, 12)
        )

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        response = await self._post_form(data, operation="token_refresh")
        token_response = self._handle_token_response(response, "token_refresh")

        if not token_response.refresh_token:
            token_response.refresh_token = refresh_token
            logger.debug("Preserved existing refresh token")

        return token_response

    async def _post_form(self, data: dict, operation: str) -> httpx.Response:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(GOOGLE_TOKEN_URL, data=data, headers=headers)

        except httpx.TimeoutException as e:
            logger.error("Google token endpoint timed out", operation=operation)
            raise ProviderUnavailable(
                f"Google {operation} timed out", operation=operation, timed_out=True
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Network error calling Google token endpoint",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnavailable(
                f"Network error during {operation}: {e}", operation=operation
            ) from e

    def _handle_token_response(self, response: httpx.Response, operation: str) -> TokenResponse:
        """
        Validate a token endpoint response.

        Raises:
            InvalidGrant / ProviderUnavailable: Non-success or unusable body
        """
        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}

            error_code = error_data.get("error", "unknown_error")
            logger.error(
                f"Google {operation} failed",
                status_code=response.status_code,
                error_code=error_code,
                error_description=error_data.get("error_description"),
            )

            error_cls = InvalidGrant if error_code == "invalid_grant" else ProviderUnavailable
            raise error_cls(
                self._map_google_error(error_code),
                operation=operation,
                status_code=response.status_code,
                response_data=error_data,
            )

        try:
            token_response = TokenResponse(response.json())
        except (ValueError, AttributeError) as e:
            logger.error(f"Failed to parse Google {operation} response", error=str(e))
            raise ProviderUnavailable(
                f"Failed to parse Google response: {e}",
                operation=operation,
                status_code=response.status_code,
            ) from e

        if not token_response.is_valid():
            logger.error(f"Invalid token response from Google {operation}")
            raise ProviderUnavailable(
                "Invalid token response from Google",
                operation=operation,
                status_code=response.status_code,
            )

        logger.info(
            f"Google {operation} successful",
            expires_in=token_response.expires_in,
            has_refresh_token=bool(token_response.refresh_token),
            scopes=token_response.scopes,
        )
        return token_response

    def _map_google_error(self, error_code: str) -> str:
        error_messages = {
            "access_denied": "Calendar access was denied. Please try connecting again.",
            "invalid_grant": "Calendar authorization expired or was revoked. Please reconnect your calendar.",
            "invalid_client": "Calendar connection configuration error. Please contact support.",
            "invalid_request": "Invalid calendar connection request. Please try again.",
            "unauthorized_client": "Calendar connection not authorized. Please contact support.",
        }
        return error_messages.get(
            error_code, f"Calendar connection failed ({error_code}). Please try again."
        )


# Singleton instance for application use
google_oauth_client = GoogleOAuthClient()
