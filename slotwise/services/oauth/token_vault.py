"""
Token vault: persistence of delegated calendar credentials.

Tokens are Fernet-encrypted at rest. Every write is a single upsert keyed by
(user_id, provider); a write without a refresh token keeps the stored one.
"""

from datetime import datetime

from slotwise.db.helpers import execute_query, fetch_one, with_db_retry
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.domain.calendar_domain import CalendarAccount
from slotwise.services.errors import NotConnected
from slotwise.services.infrastructure.encryption_service import (
    EncryptionError,
    decrypt_oauth_tokens,
    encrypt_oauth_tokens,
)

logger = get_logger(__name__)

_SELECT_ACCOUNT = """
SELECT user_id::text AS user_id, provider, email, access_token, refresh_token,
       token_expiry, scopes, updated_at
FROM calendar_accounts
WHERE user_id = %s AND provider = %s
"""

_UPSERT_ACCOUNT = """
INSERT INTO calendar_accounts (
    user_id, provider, email, access_token, refresh_token,
    token_expiry, scopes, updated_at
) VALUES (
    %s, %s, %s, %s, %s, %s, %s, NOW()
)
ON CONFLICT (user_id, provider)
DO UPDATE SET
    email = COALESCE(EXCLUDED.email, calendar_accounts.email),
    access_token = EXCLUDED.access_token,
    refresh_token = COALESCE(EXCLUDED.refresh_token, calendar_accounts.refresh_token),
    token_expiry = EXCLUDED.token_expiry,
    scopes = CASE
        WHEN cardinality(EXCLUDED.scopes) > 0 THEN EXCLUDED.scopes
        ELSE calendar_accounts.scopes
    END,
    updated_at = NOW()
"""


class CalendarAccountRepository:
    """Narrow repository over calendar_accounts."""

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(self, user_id: str, provider: str = "google") -> CalendarAccount | None:
        """
        Load and decrypt a user's credential.

        Raises:
            NotConnected: Stored tokens cannot be decrypted (key rotated)
        """
        row = await fetch_one(_SELECT_ACCOUNT, (user_id, provider))
        if not row:
            return None

        try:
            access_token, refresh_token = decrypt_oauth_tokens(
                row["access_token"], row["refresh_token"]
            )
        except EncryptionError as e:
            logger.error("Stored calendar tokens unreadable", user_id=user_id, error=str(e))
            raise NotConnected(user_id, provider) from e

        return CalendarAccount(
            user_id=row["user_id"],
            provider=row["provider"],
            email=row["email"],
            access_token=access_token,
            refresh_token=refresh_token,
            token_expiry=row["token_expiry"],
            scopes=row["scopes"] or [],
            updated_at=row["updated_at"],
        )

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def upsert(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None,
        token_expiry: datetime | None,
        scopes: list[str] | None = None,
        email: str | None = None,
        provider: str = "google",
    ) -> None:
        """Insert or update the credential in one statement."""
        encrypted_access, encrypted_refresh = encrypt_oauth_tokens(access_token, refresh_token)

        await execute_query(
            _UPSERT_ACCOUNT,
            (
                user_id,
                provider,
                email,
                encrypted_access,
                encrypted_refresh,
                token_expiry,
                scopes or [],
            ),
        )

        logger.info(
            "Calendar account stored",
            user_id=user_id,
            provider=provider,
            has_refresh_token=bool(refresh_token),
            token_expiry=token_expiry.isoformat() if token_expiry else None,
        )


# Singleton instance for application use
calendar_accounts = CalendarAccountRepository()
