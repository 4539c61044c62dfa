"""
Service-principal authentication for the planning service.

Signs an RS256 JWT assertion (RSASSA-PKCS1-v1_5 over SHA-256) with the
service account's key and trades it for a bearer token with the JWT-bearer
grant.
"""

import functools
import json
import time
from dataclasses import dataclass

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from slotwise.config import settings
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.services.errors import (
    AssertionExchangeFailed,
    CredentialMalformed,
    ProviderUnavailable,
)

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600


@dataclass(frozen=True)
class ServicePrincipalCredential:
    """Parsed service-account key (client email, PKCS8 private key, project)."""

    client_email: str
    private_key: str
    project_id: str | None = None

    @classmethod
    def from_json(cls, raw: str | None) -> "ServicePrincipalCredential":
        """
        Parse the service-account JSON secret.

        Raises:
            CredentialMalformed: Not JSON, or client_email/private_key missing
        """
        if not raw:
            raise CredentialMalformed("Service account key is not configured")
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CredentialMalformed(f"Service account key is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise CredentialMalformed("Service account key must be a JSON object")

        missing = [f for f in ("client_email", "private_key") if not data.get(f)]
        if missing:
            raise CredentialMalformed(f"Service account key missing fields: {', '.join(missing)}")

        return cls(
            client_email=data["client_email"],
            private_key=data["private_key"],
            project_id=data.get("project_id"),
        )


class ServiceAssertionSigner:
    """Signs JWT assertions for one service principal and exchanges them for tokens."""

    def __init__(
        self,
        credential: ServicePrincipalCredential,
        scope: str = CLOUD_PLATFORM_SCOPE,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout: float | None = None,
    ):
        self.credential = credential
        self.scope = scope
        self.token_url = token_url
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self._key = self._import_key(credential.private_key)

    @staticmethod
    def _import_key(pem: str) -> rsa.RSAPrivateKey:
        # Secrets stored in env vars often carry literal "\n" sequences
        normalized = pem.replace("\\n", "\n").encode("utf-8")
        try:
            key = serialization.load_pem_private_key(normalized, password=None)
        except (ValueError, TypeError) as e:
            raise CredentialMalformed(f"Private key could not be imported: {e}") from e
        if not isinstance(key, rsa.RSAPrivateKey):
            raise CredentialMalformed("Private key is not an RSA key")
        return key

    def build_assertion(self, now: int | None = None) -> str:
        """Signed ``header.claims.signature`` assertion valid for one hour."""
        issued_at = int(now if now is not None else time.time())
        claims = {
            "iss": self.credential.client_email,
            "sub": self.credential.client_email,
            "aud": self.token_url,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
            "scope": self.scope,
        }
        return jwt.encode(claims, self._key, algorithm="RS256", headers={"typ": "JWT"})

    async def get_access_token(self) -> str:
        """
        Exchange a fresh assertion for a bearer token (no caching).

        Raises:
            AssertionExchangeFailed: Non-success or no access_token in the body
            ProviderUnavailable: Network failure or timeout
        """
        data = {"grant_type": JWT_BEARER_GRANT, "assertion": self.build_assertion()}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.token_url, data=data)
        except httpx.TimeoutException as e:
            logger.error("Service token exchange timed out")
            raise ProviderUnavailable(
                "Service token exchange timed out", operation="jwt_bearer", timed_out=True
            ) from e
        except httpx.RequestError as e:
            logger.error("Network error during service token exchange", error=str(e))
            raise ProviderUnavailable(
                f"Service token exchange failed: {e}", operation="jwt_bearer"
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success or not body.get("access_token"):
            logger.error(
                "Service token exchange rejected",
                status_code=response.status_code,
                error_code=body.get("error"),
                client_email=self.credential.client_email,
            )
            raise AssertionExchangeFailed(
                f"Token endpoint refused assertion ({body.get('error', response.status_code)})",
                status_code=response.status_code,
            )

        logger.info(
            "Service token obtained",
            client_email=self.credential.client_email,
            expires_in=body.get("expires_in"),
        )
        return body["access_token"]


@functools.lru_cache(maxsize=1)
def get_service_signer() -> ServiceAssertionSigner:
    """Process-wide signer built from GCP_SA_KEY on first use."""
    credential = ServicePrincipalCredential.from_json(settings.GCP_SA_KEY)
    return ServiceAssertionSigner(credential)
