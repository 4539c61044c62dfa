from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False

    # Supabase settings (auth + database)
    SUPABASE_URL: str
    SUPABASE_JWKS_URL: str | None = None
    SUPABASE_DB_URL: str

    # Google Calendar delegated OAuth settings
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URI: str | None = None

    # Token encryption at rest + OAuth state signing
    ENCRYPTION_KEY: str | None = None
    OAUTH_STATE_SECRET: str | None = None

    # Planning service (service principal + Vertex AI model)
    GCP_SA_KEY: str | None = None
    GCP_PROJECT_ID: str | None = None
    GCP_LOCATION: str = "us-central1"
    GEMINI_MODEL: str = "gemini-2.5-pro"

    # Redis (per-user scheduling lock)
    REDIS_URL: str = "redis://localhost:6379/0"
    SCHEDULING_LOCK_ENABLED: bool = True
    SCHEDULING_LOCK_TTL_SECONDS: int = 120

    # Outbound provider calls
    PROVIDER_TIMEOUT_SECONDS: float = 20.0

    # Scheduling defaults
    DEFAULT_HORIZON_DAYS: int = 42

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # derive sensible defaults if not provided
    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def calendar_redirect_uri(self) -> str:
        """Get Google Calendar OAuth redirect URI with fallback."""
        if self.GOOGLE_REDIRECT_URI:
            return self.GOOGLE_REDIRECT_URI
        # Default for local development
        return "http://localhost:8000/callback"

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 5, "timeout": 15.0})

        return config


settings = Settings()
