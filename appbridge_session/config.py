"""
Configuration management for the appbridge-session service.

Loads settings from environment variables with APPBRIDGE_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App credentials (client ID / client secret of the embedded app)
    api_key: str
    api_secret_key: str

    # Public base URL of the app, used to build bounce redirects
    host: str  # e.g., "https://app.example.com"

    # Exchange for a user-scoped online token after the offline token
    online_tokens_enabled: bool = False

    # Re-exchange stored sessions whose access token has expired
    check_session_expiry_date: bool = True

    # Trusted shop domains for the identity token's `dest` claim
    shop_domains: list[str] = ["myshopify.com", "myshopify.io"]

    # Token exchange HTTP timeout; timeouts surface as TokenExchangeError
    exchange_timeout_seconds: float = 10.0

    # Clock skew tolerated when validating identity token exp/nbf
    jwt_leeway_seconds: int = 10

    # Logging
    log_level: str = "INFO"

    # Server configuration
    bind_host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_prefix="APPBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def validate_app_config(self) -> None:
        """Validate app credentials and host at startup."""
        if not self.api_key or not self.api_secret_key:
            raise ValueError(
                "APPBRIDGE_API_KEY and APPBRIDGE_API_SECRET_KEY are required to "
                "decode identity tokens and perform token exchange."
            )
        if not self.host.startswith(("https://", "http://")):
            raise ValueError(
                "APPBRIDGE_HOST must be the app's public base URL including scheme "
                f"(got {self.host!r})."
            )
        if not self.shop_domains:
            raise ValueError("APPBRIDGE_SHOP_DOMAINS must list at least one trusted domain.")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded on first use."""
    return Settings()
