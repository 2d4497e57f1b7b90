"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("shortstay.config")


class Settings(BaseSettings):
    # ResHarmonics (booking provider)
    rh_base_url: str = "https://api.resharmonics.com"
    rh_auth_url: str = "https://auth.resharmonics.com/oauth2/token"
    rh_client_id: str = ""
    rh_client_secret: str = ""
    rh_scope: str = "api/read api/write"
    rh_billing_frequency_id: int = 1
    rh_booking_type_id: int = 1
    rh_channel_id: int = 1

    # Published rate codes queried by availability search
    rate_codes: list[str] = ["BAR", "FLEX", "NONREF"]

    # Stripe
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    default_currency: str = "SEK"

    # Booking notification webhook
    webhook_url: str = ""
    webhook_timeout: float = 10.0

    # Outbound HTTP
    request_timeout: float = 20.0
    token_refresh_margin: int = 60

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    frontend_url: str = ""
    cors_origins: list[str] = ["http://localhost:3000"]
    cors_origin_regex: str = r"https://.*\.webflow\.(io|com)"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"sk_test_...", "sk_live_...", "your-client-id", "your-client-secret"}

        # ResHarmonics credentials are required outside debug
        missing = [
            name
            for name, value in (
                ("RH_CLIENT_ID", self.rh_client_id),
                ("RH_CLIENT_SECRET", self.rh_client_secret),
            )
            if not value or value in _placeholders
        ]
        if missing:
            msg = f"{', '.join(missing)} missing or still a placeholder."
            if not self.debug:
                raise ValueError(msg + " Set it in .env to reach ResHarmonics.")
            warnings.append(msg + " Booking calls will fail (DEBUG=true).")

        # Stripe is optional for the legacy card path
        if not self.stripe_secret_key or self.stripe_secret_key in _placeholders:
            warnings.append(
                "STRIPE_SECRET_KEY not set — payment intents cannot be created or verified."
            )

        if not self.webhook_url:
            warnings.append("WEBHOOK_URL not set — booking notifications are disabled.")

        if not self.rate_codes:
            warnings.append("RATE_CODES is empty — availability search returns nothing.")

        return warnings

    @property
    def allowed_origins(self) -> list[str]:
        origins = list(self.cors_origins)
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


settings = Settings()
