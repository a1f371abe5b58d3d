"""
Client Configuration - Pydantic Settings for type-safe config.

NO AMBIENT STATE IN THE CORE - Settings feed the logging/metrics/tracing stack
and are turned into an immutable ConfigSnapshot for every session.
FAIL FAST - Bad receipt check sites or provider templates abort at load time.
"""

import sys
from urllib.parse import urlsplit

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PAY_TYPE = "mozilla/payments/pay/v1"


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


def _has_http_origin(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class Settings(BaseSettings):
    """Client settings loaded from environment variables (IAP_ prefix)."""

    # Marketplace API
    api_url_base: str = "https://marketplace.example.com"
    api_version_prefix: str = "/api/v1"
    request_timeout: float = 30.0

    # Receipt verification
    receipt_check_sites: list[str] = Field(
        default_factory=lambda: [
            "https://receiptcheck.marketplace.example.com",
            "https://marketplace.example.com",
        ]
    )
    fake_products: bool = False  # Test mode: accept test-receipt tokens

    # Payment providers, keyed by the pay request's typ claim
    pay_provider_urls: dict[str, str] = Field(
        default_factory=lambda: {
            DEFAULT_PAY_TYPE: "https://marketplace.example.com/mozpay/?req={jwt}",
            "mozilla-dev/payments/pay/v1": "https://marketplace-dev.example.com/mozpay/?req={jwt}",
            "mozilla-stage/payments/pay/v1": "https://marketplace-stage.example.com/mozpay/?req={jwt}",
        }
    )

    # Payment window
    pay_window_width: int = 276
    pay_window_height: int = 384
    unload_grace_delay: float = 0.3  # seconds
    window_poll_interval: float = 0.5  # seconds, 0 disables polling

    # Receipt polling (web marketplace adapter)
    receipt_poll_interval: float = 1.0
    receipt_poll_attempts: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "iap-client"
    service_version: str = "0.1.0"

    model_config = SettingsConfigDict(
        env_prefix="IAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at load time.

        A client that trusts a malformed verifier list or opens a provider
        template without a token slot is worse than one that refuses to start.
        """
        errors: list[str] = []

        for site in self.receipt_check_sites:
            if not _has_http_origin(site):
                errors.append(f"receipt check site is not an http(s) origin: {site!r}")

        for typ, template in self.pay_provider_urls.items():
            if "{jwt}" not in template:
                errors.append(f"pay provider URL for {typ!r} has no {{jwt}} placeholder")
            elif not _has_http_origin(template):
                errors.append(f"pay provider URL for {typ!r} has no http(s) origin")

        if self.pay_window_width <= 0 or self.pay_window_height <= 0:
            errors.append("pay window dimensions must be positive")
        if self.unload_grace_delay < 0 or self.window_poll_interval < 0:
            errors.append("window delays cannot be negative")
        if self.receipt_poll_attempts < 1:
            errors.append("receipt_poll_attempts must be at least 1")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - PURCHASE CLIENT CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get client settings instance."""
    return settings
