"""Configuration surface for the quote delivery pipeline."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class SenderSettings(BaseModel):
    """Sender identity used by every transport."""
    name: str = "Kocky's Bar & Grill"
    email: str = "info@example.com"
    # Comma-separated list of addresses copied on every quote email.
    cc: str = ""

    @property
    def cc_addresses(self) -> List[str]:
        return _split_csv(self.cc)


class OAuthMailSettings(BaseModel):
    """Microsoft Graph sendMail with the OAuth2 client-credentials grant."""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    mailbox: str = ""
    token_url_template: str = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    scope: str = "https://graph.microsoft.com/.default"
    safety_margin_seconds: int = 60

    @property
    def is_configured(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    @property
    def token_url(self) -> str:
        return self.token_url_template.format(tenant_id=self.tenant_id)


class SendGridSettings(BaseModel):
    api_key: str = ""
    api_base: str = "https://api.sendgrid.com/v3"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class SmtpSettings(BaseModel):
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.host)


class StripeSettings(BaseModel):
    secret_key: str = ""
    api_base: str = "https://api.stripe.com/v1"
    session_ttl_hours: int = Field(default=24, ge=1, le=24)


class QuoteDeliverySettings(BaseSettings):
    """Main quote delivery configuration.

    Environment variables use the QUOTE_DELIVERY_ prefix and a double
    underscore for nested groups, e.g. QUOTE_DELIVERY_SMTP__HOST.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUOTE_DELIVERY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    environment: Literal["dev", "staging", "prod"] = "dev"

    # Base URL for success/cancel/contact/unsubscribe links
    public_base_url: str = "http://localhost:3000"
    business_name: str = "Kocky's Bar & Grill"
    branding_logo_path: Optional[str] = None

    deposit_fraction: float = 0.2
    quote_template: str = "quote"

    # Comma-separated, highest priority first
    provider_order: str = "graph,sendgrid,smtp"
    provider_timeout_seconds: float = 15.0

    sender: SenderSettings = Field(default_factory=SenderSettings)
    oauth: OAuthMailSettings = Field(default_factory=OAuthMailSettings)
    sendgrid: SendGridSettings = Field(default_factory=SendGridSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("deposit_fraction")
    @classmethod
    def validate_deposit_fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("deposit_fraction must be in (0, 1]")
        return v

    @field_validator("provider_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not 1 <= v <= 60:
            raise ValueError("provider_timeout_seconds must be between 1 and 60")
        return v

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def provider_names(self) -> List[str]:
        return [name.lower() for name in _split_csv(self.provider_order)]


@lru_cache
def load_settings(env_file: str | None = None) -> QuoteDeliverySettings:
    """Load settings once per process so every component sees the same values."""
    env_path = Path(env_file) if env_file else None
    return QuoteDeliverySettings(_env_file=env_path)
