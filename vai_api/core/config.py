"""
Application configuration.

Values come from environment variables or a local .env file. Billing
behaviour (simulation vs. live ledger, payment provider, tax rate) is read
once here and handed to the billing services when they are built, so a
request never looks at the process environment on its own.
"""
import os
import logging
from decimal import Decimal
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    JWT_SECRET_KEY: str = os.environ.get("JWT_SECRET_KEY", "")
    DATABASE_URL: str = "sqlite+aiosqlite:///./vai.db"

    # Ledger mode: "simulation" settles upgrades immediately and allows the
    # period simulator; "live" goes through the payment gateway.
    LEDGER_MODE: str = "simulation"

    # Payment gateway: sandbox | mercadopago | stripe
    PAYMENT_PROVIDER: str = "sandbox"
    MERCADOPAGO_ACCESS_TOKEN: str = ""
    MERCADOPAGO_API_URL: str = "https://api.mercadopago.com"
    STRIPE_API_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    # Shared secret expected in X-Webhook-Secret on /webhooks/payments
    WEBHOOK_SECRET: str = ""
    SITE_URL: str = "http://localhost:3000"

    # Pricing
    TAX_RATE: Decimal = Decimal("0.21")
    CURRENCY: str = "ARS"
    CUSTOM_PLAN_NAME: str = "Personalizado"
    PREMIUM_PLAN_NAME: str = "Premium"
    TRIAL_PLAN_NAME: str = "Trial"

    class Config:
        env_file = ".env"

    @property
    def is_live(self) -> bool:
        return self.LEDGER_MODE.strip().lower() == "live"


settings = Settings()

# Validate critical security settings
if not settings.JWT_SECRET_KEY:
    raise ValueError(
        "JWT_SECRET_KEY is not set. Export it as an environment variable or add it to .env. "
        "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
    )
