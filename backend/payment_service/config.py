from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value):
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", "../.env"), extra="ignore")

    port: int = 3010
    stripe_secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "STRIPE_SECRET_KEY",
            "STRIPE_TEST_SECRET_KEY",
            "STRIPE_LIVE_SECRET_KEY",
        ),
    )
    stripe_webhook_secret: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "STRIPE_WEBHOOK_SECRET",
            "STRIPE_TEST_WEBHOOK_SECRET",
        ),
    )
    service_bdd_url: str = Field(
        default="http://localhost:3001",
        validation_alias=AliasChoices("SERVICE_BDD_URL", "BDD_SERVICE_URL"),
    )
    service_mailer_url: str = Field(
        default="http://localhost:3002",
        validation_alias=AliasChoices("SERVICE_MAILER_URL", "MAILER_SERVICE_URL"),
    )
    checkout_success_url: str = Field(
        default="http://localhost:3009/payement/success",
        validation_alias=AliasChoices("CHECKOUT_SUCCESS_URL", "STRIPE_CHECKOUT_SUCCESS_URL"),
    )
    checkout_cancel_url: str = Field(
        default="http://localhost:3009/payement/error",
        validation_alias=AliasChoices("CHECKOUT_CANCEL_URL", "STRIPE_CHECKOUT_CANCEL_URL"),
    )
    checkout_payment_methods: Annotated[list[str], NoDecode] = ["card", "paypal"]
    default_currency: str = "eur"
    default_product_name: str = "Abonnement Premium"
    default_duration_days: int = 30
    renewal_duration_days: int = 30
    http_timeout_seconds: float = 10.0
    storage_dir: str = "storage"
    log_level: str = "INFO"
    cors_allow_origins: Annotated[list[str], NoDecode] = ["*"]
    sentry_dsn: str | None = Field(
        default=None, validation_alias=AliasChoices("SENTRY_DSN", "PAYMENT_SENTRY_DSN")
    )
    sentry_traces_sample_rate: float = 0.0

    @field_validator("cors_allow_origins", "checkout_payment_methods", mode="before")
    @classmethod
    def _split_lists(cls, value):
        return _split_csv(value)


settings = Settings()
