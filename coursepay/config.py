from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Map the env var named DATABASE_URL to this field
    database_url: str = Field(alias="DATABASE_URL")

    # PayOS merchant credentials
    payos_client_id: str = Field(default="", alias="PAYOS_CLIENT_ID")
    payos_api_key: str = Field(default="", alias="PAYOS_API_KEY")
    payos_checksum_key: str = Field(default="", alias="PAYOS_CHECKSUM_KEY")
    payos_base_url: str = Field(default="https://api-merchant.payos.vn", alias="PAYOS_BASE_URL")
    gateway_timeout_seconds: float = Field(default=30.0, alias="GATEWAY_TIMEOUT_SECONDS")

    # Frontend base URL used for the checkout cancel/return redirects
    client_url: str = Field(default="http://localhost:5173", alias="CLIENT_URL")

    # Money policy
    commission_rate: Decimal = Field(default=Decimal("0.15"), alias="COMMISSION_RATE")
    currency_exponent: int = Field(default=0, alias="CURRENCY_EXPONENT")  # VND has no minor unit

    payment_link_ttl_minutes: int = Field(default=10, alias="PAYMENT_LINK_TTL_MINUTES")
    order_code_max_attempts: int = Field(default=5, alias="ORDER_CODE_MAX_ATTEMPTS")
    order_code_max_offset: int = Field(default=1000, alias="ORDER_CODE_MAX_OFFSET")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Pydantic v2-style config: read .env and ignore extra env vars
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # don't error on POSTGRES_USER/PASSWORD/DB
    )

    @property
    def gateway_configured(self) -> bool:
        return bool(self.payos_client_id and self.payos_api_key and self.payos_checksum_key)


settings = Settings()
