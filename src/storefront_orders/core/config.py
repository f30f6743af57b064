from decimal import Decimal
from functools import lru_cache
from typing import List, Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = "Storefront Orders API"
    api_v1_prefix: str = "/api/v1"
    database_url: str = Field(
        default="sqlite:///./storefront.db",
        validation_alias=AliasChoices("DB__CONN", "database_url"),
        description="SQLAlchemy compatible database URL",
    )
    echo_sql: bool = Field(default=False, validation_alias=AliasChoices("DB__ECHO", "echo_sql"))
    default_page_size: int = 50
    max_page_size: int = 200
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG__LEVEL", "log_level"))
    log_json: bool = Field(default=True, validation_alias=AliasChoices("LOG__JSON", "log_json"))

    order_number_prefix: str = "NOWIHT"
    order_number_start: int = 1001
    cas_attempts: int = 5

    # Defaults for the pricing rules; StoreSetting rows override them.
    tax_rate: Decimal = Decimal("0.10")
    shipping_flat: Decimal = Decimal("10.00")
    free_shipping_threshold: Decimal = Decimal("100.00")

    stock_decrement: Literal["order", "none"] = "order"
    return_window_days: int = 30


@lru_cache()
def get_settings() -> Settings:
    return Settings()
