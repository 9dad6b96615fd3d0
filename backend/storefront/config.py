"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - No secrets live here: bearer tokens arrive per session via the Auth collaborator
    - get_settings() is cached (lru_cache) — single instance per process
    - Endpoint paths are relative to api_base_url; {item_id} is the only placeholder

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults match the marketplace backend's REST contract: works out-of-the-box locally
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Marketplace backend
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 30.0

    @field_validator("api_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Paths start with '/', so the base must not end with one."""
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    # REST contract
    cart_path: str = "/cart"
    cart_add_path: str = "/cart/add"
    cart_item_path: str = "/cart/item/{item_id}"
    cart_clear_path: str = "/cart"
    cart_checkout_path: str = "/cart/checkout"
    item_order_path: str = "/payments/create-item-order"
    verify_item_path: str = "/payments/verify-item-purchase"
    verify_cart_path: str = "/payments/verify-cart-purchase"
    payment_config_path: str = "/payments/config"
    purchased_items_path: str = "/user/purchased-items"

    # Payment gateway
    gateway_script_url: str = "https://checkout.razorpay.com/v1/checkout.js"
    gateway_script_timeout_seconds: float = 10.0
    merchant_name: str = "AutogenLabs"
    theme_color: str = "#3B82F6"

    # Cart
    # False: trust the verified checkout and show an empty cart.
    # True: re-fetch the canonical cart after checkout instead.
    cart_resync_after_checkout: bool = False

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
