# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string; sqlite:// for local tests)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)
      - STRIPE_SECRET_KEY
      - STRIPE_WEBHOOK_SECRET (signing secret of the webhook endpoint)

    Optional:
      - STRIPE_CURRENCY (ISO code, default "usd")
      - CHECKOUT_SUCCESS_URL / CHECKOUT_CANCEL_URL (hosted checkout redirects)
    """

    PROJECT_NAME: str = "Storefront Backend"
    API_V1_STR: str = "/api/v1"

    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Stripe
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    STRIPE_CURRENCY: str = "usd"

    CHECKOUT_SUCCESS_URL: str = "http://localhost:3000/checkout/success"
    CHECKOUT_CANCEL_URL: str = "http://localhost:3000/checkout/cancel"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
