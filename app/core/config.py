# app/core/config.py
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key)
      - DATABASE_URL (Supabase Postgres connection string)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Optional:
      - SUPABASE_SERVICE_ROLE_KEY (only used for admin Supabase client)
      - REALTIME_SOURCE ("local" | "supabase")
    """

    PROJECT_NAME: str = "Order Workflow API"
    API_V1_STR: str = "/api/v1"

    # Supabase / DB config
    SUPABASE_URL: str
    SUPABASE_KEY: str
    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Service role key bypasses RLS (backend only)
    SUPABASE_SERVICE_ROLE_KEY: str | None = None

    # Orders
    ORDER_PAGE_SIZE: int = 50
    ORDER_ID_PREFIX: str = "ORD"
    DEFAULT_ACTOR_NAME: str = "Sistema"

    # When False, Production staff only get the operator transitions
    # (REVIEW -> PRODUCTION, PRODUCTION -> DISPATCH).
    PRODUCTION_FULL_ACCESS: bool = True

    # "local"    : services publish change events in-process
    # "supabase" : events come from Supabase realtime (postgres_changes)
    REALTIME_SOURCE: Literal["local", "supabase"] = "local"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
