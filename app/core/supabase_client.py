# app/core/supabase_client.py
from supabase import AsyncClient, acreate_client

from app.core.config import get_settings

settings = get_settings()


def realtime_key() -> str:
    """
    Key used for the realtime subscription.

    The service role key bypasses RLS, so the bridge sees every order row
    and per-user scoping happens in the listeners. Falls back to the
    anon key, which only delivers rows RLS lets it read.
    """
    return settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_KEY


async def supabase_realtime() -> AsyncClient:
    """
    Create an async Supabase client for realtime channels.

    Realtime needs the async client; the sync one cannot hold a
    websocket subscription open.

    Raises:
        RuntimeError: if SUPABASE_URL is not configured.
    """
    if not settings.SUPABASE_URL:
        raise RuntimeError("Missing SUPABASE_URL in .env")
    return await acreate_client(settings.SUPABASE_URL, realtime_key())
