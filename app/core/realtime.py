# app/core/realtime.py
import logging
from typing import Any

from app.core.change_feed import ChangeEvent, ChangeFeed
from app.core.supabase_client import supabase_realtime

logger = logging.getLogger(__name__)

CHANNEL_NAME = "orders_channel"


class SupabaseRealtimeBridge:
    """
    Relays Supabase `postgres_changes` on public.orders into a ChangeFeed.

    Used when REALTIME_SOURCE="supabase": writes made by any process
    (or directly in the database) reach the same listeners as
    in-process events.

    Note: with the default replica identity, UPDATE payloads carry only
    the primary key in `old`, so listeners comparing old/new status see
    every status-bearing UPDATE as a change.
    """

    def __init__(self, feed: ChangeFeed, table: str = "orders"):
        self.feed = feed
        self.table = table
        self._client = None
        self._channel = None

    async def start(self) -> None:
        self._client = await supabase_realtime()
        channel = self._client.channel(CHANNEL_NAME)
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=self.table,
            callback=self._on_change,
        )
        await channel.subscribe()
        self._channel = channel
        logger.info("Realtime: subscribed to public.%s", self.table)

    async def stop(self) -> None:
        if self._client is not None and self._channel is not None:
            await self._client.remove_channel(self._channel)
            logger.info("Realtime: unsubscribed from public.%s", self.table)
        self._channel = None
        self._client = None

    def _on_change(self, payload: dict[str, Any]) -> None:
        try:
            event = ChangeEvent.from_realtime_payload(payload)
        except ValueError as exc:
            logger.warning("Realtime: ignoring malformed payload: %s", exc)
            return
        self.feed.publish(event)
