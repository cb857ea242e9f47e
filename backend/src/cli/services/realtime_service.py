"""Deliver newly inserted group comments over Supabase Realtime."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from supabase import AsyncClient, acreate_client

from ...config.settings import ConfigurationError, SupabaseSettings
from .comments_service import COMMENTS_TABLE, DiscussionError

logger = logging.getLogger(__name__)

InsertHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class ChannelError(DiscussionError):
    """Raised when a realtime channel cannot be opened."""


def extract_record(payload: Any) -> Optional[Dict[str, Any]]:
    """Pull the inserted row out of a ``postgres_changes`` payload."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict):
        record = data.get("record") or data.get("new")
        if isinstance(record, dict):
            return record
    for key in ("new", "record"):
        record = payload.get(key)
        if isinstance(record, dict):
            return record
    return None


class CommentSubscription:
    """Handle for one open comment channel.

    Transport callbacks only enqueue rows; a single pump task awaits the
    handler for each row in arrival order. ``close`` is synchronous,
    idempotent and never raises.
    """

    def __init__(
        self,
        client: AsyncClient,
        channel: Any,
        group_id: str,
        on_insert: InsertHandler,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.group_id = group_id
        self._client = client
        self._channel = channel
        self._on_insert = on_insert
        self._loop = loop
        self._queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self._closed = False
        self._pump = loop.create_task(self._drain())

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, payload: Any) -> None:
        """Transport callback for INSERT events; safe to call from any thread."""
        if self._closed:
            return
        record = extract_record(payload)
        if record is None:
            logger.warning(f"Ignoring realtime payload without a record for group {self.group_id}")
            return
        self._loop.call_soon_threadsafe(self._enqueue, record)

    def on_status(self, status: Any, error: Optional[Exception] = None) -> None:
        if error is not None:
            logger.warning(f"Realtime channel for group {self.group_id} reported {status}: {error}")
        else:
            logger.info(f"Realtime channel for group {self.group_id}: {status}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pump.cancel()
        if self._loop.is_closed():
            return
        removal = self._loop.create_task(self._remove_channel())
        removal.add_done_callback(_drain_result)

    def _enqueue(self, record: Dict[str, Any]) -> None:
        if not self._closed:
            self._queue.put_nowait(record)

    async def _drain(self) -> None:
        while True:
            record = await self._queue.get()
            if self._closed:
                return
            try:
                await self._on_insert(record)
            except Exception as exc:
                logger.error(f"Realtime insert handler failed for group {self.group_id}: {exc}")

    async def _remove_channel(self) -> None:
        try:
            await self._client.remove_channel(self._channel)
        except Exception as exc:
            logger.warning(f"Failed to remove realtime channel for group {self.group_id}: {exc}")


def _drain_result(completed: asyncio.Task) -> None:
    if completed.cancelled():
        return
    exc = completed.exception()
    if exc is not None:
        logger.warning(f"Realtime cleanup task raised: {exc}")


class RealtimeCommentSubscriber:
    """Open per-group INSERT channels on ``group_comments``."""

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        *,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self._client = client
        self._settings: Optional[SupabaseSettings] = None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._applied_tokens: Tuple[Optional[str], Optional[str]] = (None, None)
        if client is None:
            try:
                self._settings = SupabaseSettings.from_env(supabase_url, supabase_key, prefer_anon=True)
            except ConfigurationError as exc:
                raise ChannelError(str(exc)) from exc

    def apply_session(self, access_token: Optional[str], refresh_token: Optional[str] = None) -> None:
        """Remember the viewer's tokens; applied before the next channel opens."""
        self._access_token = access_token
        self._refresh_token = refresh_token

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            if self._settings is None:
                raise ChannelError("Supabase realtime is not configured")
            try:
                self._client = await acreate_client(self._settings.url, self._settings.key)
            except Exception as exc:
                raise ChannelError(f"Failed to initialize Supabase realtime client: {exc}") from exc

        tokens = (self._access_token, self._refresh_token)
        if tokens != self._applied_tokens:
            await self._apply_tokens(self._client)
        return self._client

    async def _apply_tokens(self, client: AsyncClient) -> None:
        try:
            if self._access_token and self._refresh_token:
                await client.auth.set_session(self._access_token, self._refresh_token)
            elif self._applied_tokens != (None, None):
                await client.auth.sign_out()
        except Exception as exc:
            logger.warning(f"Realtime client could not switch session: {exc}")
            return
        self._applied_tokens = (self._access_token, self._refresh_token)

    async def subscribe(self, group_id: str, on_insert: InsertHandler) -> CommentSubscription:
        """Open exactly one channel for ``group_id`` and return its handle."""
        client = await self._get_client()
        loop = asyncio.get_running_loop()
        channel = client.channel(f"group-comments:{group_id}")
        subscription = CommentSubscription(client, channel, group_id, on_insert, loop)
        try:
            channel.on_postgres_changes(
                "INSERT",
                schema="public",
                table=COMMENTS_TABLE,
                filter=f"group_id=eq.{group_id}",
                callback=subscription.push,
            )
            await channel.subscribe(subscription.on_status)
        except Exception as exc:
            subscription.close()
            raise ChannelError(f"Failed to subscribe to comments for group {group_id}: {exc}") from exc
        logger.info(f"Subscribed to realtime comments for group {group_id}")
        return subscription
