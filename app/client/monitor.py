"""Keeps a local recordings list current via change-feed pushes plus periodic polling."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from app.config import get_settings
from app.events import TABLE_RECORDINGS, TABLE_TRANSCRIPTS, ChangeEvent, ChangeFeed, Subscription

logger = logging.getLogger("callcoach")


class RecordingsMonitor:
    """Refetches recordings on every feed event and every ``poll_interval`` seconds.

    The poll runs regardless of push health, so the list converges within one
    interval even when events are lost. A failed fetch keeps the previous list.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[list]],
        on_update: Callable[[list], None],
        feed: ChangeFeed | None = None,
        user_id: int | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self._fetch = fetch
        self._on_update = on_update
        self._feed = feed
        self._user_id = user_id
        self.poll_interval = poll_interval if poll_interval is not None else get_settings().STATUS_POLL_INTERVAL_SECONDS
        self._recordings: list = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscription: Subscription | None = None
        self._poll_task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._running = False

    @property
    def recordings(self) -> list:
        return list(self._recordings)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._loop = asyncio.get_running_loop()
        await self._refresh()
        if self._feed is not None:
            self._subscription = self._feed.subscribe(
                (TABLE_RECORDINGS, TABLE_TRANSCRIPTS), self._on_event, user_id=self._user_id
            )
        self._poll_task = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        tasks = [t for t in (self._poll_task, *self._pending) if t is not None]
        self._poll_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _on_event(self, event: ChangeEvent) -> None:
        # Feed callbacks may arrive on a worker thread
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._schedule_refresh)

    def _schedule_refresh(self) -> None:
        if not self._running:
            return
        task = asyncio.ensure_future(self._refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _poll(self) -> None:
        while self._running:
            await asyncio.sleep(self.poll_interval)
            await self._refresh()

    async def _refresh(self) -> None:
        async with self._lock:
            try:
                recordings = await self._fetch()
            except Exception:
                logger.exception("Failed to refresh recordings")
                return
            self._recordings = list(recordings)
            try:
                self._on_update(self.recordings)
            except Exception:
                logger.exception("Recordings update callback failed")
