"""Async queue between webhook receipt and workflow processing."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from gemcord.models import WebhookEvent

LOGGER = logging.getLogger(__name__)


class WebhookEventQueue:
    """Accepts validated events and dispatches each one in its own task."""

    def __init__(self, handler: Callable[[WebhookEvent], Awaitable[Any]]) -> None:
        self._handler = handler
        self._queue: asyncio.Queue[WebhookEvent | None] = asyncio.Queue()
        self._in_flight: set[asyncio.Task[None]] = set()
        self._stopped = False

    def publish(self, event: WebhookEvent) -> None:
        """Queue an event for processing; never blocks the caller."""

        if self._stopped:
            raise RuntimeError("Event queue is stopped")
        self._queue.put_nowait(event)
        LOGGER.info("Queued %r event (delivery %s)", event.event_name, event.delivery_id)

    async def run_forever(self) -> None:
        """Dispatch queued events until stop() is called, then drain in-flight work."""

        while True:
            event = await self._queue.get()
            if event is None:
                break
            task = asyncio.create_task(self._dispatch(event), name=f"webhook-{event.delivery_id or 'event'}")
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _dispatch(self, event: WebhookEvent) -> None:
        try:
            await self._handler(event)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to process %r event (delivery %s)", event.event_name, event.delivery_id)

    def stop(self) -> None:
        """Signal the loop to stop after the events already queued."""

        if not self._stopped:
            self._stopped = True
            self._queue.put_nowait(None)
