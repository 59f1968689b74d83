import asyncio

import pytest

from gemcord.event_queue import WebhookEventQueue
from gemcord.models import WebhookEvent


def _event(delivery_id: str) -> WebhookEvent:
    return WebhookEvent(signature="sha256=x", raw_body=b"{}", payload={}, delivery_id=delivery_id)


@pytest.mark.asyncio
async def test_queue_dispatches_events_and_drains_on_stop():
    handled = []

    async def handler(event: WebhookEvent) -> None:
        await asyncio.sleep(0.01)
        handled.append(event.delivery_id)

    queue = WebhookEventQueue(handler)
    runner = asyncio.create_task(queue.run_forever())
    queue.publish(_event("d1"))
    queue.publish(_event("d2"))
    queue.stop()

    await asyncio.wait_for(runner, timeout=1)

    assert sorted(handled) == ["d1", "d2"]


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_the_queue():
    handled = []

    async def handler(event: WebhookEvent) -> None:
        if event.delivery_id == "bad":
            raise RuntimeError("boom")
        handled.append(event.delivery_id)

    queue = WebhookEventQueue(handler)
    runner = asyncio.create_task(queue.run_forever())
    queue.publish(_event("bad"))
    queue.publish(_event("good"))
    queue.stop()

    await asyncio.wait_for(runner, timeout=1)

    assert handled == ["good"]


@pytest.mark.asyncio
async def test_publish_after_stop_raises():
    async def handler(event: WebhookEvent) -> None:
        return None

    queue = WebhookEventQueue(handler)
    queue.stop()

    with pytest.raises(RuntimeError):
        queue.publish(_event("late"))
