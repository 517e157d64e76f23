from __future__ import annotations

import pytest

from glucosync.sync.events import RefreshEvent, RefreshEventChannel, RefreshTrigger


@pytest.mark.asyncio
async def test_events_are_delivered_in_order_until_closed() -> None:
    channel = RefreshEventChannel()
    channel.publish(RefreshTrigger.FOREGROUND)
    channel.publish(RefreshEvent(trigger=RefreshTrigger.FEED_CONNECTED, detail="share"))
    channel.close()

    received = [event async for event in channel]

    assert [e.trigger for e in received] == [RefreshTrigger.FOREGROUND, RefreshTrigger.FEED_CONNECTED]
    assert received[1].detail == "share"
    assert received[0].created_at.tzinfo is not None


def test_publish_after_close_fails() -> None:
    channel = RefreshEventChannel()
    channel.close()

    assert channel.closed
    with pytest.raises(RuntimeError):
        channel.publish(RefreshTrigger.MANUAL)
