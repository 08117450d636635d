"""
Tests for EventChannel - progress and status publishing.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from hellas.store.events import (
    TOPIC_INSTALL_STATUS,
    TOPIC_UPDATE_PROGRESS,
    EventChannel,
)
from hellas.store.models import StatusLevel, UpdatePhase


class TestEventChannel:

    def test_topic_subscription(self):
        channel = EventChannel()
        progress = MagicMock()
        everything = MagicMock()
        channel.subscribe(progress, TOPIC_UPDATE_PROGRESS)
        channel.subscribe(everything)

        channel.install_status("hello")
        channel.progress(UpdatePhase.DOWNLOADING, 10)

        progress.assert_called_once_with(TOPIC_UPDATE_PROGRESS, {"state": "downloading", "progress": 10})
        assert everything.call_count == 2

    def test_unsubscribe(self):
        channel = EventChannel()
        callback = MagicMock()
        unsubscribe = channel.subscribe(callback)
        unsubscribe()
        channel.install_status("ignored")
        callback.assert_not_called()

    def test_subscriber_failure_isolated(self):
        channel = EventChannel()
        channel.subscribe(MagicMock(side_effect=RuntimeError("ui gone")))
        healthy = MagicMock()
        channel.subscribe(healthy)
        channel.install_status("still delivered")
        healthy.assert_called_once()

    def test_history_since(self):
        channel = EventChannel(history_size=3)
        for i in range(5):
            channel.install_status(f"m{i}")
        assert channel.last_seq == 5
        assert [e.payload["message"] for e in channel.since(0)] == ["m2", "m3", "m4"]
        assert [e.seq for e in channel.since(3)] == [4, 5]
        assert channel.since(0, TOPIC_UPDATE_PROGRESS) == []


class TestPayloads:

    def test_progress_payload_shapes(self):
        channel = EventChannel()
        assert channel.progress(UpdatePhase.FETCHING_FEED).payload == {"state": "fetching-feed"}
        assert channel.progress(UpdatePhase.EXTRACTING, 80).payload == {"state": "extracting", "progress": 80}
        assert channel.progress(UpdatePhase.COMPLETE, version="1.0").payload == {
            "state": "complete", "progress": 100, "version": "1.0",
        }
        assert channel.progress(UpdatePhase.CANCELLED, message="Update cancelled.").payload == {
            "state": "cancelled", "message": "Update cancelled.",
        }

    def test_status_level_only_when_not_info(self):
        channel = EventChannel()
        assert channel.install_status("plain").payload == {"message": "plain"}
        event = channel.install_status("done", StatusLevel.SUCCESS)
        assert event.topic == TOPIC_INSTALL_STATUS
        assert event.payload == {"message": "done", "level": "success"}
