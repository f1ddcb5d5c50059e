"""
Tests for the bounded feedback log.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from recommendation_service.feedback import FeedbackRecorder
from recommendation_service.models import FeedbackEvent

BASE = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _event(index, outcome=True, features=None):
    return FeedbackEvent(
        consumer_id="u1",
        item_id=f"item-{index}",
        outcome=outcome,
        timestamp=BASE + timedelta(minutes=index),
        features=features,
    )


class TestFeedbackRecorder:
    """Retention, draining and persistence."""

    def test_oldest_events_are_evicted_first(self):
        recorder = FeedbackRecorder(capacity=3)
        for index in range(5):
            recorder.record(_event(index))

        assert len(recorder) == 3
        assert [e.item_id for e in recorder.snapshot()] == ["item-2", "item-3", "item-4"]

    def test_drain_with_limit_removes_oldest(self):
        recorder = FeedbackRecorder(capacity=10)
        for index in range(4):
            recorder.record(_event(index))

        drained = recorder.drain(limit=3)

        assert [e.item_id for e in drained] == ["item-0", "item-1", "item-2"]
        assert [e.item_id for e in recorder.snapshot()] == ["item-3"]

    def test_drain_all(self):
        recorder = FeedbackRecorder()
        recorder.record(_event(0))
        recorder.record(_event(1, outcome=False))

        assert len(recorder.drain()) == 2
        assert recorder.drain() == []
        assert recorder.drain(limit=-5) == []

    def test_snapshot_does_not_consume(self):
        recorder = FeedbackRecorder()
        recorder.record(_event(0))
        recorder.snapshot()
        assert len(recorder) == 1

    def test_events_survive_restart(self, tmp_path):
        path = tmp_path / "data" / "feedback.json"
        recorder = FeedbackRecorder(capacity=10, persistence_file=path)
        recorder.record(_event(0, features=(0.1, 0.2)))
        recorder.record(_event(1, outcome=False))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data["events"]) == 2

        reloaded = FeedbackRecorder(capacity=10, persistence_file=path)
        events = reloaded.snapshot()
        assert [e.item_id for e in events] == ["item-0", "item-1"]
        assert events[0].features == (0.1, 0.2)
        assert events[1].outcome is False

    def test_drain_is_persisted(self, tmp_path):
        path = tmp_path / "feedback.json"
        recorder = FeedbackRecorder(persistence_file=path)
        recorder.record(_event(0))
        recorder.drain()

        assert json.loads(path.read_text(encoding="utf-8")) == {"events": []}

    def test_reload_respects_capacity(self, tmp_path):
        path = tmp_path / "feedback.json"
        writer = FeedbackRecorder(capacity=10, persistence_file=path)
        for index in range(6):
            writer.record(_event(index))

        reader = FeedbackRecorder(capacity=2, persistence_file=path)
        assert [e.item_id for e in reader.snapshot()] == ["item-4", "item-5"]

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "feedback.json"
        path.write_text("{not json", encoding="utf-8")
        assert len(FeedbackRecorder(persistence_file=path)) == 0

    def test_recording_failure_is_swallowed(self, tmp_path):
        recorder = FeedbackRecorder(persistence_file=tmp_path / "feedback.json")
        with patch("recommendation_service.feedback.json.dump", side_effect=OSError("disk full")):
            recorder.record(_event(0))

        assert len(recorder) == 1

    def test_writes_are_batched(self, tmp_path):
        path = tmp_path / "feedback.json"
        recorder = FeedbackRecorder(persistence_file=path, flush_every=3)
        recorder.record(_event(0))
        recorder.record(_event(1))

        assert not path.exists()
        assert recorder.pending == 2

        recorder.record(_event(2))
        assert len(json.loads(path.read_text(encoding="utf-8"))["events"]) == 3
        assert recorder.pending == 0

    def test_flush_writes_buffered_records(self, tmp_path):
        path = tmp_path / "feedback.json"
        recorder = FeedbackRecorder(persistence_file=path, flush_every=50)
        recorder.record(_event(0))
        recorder.flush()

        assert [e["item_id"] for e in json.loads(path.read_text(encoding="utf-8"))["events"]] == ["item-0"]
        with patch.object(recorder, "_save_persistence") as save:
            recorder.flush()
        save.assert_not_called()

    def test_failed_write_stays_pending(self, tmp_path):
        path = tmp_path / "feedback.json"
        recorder = FeedbackRecorder(persistence_file=path, flush_every=1)
        with patch("recommendation_service.feedback.json.dump", side_effect=OSError("disk full")):
            recorder.record(_event(0))
        assert recorder.pending == 1

        recorder.flush()
        assert recorder.pending == 0
        assert len(json.loads(path.read_text(encoding="utf-8"))["events"]) == 1

    def test_initial_events_replace_file_contents(self, tmp_path):
        path = tmp_path / "feedback.json"
        writer = FeedbackRecorder(capacity=10, persistence_file=path)
        writer.record(_event(0))
        writer.record(_event(1))

        seeded = FeedbackRecorder(capacity=10, persistence_file=path, events=writer.snapshot())

        assert [e.item_id for e in seeded.snapshot()] == ["item-0", "item-1"]
        assert len(json.loads(path.read_text(encoding="utf-8"))["events"]) == 2

    def test_initial_events_respect_capacity(self):
        recorder = FeedbackRecorder(capacity=2, events=[_event(index) for index in range(4)])
        assert [e.item_id for e in recorder.snapshot()] == ["item-2", "item-3"]
        assert recorder.pending == 0
