"""
Feedback recorder for future model retraining.

Keeps the most recent accept/reject events in a bounded FIFO log, optionally
mirrored to a JSON file so a separate training job can pick them up. The file
is rewritten every ``flush_every`` records, on ``drain`` and on ``flush``.
"""

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Deque, Iterable, List, Optional

from .models import FeedbackEvent

logger = logging.getLogger(__name__)


class FeedbackRecorder:
    """Bounded, append-only feedback log. Recording never raises."""

    def __init__(
        self,
        capacity: int = 1000,
        persistence_file: Optional[Path] = None,
        flush_every: int = 1,
        events: Optional[Iterable[FeedbackEvent]] = None,
    ):
        """Initialize the recorder.

        Args:
            capacity: Maximum number of events retained; oldest are evicted first
            persistence_file: Optional JSON file mirroring the retained events
            flush_every: Records buffered in memory between file rewrites
            events: Initial contents. When given, the persistence file is not
                read but overwritten with these events.
        """
        self.capacity = capacity
        self.flush_every = max(1, flush_every)
        self._events: Deque[FeedbackEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._pending = 0
        self._persistence_file = Path(persistence_file) if persistence_file else None
        if events is None:
            self._load_persistence()
        else:
            self._events.extend(events)
            self._pending = len(self._events)
            self.flush()

    def _load_persistence(self) -> None:
        """Load persisted events from file."""
        if not self._persistence_file or not self._persistence_file.exists():
            return

        try:
            with open(self._persistence_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            with self._lock:
                for row in data.get("events", []):
                    self._events.append(FeedbackEvent.from_dict(row))
            logger.info(f"Loaded {len(self._events)} feedback events from {self._persistence_file}")
        except Exception as e:
            logger.warning(f"Failed to load feedback log {self._persistence_file}: {e}")

    def _save_persistence(self) -> None:
        """Rewrite the persistence file. Caller holds the lock."""
        if self._persistence_file:
            self._persistence_file.parent.mkdir(parents=True, exist_ok=True)
            payload = {"events": [event.to_dict() for event in self._events]}
            tmp_file = self._persistence_file.with_suffix(self._persistence_file.suffix + ".tmp")
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False)
            tmp_file.replace(self._persistence_file)
        self._pending = 0

    @property
    def pending(self) -> int:
        """Records not yet written to the persistence file."""
        with self._lock:
            return self._pending if self._persistence_file else 0

    def record(self, event: FeedbackEvent) -> None:
        """Append an event, evicting the oldest once capacity is reached."""
        try:
            with self._lock:
                self._events.append(event)
                self._pending += 1
                if self._pending >= self.flush_every:
                    self._save_persistence()
        except Exception as e:
            logger.warning(
                f"Failed to record feedback {event.consumer_id}/{event.item_id}: {e}", exc_info=True
            )

    def flush(self) -> None:
        """Write buffered records to the persistence file, if any."""
        with self._lock:
            if not self._pending:
                return
            try:
                self._save_persistence()
            except OSError as e:
                logger.warning(f"Failed to flush feedback log {self._persistence_file}: {e}")

    def drain(self, limit: Optional[int] = None) -> List[FeedbackEvent]:
        """Remove and return up to ``limit`` events, oldest first (all when None)."""
        with self._lock:
            count = len(self._events) if limit is None else max(0, min(limit, len(self._events)))
            drained = [self._events.popleft() for _ in range(count)]
            if drained:
                try:
                    self._save_persistence()
                except OSError as e:
                    logger.warning(f"Failed to persist feedback log after drain: {e}")
        return drained

    def snapshot(self) -> List[FeedbackEvent]:
        """Copy of the retained events without removing them."""
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
