"""
Checkpoint Store and Progress Tracker

Keeps, per car, a short history of (total_progress, timestamp) anchors
recorded every checkpoint interval around the lap. The gap estimator
answers "how long does this car take to cover Δ progress" from these
anchors, so the history has to be:

    - sparse: one anchor per checkpoint index, not one per tick
    - bounded: a fixed-capacity ring buffer (oldest evicted first)
    - clean: a backward jump in progress resets the history instead of
      poisoning it with negative-time intervals

Checkpoint index:
    index = floor(total_progress / checkpoint_interval)

    With the default interval of 0.10 a car gets ten anchors per lap.

Usage:
    store = CheckpointStore(max_checkpoints=20)
    tracker = ProgressTracker(store, checkpoint_interval=0.10)
    event = tracker.update(car_idx=3, total_progress=1.05, timestamp=110.0)
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional

import numpy as np

from ..config import CHECKPOINT_INTERVAL, MAX_CHECKPOINTS

logger = logging.getLogger(__name__)

CarIdx = int


class TrackEvent(Enum):
    """Outcome of feeding one sample to a car's history."""
    NONE = "NONE"                    # Same checkpoint index, nothing recorded
    NEW = "NEW"                      # First checkpoint for this car
    CHECKPOINT = "CHECKPOINT"        # Entered a new checkpoint index
    LAP = "LAP"                      # New checkpoint across a lap boundary
    DISCONTINUITY = "DISCONTINUITY"  # Progress went backwards, history reset


@dataclass(frozen=True)
class Checkpoint:
    """A recorded observation for one car at one moment."""
    total_progress: float            # Completed laps + fractional lap
    timestamp: float                 # Session time (seconds)
    lap_time: Optional[float] = None  # Set only where a lap boundary was crossed


def checkpoint_index(total_progress: float, checkpoint_interval: float = CHECKPOINT_INTERVAL) -> int:
    """Index of the checkpoint bucket that contains total_progress."""
    return math.floor(total_progress / checkpoint_interval)


class CheckpointHistory:
    """
    Fixed-capacity ring buffer of checkpoints, ordered oldest -> newest.

    Storage is three preallocated numpy columns (progress, timestamp,
    lap time). An unset lap time is stored as NaN. Appending to a full
    buffer overwrites the oldest slot, so append is O(1) and the buffer
    never reallocates.
    """

    def __init__(self, capacity: int = MAX_CHECKPOINTS):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._progress = np.zeros(capacity, dtype=np.float64)
        self._timestamp = np.zeros(capacity, dtype=np.float64)
        self._lap_time = np.full(capacity, np.nan, dtype=np.float64)
        self._write_pos = 0   # Total appends since last clear
        self._count = 0

    def __len__(self) -> int:
        return self._count

    def __bool__(self) -> bool:
        return self._count > 0

    def _slot(self, i: int) -> int:
        """Physical slot of logical index i (0 = oldest)."""
        start = self._write_pos - self._count
        return (start + i) % self.capacity

    def _checkpoint_at_slot(self, slot: int) -> Checkpoint:
        lap_time = self._lap_time[slot]
        return Checkpoint(
            total_progress=float(self._progress[slot]),
            timestamp=float(self._timestamp[slot]),
            lap_time=None if np.isnan(lap_time) else float(lap_time),
        )

    def __getitem__(self, i: int) -> Checkpoint:
        if i < 0:
            i += self._count
        if not 0 <= i < self._count:
            raise IndexError("checkpoint index out of range")
        return self._checkpoint_at_slot(self._slot(i))

    def __iter__(self) -> Iterator[Checkpoint]:
        for i in range(self._count):
            yield self._checkpoint_at_slot(self._slot(i))

    def newest_first(self) -> Iterator[Checkpoint]:
        """Iterate checkpoints from newest to oldest."""
        for i in range(self._count - 1, -1, -1):
            yield self._checkpoint_at_slot(self._slot(i))

    @property
    def last(self) -> Optional[Checkpoint]:
        """Most recent checkpoint, or None when empty."""
        if self._count == 0:
            return None
        return self[-1]

    @property
    def oldest(self) -> Optional[Checkpoint]:
        if self._count == 0:
            return None
        return self[0]

    def append(self, total_progress: float, timestamp: float, lap_time: Optional[float] = None):
        """Append a checkpoint, evicting the oldest when full."""
        slot = self._write_pos % self.capacity
        self._progress[slot] = total_progress
        self._timestamp[slot] = timestamp
        self._lap_time[slot] = np.nan if lap_time is None else lap_time
        self._write_pos += 1
        self._count = min(self._count + 1, self.capacity)

    def clear(self):
        self._lap_time[:] = np.nan
        self._write_pos = 0
        self._count = 0

    def reset_to(self, total_progress: float, timestamp: float):
        """Replace the whole history with a single fresh checkpoint."""
        self.clear()
        self.append(total_progress, timestamp)

    def latest_lap_time(self) -> Optional[float]:
        """Most recently recorded lap time, or None if no lap was seen."""
        for checkpoint in self.newest_first():
            if checkpoint.lap_time is not None:
                return checkpoint.lap_time
        return None

    def to_list(self) -> List[Checkpoint]:
        return list(self)

    @classmethod
    def from_checkpoints(cls, checkpoints: List[Checkpoint], capacity: int = MAX_CHECKPOINTS) -> "CheckpointHistory":
        """Build a history from checkpoints given oldest -> newest."""
        history = cls(capacity)
        for cp in checkpoints:
            history.append(cp.total_progress, cp.timestamp, cp.lap_time)
        return history

    def __repr__(self) -> str:
        points = ", ".join(
            f"({cp.total_progress:.3f}@{cp.timestamp:.2f})" for cp in self
        )
        return f"CheckpointHistory([{points}], capacity={self.capacity})"


def update_history(
    history: CheckpointHistory,
    total_progress: float,
    timestamp: float,
    checkpoint_interval: float = CHECKPOINT_INTERVAL
) -> TrackEvent:
    """
    Apply one progress sample to a car's checkpoint history (in place).

    Args:
        history: The car's history (mutated)
        total_progress: Completed laps + fractional lap position
        timestamp: Session time of the sample (seconds)
        checkpoint_interval: Lap fraction between checkpoints

    Returns:
        TrackEvent describing what was recorded
    """
    last = history.last

    # Backward jump: session restart or corrupt sample
    if last is not None and total_progress < last.total_progress:
        history.reset_to(total_progress, timestamp)
        return TrackEvent.DISCONTINUITY

    index = checkpoint_index(total_progress, checkpoint_interval)

    if last is None:
        history.append(total_progress, timestamp)
        return TrackEvent.NEW

    if checkpoint_index(last.total_progress, checkpoint_interval) == index:
        return TrackEvent.NONE

    if math.floor(total_progress) > math.floor(last.total_progress):
        history.append(total_progress, timestamp, lap_time=timestamp - last.timestamp)
        return TrackEvent.LAP

    history.append(total_progress, timestamp)
    return TrackEvent.CHECKPOINT


class CheckpointStore:
    """Per-car checkpoint histories keyed by car index."""

    def __init__(self, max_checkpoints: int = MAX_CHECKPOINTS):
        self.max_checkpoints = max_checkpoints
        self._histories: Dict[CarIdx, CheckpointHistory] = {}

    def __len__(self) -> int:
        return len(self._histories)

    def __contains__(self, car_idx: CarIdx) -> bool:
        return car_idx in self._histories

    def get(self, car_idx: CarIdx) -> Optional[CheckpointHistory]:
        """History for a car, or None if it has never been seen."""
        return self._histories.get(car_idx)

    def get_or_create(self, car_idx: CarIdx) -> CheckpointHistory:
        history = self._histories.get(car_idx)
        if history is None:
            history = CheckpointHistory(self.max_checkpoints)
            self._histories[car_idx] = history
        return history

    def remove(self, car_idx: CarIdx) -> bool:
        """Drop a car's history (car left the session)."""
        return self._histories.pop(car_idx, None) is not None

    def clear(self):
        self._histories.clear()

    def car_indices(self) -> List[CarIdx]:
        return sorted(self._histories)


class ProgressTracker:
    """
    Feeds each tick's samples into the CheckpointStore.

    One update per car per tick. Lap completions and discontinuities are
    counted so the engine can report them.
    """

    def __init__(self, store: CheckpointStore, checkpoint_interval: float = CHECKPOINT_INTERVAL):
        self.store = store
        self.checkpoint_interval = checkpoint_interval
        self.laps_recorded = 0
        self.discontinuities = 0

    def update(self, car_idx: CarIdx, total_progress: float, timestamp: float) -> TrackEvent:
        """
        Record one sample for one car.

        Args:
            car_idx: Car slot
            total_progress: Completed laps + fractional lap
            timestamp: Session time (seconds)

        Returns:
            TrackEvent for this sample
        """
        history = self.store.get_or_create(car_idx)
        previous = history.last
        event = update_history(history, total_progress, timestamp, self.checkpoint_interval)

        if event is TrackEvent.DISCONTINUITY:
            self.discontinuities += 1
            logger.info(
                f"Car {car_idx}: progress went backwards "
                f"({previous.total_progress:.3f} -> {total_progress:.3f}), history reset"
            )
        elif event is TrackEvent.LAP:
            self.laps_recorded += 1
            logger.debug(
                f"Car {car_idx}: lap boundary at {total_progress:.3f}, "
                f"lap_time={history.last.lap_time:.3f}s"
            )

        return event
