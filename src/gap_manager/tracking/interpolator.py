"""
Time-from-distance interpolation over a single car's checkpoint history.

Only the car's own history is used: pace differs per car, so another
car's anchors say nothing about how long this car needs to cover the
same distance.
"""

from typing import Optional

from ..config import CHECKPOINT_INTERVAL
from .checkpoint_store import Checkpoint, CheckpointHistory


def find_checkpoint_before(history: CheckpointHistory, target_progress: float) -> Optional[Checkpoint]:
    """
    Newest checkpoint at or behind target_progress.

    Falls back to the oldest checkpoint when every checkpoint lies ahead of
    the target. Returns None only for an empty history.
    """
    for checkpoint in history.newest_first():
        if checkpoint.total_progress <= target_progress:
            return checkpoint
    return history.oldest


def time_between(
    history: Optional[CheckpointHistory],
    start_progress: float,
    end_progress: float,
    current_time: float,
    checkpoint_interval: float = CHECKPOINT_INTERVAL
) -> float:
    """
    Estimate the seconds this car needs to go from start_progress to
    end_progress.

    Uses the average pace between the checkpoints bracketing the two
    progress values. When both resolve to the same checkpoint (or to
    checkpoints with identical progress) the pace since the newest
    checkpoint is extrapolated instead; that branch is a rough estimate.

    Args:
        history: The car's checkpoint history (None is treated as empty)
        start_progress: Total progress to measure from
        end_progress: Total progress to measure to
        current_time: Session time of the current tick
        checkpoint_interval: Lap fraction between checkpoints

    Returns:
        Estimated seconds, 0.0 when fewer than two checkpoints exist
    """
    if history is None or len(history) < 2:
        return 0.0

    start_cp = find_checkpoint_before(history, start_progress)
    end_cp = find_checkpoint_before(history, end_progress)

    progress_span = end_cp.total_progress - start_cp.total_progress
    if progress_span != 0:
        time_per_unit = (end_cp.timestamp - start_cp.timestamp) / progress_span
        return (end_progress - start_progress) * time_per_unit

    last = history.last
    time_since_last = current_time - last.timestamp
    progress_since_last = abs(end_progress - last.total_progress)
    return time_since_last * (progress_since_last / checkpoint_interval)
