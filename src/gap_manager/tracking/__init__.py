"""
Progress tracking and gap estimation.

Modules:
- checkpoint_store: Per-car bounded checkpoint history and update rules
- interpolator: Time-from-distance estimation over one car's history
- gap_estimator: Corrected positions and gap metrics per tick
"""

from .checkpoint_store import (
    Checkpoint,
    CheckpointHistory,
    CheckpointStore,
    ProgressTracker,
    TrackEvent,
    update_history,
)
from .interpolator import find_checkpoint_before, time_between
from .gap_estimator import GapEstimator

__all__ = [
    'Checkpoint',
    'CheckpointHistory',
    'CheckpointStore',
    'ProgressTracker',
    'TrackEvent',
    'update_history',
    'find_checkpoint_before',
    'time_between',
    'GapEstimator',
]
