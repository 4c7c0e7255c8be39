"""
Gap Estimator - corrected race order and time gaps for one tick

Inputs are the tick's Snapshot and every car's CheckpointHistory. No
direct "seconds behind" value exists upstream, so each gap is the time
the trailing car is expected to need to cover the progress deficit,
estimated from the trailing car's own checkpoints:

    Δ = ahead.total_progress - car.total_progress

    Δ >= 1:  gap = lap_time × floor(Δ) + time_between(car, p, p + frac(Δ))
    Δ <  1:  gap = time_between(car, p, p + Δ)

lap_time is the car's most recently recorded lap time, or the configured
default before the car has completed a lap. The gap to the car behind is
that car's gap to the car ahead, so it too comes from the trailing car's
history.

The estimator is stateless per tick; all persistent state is in the
CheckpointStore.
"""

import logging
import math
from typing import List, Optional

from ..config import GapEngineConfig
from ..interfaces.position_report import CarProgress, PositionReport
from ..interfaces.snapshot import Snapshot
from .checkpoint_store import CheckpointHistory, CheckpointStore, checkpoint_index
from .interpolator import time_between

logger = logging.getLogger(__name__)


def build_car_progress(snapshot: Snapshot) -> List[CarProgress]:
    """Derive CarProgress for every car in the snapshot with usable progress."""
    return [
        CarProgress(
            car_idx=car_idx,
            lap=sample.lap,
            completed_laps=sample.completed_laps,
            fractional_progress=sample.fractional_progress,
            raw_position=sample.raw_position,
        )
        for car_idx, sample in snapshot.cars.items()
        if sample.has_progress
    ]


def _race_order_key(car: CarProgress):
    # Progress descending, then upstream position; cars without one go last
    return (
        -car.total_progress,
        car.raw_position is None,
        car.raw_position or 0,
        car.car_idx,
    )


def sort_by_progress(cars: List[CarProgress]) -> List[CarProgress]:
    """Order cars by total progress (descending), upstream position breaking ties."""
    return sorted(cars, key=_race_order_key)


class GapEstimator:
    """Produces a PositionReport from a snapshot and the checkpoint store."""

    def __init__(self, config: Optional[GapEngineConfig] = None):
        self.config = config or GapEngineConfig()

    def gap_behind(
        self,
        history: Optional[CheckpointHistory],
        car_progress: float,
        target_progress: float,
        session_time: float
    ) -> float:
        """
        Seconds for a car to reach target_progress from car_progress.

        Args:
            history: The trailing car's checkpoint history
            car_progress: Trailing car's total progress
            target_progress: Total progress of the car being chased
            session_time: Current session time

        Returns:
            Estimated gap in seconds, never negative
        """
        delta = target_progress - car_progress
        if delta <= 0:
            return 0.0

        interval = self.config.checkpoint_interval
        if delta >= 1:
            full_laps = math.floor(delta)
            partial = delta - full_laps
            lap_time = history.latest_lap_time() if history else None
            if lap_time is None:
                lap_time = self.config.default_lap_time_s
            gap = lap_time * full_laps + time_between(
                history, car_progress, car_progress + partial, session_time, interval
            )
        else:
            gap = time_between(history, car_progress, car_progress + delta, session_time, interval)

        return max(0.0, gap)

    def estimate(self, snapshot: Snapshot, store: CheckpointStore) -> PositionReport:
        """
        Compute positions and gaps for one tick.

        Args:
            snapshot: This tick's per-car samples
            store: Checkpoint histories, already updated for this tick

        Returns:
            PositionReport keyed by car index
        """
        report = PositionReport(session_time=snapshot.session_time)
        ordered = sort_by_progress(build_car_progress(snapshot))
        if not ordered:
            return report

        leader = ordered[0]
        for index, car in enumerate(ordered):
            report.positions[car.car_idx] = (
                index + 1 if car.has_started else self.config.not_started_position
            )

            history = store.get(car.car_idx)
            if history:
                last = history.last
                report.last_checkpoint[car.car_idx] = checkpoint_index(
                    last.total_progress, self.config.checkpoint_interval
                )
                report.last_checkpoint_time[car.car_idx] = last.timestamp

            # Filled in by the next car in order; the last car keeps 0
            report.gap_to_car_behind[car.car_idx] = 0.0

            if index == 0:
                report.gap_to_leader[car.car_idx] = 0.0
                report.gap_to_car_ahead[car.car_idx] = 0.0
                continue

            ahead = ordered[index - 1]
            report.gap_to_leader[car.car_idx] = self.gap_behind(
                history, car.total_progress, leader.total_progress, snapshot.session_time
            )
            report.gap_to_car_ahead[car.car_idx] = self.gap_behind(
                history, car.total_progress, ahead.total_progress, snapshot.session_time
            )
            report.gap_to_car_behind[ahead.car_idx] = report.gap_to_car_ahead[car.car_idx]

        logger.debug(
            f"t={snapshot.session_time:.2f}: {len(ordered)} cars, "
            f"leader car {leader.car_idx} at {leader.total_progress:.3f}"
        )
        return report
