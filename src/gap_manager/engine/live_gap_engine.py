#!/usr/bin/env python3
"""
Live Gap Engine - per-tick position and gap estimation

This is the core of gap-manager's live operation. Each received telemetry
sample batch is one tick:

    ┌──────────────┐   ┌──────────────────┐   ┌───────────────┐   ┌────────┐
    │   Snapshot   │──▶│ Progress Tracker │──▶│ Gap Estimator │──▶│ Report │
    │ (CarIdx* []) │   │ (mutates store)  │   │ (reads store) │   │        │
    └──────────────┘   └──────────────────┘   └───────────────┘   └────────┘

All persistent state lives in the CheckpointStore. The engine guards it
with a single lock so ingest can run on one thread while the health server
reads status from another; there is no cross-tick lock holding and no
blocking inside a tick.

Session handling:
    - A car whose progress goes backwards gets its own history reset
      (ProgressTracker)
    - SessionTime going backwards means a new session: every history is
      cleared before the tick is processed
    - reset() clears everything and is safe at any tick boundary
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..config import GapEngineConfig
from ..interfaces.position_report import CarIdx, PositionReport
from ..interfaces.snapshot import Snapshot, parse_telemetry
from ..tracking.checkpoint_store import CheckpointStore, ProgressTracker
from ..tracking.gap_estimator import GapEstimator

logger = logging.getLogger('gap-manager.engine')


class EngineState(Enum):
    """Gap engine operational state."""
    WAITING = "WAITING"      # No snapshot processed since start/reset
    TRACKING = "TRACKING"    # Producing reports


class LiveGapEngine:
    """
    Tick-driven position and gap engine.

    Feed one snapshot per tick with process_snapshot() (or process_telemetry()
    for raw CarIdx* dicts); each call returns that tick's PositionReport.
    """

    def __init__(self, config: Optional[GapEngineConfig] = None):
        """
        Initialize the engine.

        Args:
            config: Engine tunables (defaults if omitted)
        """
        self.config = config or GapEngineConfig()

        self.store = CheckpointStore(max_checkpoints=self.config.max_checkpoints)
        self.tracker = ProgressTracker(self.store, checkpoint_interval=self.config.checkpoint_interval)
        self.estimator = GapEstimator(self.config)

        self._lock = threading.Lock()

        self.state = EngineState.WAITING
        self.last_session_time: Optional[float] = None
        self.last_report: Optional[PositionReport] = None

        # Callback for report updates (used by the CLI sink)
        self.on_report: Optional[Callable[[PositionReport], None]] = None

        # Statistics
        self.stats = {
            'ticks': 0,
            'rejected_snapshots': 0,
            'session_resets': 0,
            'start_time': time.time()
        }

        logger.info("=" * 60)
        logger.info("LiveGapEngine initializing")
        logger.info(f"  Checkpoint interval: {self.config.checkpoint_interval:.3f} lap")
        logger.info(f"  Max checkpoints: {self.config.max_checkpoints}")
        logger.info(f"  Default lap time: {self.config.default_lap_time_s:.1f}s")
        logger.info(f"  Reset on session rewind: {self.config.reset_on_session_rewind}")
        logger.info("=" * 60)

    def process_telemetry(self, data: Dict[str, Any]) -> Optional[PositionReport]:
        """
        Run one tick from a raw telemetry dict.

        Args:
            data: Object with CarIdxLap, CarIdxLapCompleted, CarIdxLapDistPct,
                  CarIdxPosition arrays and SessionTime

        Returns:
            PositionReport, or None if the snapshot was rejected
        """
        try:
            snapshot = parse_telemetry(data)
        except (ValueError, TypeError, AttributeError) as e:
            self.record_rejected(str(e))
            return None
        return self.process_snapshot(snapshot)

    def record_rejected(self, reason: str):
        """Count a snapshot that could not be used."""
        with self._lock:
            self.stats['rejected_snapshots'] += 1
        logger.warning(f"Rejected telemetry snapshot: {reason}")

    def process_snapshot(self, snapshot: Snapshot) -> PositionReport:
        """
        Run one tick: update checkpoint histories, then estimate gaps.

        Args:
            snapshot: This tick's per-car samples

        Returns:
            PositionReport for the tick
        """
        with self._lock:
            if (
                self.config.reset_on_session_rewind
                and self.last_session_time is not None
                and snapshot.session_time < self.last_session_time
            ):
                logger.info(
                    f"SessionTime went backwards ({self.last_session_time:.2f} -> "
                    f"{snapshot.session_time:.2f}), new session: clearing history"
                )
                self._reset_locked()
                self.stats['session_resets'] += 1

            for car_idx, sample in snapshot.cars.items():
                if not sample.has_progress:
                    logger.debug(f"Car {car_idx}: no usable progress at t={snapshot.session_time:.2f}, skipped")
                    continue
                total_progress = sample.completed_laps + sample.fractional_progress
                self.tracker.update(car_idx, total_progress, snapshot.session_time)

            report = self.estimator.estimate(snapshot, self.store)

            self.last_session_time = snapshot.session_time
            self.last_report = report
            self.state = EngineState.TRACKING
            self.stats['ticks'] += 1
            callback = self.on_report

        if callback:
            callback(report)
        return report

    def _reset_locked(self):
        self.store.clear()
        self.last_session_time = None
        self.last_report = None
        self.state = EngineState.WAITING

    def reset(self):
        """Clear every car's history (session change)."""
        with self._lock:
            cars = len(self.store)
            self._reset_locked()
        logger.info(f"Engine reset: cleared history for {cars} cars")

    def remove_car(self, car_idx: CarIdx) -> bool:
        """
        Forget a car that left the session.

        Returns:
            True if the car had history
        """
        with self._lock:
            removed = self.store.remove(car_idx)
        if removed:
            logger.info(f"Car {car_idx} removed from tracking")
        return removed

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of engine state for status reporting."""
        with self._lock:
            report = self.last_report
            return {
                'timestamp': time.time(),
                'state': self.state.value,
                'session_time': self.last_session_time,
                'ticks': self.stats['ticks'],
                'rejected_snapshots': self.stats['rejected_snapshots'],
                'session_resets': self.stats['session_resets'],
                'discontinuities': self.tracker.discontinuities,
                'laps_recorded': self.tracker.laps_recorded,
                'cars_tracked': len(self.store),
                'cars_reported': len(report) if report else 0,
                'leader': report.leader if report else None,
                'uptime_seconds': time.time() - self.stats['start_time'],
                'config': self.config.to_dict(),
            }

    def log_summary(self):
        """Log run statistics."""
        status = self.get_status()
        logger.info("=" * 60)
        logger.info("LiveGapEngine summary")
        logger.info(f"  Ticks: {status['ticks']}")
        logger.info(f"  Rejected snapshots: {status['rejected_snapshots']}")
        logger.info(f"  Session resets: {status['session_resets']}")
        logger.info(f"  Discontinuities: {status['discontinuities']}")
        logger.info(f"  Laps recorded: {status['laps_recorded']}")
        logger.info(f"  Cars tracked: {status['cars_tracked']}")
        logger.info("=" * 60)

