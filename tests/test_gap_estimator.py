"""
Unit tests for the gap estimator.

Tests race ordering, position assignment and both gap metrics.
"""

import pytest


def _snapshot(session_time, cars):
    """cars: {car_idx: (lap, completed_laps, pct, raw_position)}"""
    from gap_manager.interfaces.snapshot import CarSample, Snapshot
    return Snapshot(
        session_time=session_time,
        cars={
            idx: CarSample(lap=lap, completed_laps=done, fractional_progress=pct, raw_position=pos)
            for idx, (lap, done, pct, pos) in cars.items()
        },
    )


def _store(histories, capacity=20):
    """histories: {car_idx: [Checkpoint, ...]}"""
    from gap_manager.tracking.checkpoint_store import CheckpointHistory, CheckpointStore
    store = CheckpointStore(max_checkpoints=capacity)
    for idx, checkpoints in histories.items():
        store._histories[idx] = CheckpointHistory.from_checkpoints(checkpoints, capacity)
    return store


class TestRaceOrder:
    """Test sorting and position assignment."""

    def test_sorted_by_total_progress(self):
        """More laps beat a higher lap-distance percentage."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(100.0, {
            0: (2, 1, 0.90, 3),
            1: (3, 2, 0.10, 1),
            2: (2, 1, 0.95, 2),
        })
        report = GapEstimator().estimate(snapshot, _store({}))

        assert report.positions == {1: 1, 2: 2, 0: 3}
        assert report.running_order() == [1, 2, 0]
        assert report.leader == 1

    def test_tie_broken_by_raw_position(self):
        """Identical progress keeps the upstream order."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(10.0, {
            5: (1, 0, 0.0, 2),
            7: (1, 0, 0.0, 1),
            3: (1, 0, 0.0, None),
        })
        report = GapEstimator().estimate(snapshot, _store({}))

        assert report.positions[7] == 1
        assert report.positions[5] == 2
        assert report.positions[3] == 3

    def test_not_started_gets_sentinel(self):
        """Cars not yet on lap 1 get position 999."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(10.0, {
            0: (1, 0, 0.20, 1),
            1: (0, 0, 0.10, 0),
            2: (1, 0, 0.05, 2),
        })
        report = GapEstimator().estimate(snapshot, _store({}))

        assert report.positions[0] == 1
        assert report.positions[1] == 999
        assert report.positions[2] == 3

    def test_custom_sentinel(self):
        """The not-started rank is configurable."""
        from gap_manager.config import GapEngineConfig
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(10.0, {0: (0, 0, 0.5, None)})
        report = GapEstimator(GapEngineConfig(not_started_position=0)).estimate(snapshot, _store({}))

        assert report.positions[0] == 0

    def test_unusable_progress_excluded(self):
        """Cars with NaN or missing progress are left out of the order."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(10.0, {
            0: (1, 0, 0.5, 1),
            1: (1, 0, float('nan'), 2),
            2: (1, 0, 0.7, 3),
            3: (None, 0, 0.9, 4),
        })
        report = GapEstimator().estimate(snapshot, _store({}))

        assert report.positions == {2: 1, 0: 2}
        assert report.running_order() == [2, 0]

    def test_empty_snapshot(self):
        """No cars gives an empty report."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        report = GapEstimator().estimate(_snapshot(10.0, {}), _store({}))

        assert len(report) == 0
        assert report.leader is None
        assert report.session_time == 10.0


class TestGaps:
    """Test gap-to-leader and gap-to-car-ahead."""

    def test_end_to_end_two_cars(self):
        """Two cars 0.2 lap apart at 20 s per 0.1 lap are ~40 s apart."""
        from gap_manager.tracking.checkpoint_store import Checkpoint
        from gap_manager.tracking.gap_estimator import GapEstimator

        a, b = 0, 1
        snapshot = _snapshot(120.0, {
            a: (3, 2, 0.30, 1),
            b: (3, 2, 0.10, 2),
        })
        store = _store({
            a: [Checkpoint(2.1, 60.0), Checkpoint(2.2, 80.0), Checkpoint(2 + 0.30, 100.0)],
            b: [Checkpoint(1.9, 60.0), Checkpoint(2.0, 80.0), Checkpoint(2 + 0.10, 100.0)],
        })

        report = GapEstimator().estimate(snapshot, store)

        assert report.positions == {a: 1, b: 2}
        assert report.gap_to_leader[a] == 0.0
        assert report.gap_to_car_ahead[a] == 0.0
        assert report.gap_to_car_ahead[b] == pytest.approx(40.0, rel=1e-6)
        assert report.gap_to_leader[b] == pytest.approx(40.0, rel=1e-6)

    def test_gap_to_car_ahead_uses_adjacent_car(self):
        """The third car's interval is measured to P2, not to the leader."""
        from gap_manager.tracking.checkpoint_store import Checkpoint
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(110.0, {
            0: (2, 1, 0.50, 1),
            1: (2, 1, 0.40, 2),
            2: (2, 1, 0.30, 3),
        })
        store = _store({
            2: [Checkpoint(1.2, 90.0), Checkpoint(1 + 0.30, 100.0)],
        })

        report = GapEstimator().estimate(snapshot, store)

        # 10 s since the last checkpoint: 0.1 lap -> 10 s, 0.2 lap -> 20 s
        assert report.gap_to_car_ahead[2] == pytest.approx(10.0, rel=1e-6)
        assert report.gap_to_leader[2] == pytest.approx(20.0, rel=1e-6)

    def test_gap_to_car_behind(self):
        """Each car's gap to the car behind is that car's interval to it."""
        from gap_manager.tracking.checkpoint_store import Checkpoint
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(110.0, {
            0: (2, 1, 0.50, 1),
            1: (2, 1, 0.40, 2),
            2: (2, 1, 0.30, 3),
        })
        store = _store({
            1: [Checkpoint(1.3, 95.0), Checkpoint(1 + 0.40, 105.0)],
            2: [Checkpoint(1.2, 90.0), Checkpoint(1 + 0.30, 100.0)],
        })

        report = GapEstimator().estimate(snapshot, store)

        assert report.gap_to_car_behind[0] == pytest.approx(report.gap_to_car_ahead[1])
        assert report.gap_to_car_behind[1] == pytest.approx(report.gap_to_car_ahead[2])
        assert report.gap_to_car_behind[1] == pytest.approx(10.0, rel=1e-6)
        assert report.gap_to_car_behind[2] == 0.0

    def test_last_checkpoint_reported(self):
        """The newest checkpoint index and time are reported per car."""
        from gap_manager.tracking.checkpoint_store import Checkpoint
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(110.0, {
            0: (2, 1, 0.55, 1),
            1: (2, 1, 0.35, 2),
        })
        store = _store({
            1: [Checkpoint(1.25, 90.0), Checkpoint(1 + 0.35, 100.0)],
        })

        report = GapEstimator().estimate(snapshot, store)

        assert report.last_checkpoint == {1: 13}
        assert report.last_checkpoint_time == {1: 100.0}

    def test_lapped_car_uses_own_lap_time(self):
        """A car a lap or more down adds its own lap time per full lap."""
        from gap_manager.tracking.checkpoint_store import Checkpoint
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(115.0, {
            0: (4, 3, 0.20, 1),
            1: (2, 1, 0.70, 2),
        })
        store = _store({
            1: [
                Checkpoint(1.05, 80.0, lap_time=80.0),
                Checkpoint(1.6, 100.0),
                Checkpoint(1 + 0.70, 110.0),
            ],
        })

        report = GapEstimator().estimate(snapshot, store)

        # 1 full lap at 80 s + 0.5 lap extrapolated: 5 s × (0.5 / 0.1) = 25 s
        assert report.gap_to_leader[1] == pytest.approx(105.0, rel=1e-6)

    def test_default_lap_time_before_first_lap(self):
        """Without a recorded lap time the configured default is used."""
        from gap_manager.config import GapEngineConfig
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(50.0, {
            0: (3, 2, 0.80, 1),
            1: (1, 0, 0.30, 2),
        })
        estimator = GapEstimator(GapEngineConfig(default_lap_time_s=100.0))

        report = estimator.estimate(snapshot, _store({}))

        # Two full laps, no history for the remainder
        assert report.gap_to_leader[1] == pytest.approx(200.0)

    def test_default_lap_time_is_ninety_seconds(self):
        """The stock placeholder lap time is 90 s."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(50.0, {
            0: (2, 1, 0.50, 1),
            1: (1, 0, 0.40, 2),
        })

        report = GapEstimator().estimate(snapshot, _store({}))

        assert report.gap_to_leader[1] == pytest.approx(90.0)

    def test_new_entrant_gap_is_zero(self):
        """A car with no history reports 0 (unknown) within a lap."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        snapshot = _snapshot(10.0, {
            0: (1, 0, 0.60, 1),
            1: (1, 0, 0.20, 2),
        })

        report = GapEstimator().estimate(snapshot, _store({}))

        assert report.gap_to_leader[1] == 0.0
        assert report.gap_to_car_ahead[1] == 0.0

    def test_gap_behind_never_negative(self):
        """A clock behind the last checkpoint cannot produce a negative gap."""
        from gap_manager.tracking.checkpoint_store import CheckpointHistory
        from gap_manager.tracking.gap_estimator import GapEstimator

        history = CheckpointHistory()
        history.append(1.0, 100.0)
        history.append(1.1, 110.0)

        gap = GapEstimator().gap_behind(history, 1.1, 1.3, session_time=105.0)

        assert gap == 0.0

    def test_gap_behind_zero_delta(self):
        """Equal progress is a zero gap."""
        from gap_manager.tracking.gap_estimator import GapEstimator

        assert GapEstimator().gap_behind(None, 2.5, 2.5, 10.0) == 0.0
