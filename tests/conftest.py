"""
Pytest configuration and fixtures for gap-manager tests.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


@pytest.fixture
def make_telemetry():
    """Build a CarIdx* telemetry dict from per-car tuples.

    Each car is (car_idx, lap, completed_laps, lap_dist_pct, position).
    """
    def _make(session_time, cars, num_slots=8):
        laps = [None] * num_slots
        completed = [None] * num_slots
        pcts = [None] * num_slots
        positions = [0] * num_slots
        for car_idx, lap, laps_done, pct, pos in cars:
            laps[car_idx] = lap
            completed[car_idx] = laps_done
            pcts[car_idx] = pct
            positions[car_idx] = pos
        return {
            'CarIdxLap': laps,
            'CarIdxLapCompleted': completed,
            'CarIdxLapDistPct': pcts,
            'CarIdxPosition': positions,
            'SessionTime': session_time,
        }
    return _make


@pytest.fixture
def engine_config():
    """Default engine configuration."""
    from gap_manager.config import GapEngineConfig
    return GapEngineConfig()


@pytest.fixture
def engine(engine_config):
    """Fresh LiveGapEngine with default configuration."""
    from gap_manager.engine.live_gap_engine import LiveGapEngine
    return LiveGapEngine(engine_config)
