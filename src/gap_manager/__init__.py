"""
gap-manager: Live race order and gap estimation for sim-racing telemetry

This package reconstructs, every telemetry tick, the corrected race order,
the gap to the car ahead and the gap to the leader from per-car lap and
lap-distance samples. The simulator never supplies "seconds behind", so
gaps are inferred from each car's own recent pace.

Architecture:
    telemetry (CarIdx* arrays) → gap-manager → report file / HTTP (overlays)

Pipeline per tick:
    1. Snapshot ingest (drop cars without usable progress)
    2. Progress tracking (sparse, bounded checkpoint history per car)
    3. Gap estimation (interpolate time from distance)

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import GapEngineConfig, load_config
from .interfaces.position_report import PositionReport, CarProgress
from .interfaces.snapshot import Snapshot, CarSample, parse_telemetry
from .engine.live_gap_engine import LiveGapEngine, EngineState

__all__ = [
    "GapEngineConfig",
    "load_config",
    "PositionReport",
    "CarProgress",
    "Snapshot",
    "CarSample",
    "parse_telemetry",
    "LiveGapEngine",
    "EngineState",
    "__version__",
]
