"""Input and output contracts: Snapshot in, PositionReport out."""

from .snapshot import Snapshot, CarSample, parse_telemetry
from .position_report import PositionReport, CarProgress

__all__ = ['Snapshot', 'CarSample', 'parse_telemetry', 'PositionReport', 'CarProgress']
