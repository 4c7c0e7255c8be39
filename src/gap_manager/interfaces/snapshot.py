"""
Snapshot Data Models

One Snapshot is one tick of raw per-car input. Upstream telemetry arrives
as parallel arrays indexed by car slot:

    {
        "CarIdxLap":          [int, ...],
        "CarIdxLapCompleted": [int, ...],
        "CarIdxLapDistPct":   [float, ...],   # 0..1 fractional progress
        "CarIdxPosition":     [int, ...],     # upstream position, tie-break only
        "SessionTime":        float
    }

parse_telemetry() converts that into a Snapshot keyed by car index and drops
slots whose lap/progress fields are missing, NaN or non-numeric. The
simulator reports -1 progress for cars that are not in the world; those are
dropped too.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

logger = logging.getLogger(__name__)

CarIdx = int

FIELD_LAP = "CarIdxLap"
FIELD_LAP_COMPLETED = "CarIdxLapCompleted"
FIELD_LAP_DIST_PCT = "CarIdxLapDistPct"
FIELD_POSITION = "CarIdxPosition"
FIELD_SESSION_TIME = "SessionTime"


@dataclass
class CarSample:
    """Raw per-car input for one tick."""
    lap: int                             # Current lap number (1-based)
    completed_laps: int                  # Laps fully finished
    fractional_progress: float           # Position within current lap, [0, 1)
    raw_position: Optional[int] = None   # Upstream position, tie-break only

    @property
    def has_progress(self) -> bool:
        """True when lap counts and lap-distance progress are all usable."""
        if _as_int(self.lap) is None or _as_int(self.completed_laps) is None:
            return False
        pct = _as_float(self.fractional_progress)
        return pct is not None and pct >= 0


@dataclass
class Snapshot:
    """One tick of input: per-car samples plus the session clock."""
    session_time: float
    cars: Dict[CarIdx, CarSample] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.cars)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return value


def _slot(values: Optional[Sequence[Any]], idx: int) -> Any:
    if values is None or idx >= len(values):
        return None
    return values[idx]


def parse_telemetry(data: Dict[str, Any]) -> Snapshot:
    """
    Build a Snapshot from a telemetry dict of CarIdx* arrays.

    Args:
        data: Decoded telemetry object

    Returns:
        Snapshot containing only cars with usable lap and progress data

    Raises:
        ValueError: If SessionTime is missing or not a finite number
    """
    session_time = _as_float(data.get(FIELD_SESSION_TIME))
    if session_time is None:
        raise ValueError(f"{FIELD_SESSION_TIME} missing or not numeric: {data.get(FIELD_SESSION_TIME)!r}")

    laps = data.get(FIELD_LAP)
    completed = data.get(FIELD_LAP_COMPLETED)
    pcts = data.get(FIELD_LAP_DIST_PCT)
    positions = data.get(FIELD_POSITION)

    snapshot = Snapshot(session_time=session_time)
    if not pcts:
        return snapshot

    skipped = 0
    for idx in range(len(pcts)):
        pct = _as_float(_slot(pcts, idx))
        lap = _as_int(_slot(laps, idx))
        laps_done = _as_int(_slot(completed, idx))

        if pct is None or pct < 0 or lap is None or laps_done is None:
            skipped += 1
            continue

        # Upstream reports 0 for cars without a position
        raw_position = _as_int(_slot(positions, idx))
        if raw_position is not None and raw_position <= 0:
            raw_position = None

        snapshot.cars[idx] = CarSample(
            lap=lap,
            completed_laps=laps_done,
            fractional_progress=pct,
            raw_position=raw_position,
        )

    if skipped:
        logger.debug(f"t={session_time:.2f}: skipped {skipped} slots without usable progress")

    return snapshot
