"""
Position Report Data Models

The PositionReport is the per-tick output of the gap engine: corrected
race order plus the gap metrics, keyed by car index. It is written
to the report file (see output.report_writer) and served over HTTP.

Two serialized forms:
    - to_json(): keyed JSON with a contract version, round-trips through
      from_json()
    - to_telemetry(): parallel CarIdx* arrays, the same shape the overlay
      widgets consume ("CarIdxPosition", "CarIdxF2Time",
      "CarIdxGapToLeader"); slots without a car are 0

Per car the keyed form carries position, gap to the car ahead, gap to the
car behind, gap to the leader, and the car's newest checkpoint (index and
session time, null before the car has one).

Contract Version: 1.1.0
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import DEFAULT_NUM_SLOTS, NOT_STARTED_POSITION

CarIdx = int


@dataclass
class CarProgress:
    """Per-car progress derived once per tick."""
    car_idx: CarIdx
    lap: int
    completed_laps: int
    fractional_progress: float
    raw_position: Optional[int] = None
    total_progress: float = field(init=False, default=0.0)

    def __post_init__(self):
        self.total_progress = self.completed_laps + self.fractional_progress

    @property
    def has_started(self) -> bool:
        """True once the car is genuinely on its first lap or beyond."""
        return self.completed_laps > 0 or self.lap == 1


@dataclass
class PositionReport:
    """Corrected positions and gaps for one tick."""
    version: str = "1.1.0"
    session_time: float = 0.0
    generated_at: float = field(default_factory=time.time)

    positions: Dict[CarIdx, int] = field(default_factory=dict)
    gap_to_car_ahead: Dict[CarIdx, float] = field(default_factory=dict)
    gap_to_leader: Dict[CarIdx, float] = field(default_factory=dict)
    gap_to_car_behind: Dict[CarIdx, float] = field(default_factory=dict)

    # Newest checkpoint per car; cars without history are absent
    last_checkpoint: Dict[CarIdx, int] = field(default_factory=dict)
    last_checkpoint_time: Dict[CarIdx, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def leader(self) -> Optional[CarIdx]:
        """Car index ranked 1, or None."""
        for car_idx, pos in self.positions.items():
            if pos == 1:
                return car_idx
        return None

    def running_order(self) -> List[CarIdx]:
        """Car indices ordered by corrected position."""
        return sorted(self.positions, key=lambda idx: (self.positions[idx], idx))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "session_time": self.session_time,
            "generated_at": self.generated_at,
            "cars": {
                str(car_idx): {
                    "position": self.positions[car_idx],
                    "gap_to_car_ahead": self.gap_to_car_ahead.get(car_idx, 0.0),
                    "gap_to_car_behind": self.gap_to_car_behind.get(car_idx, 0.0),
                    "gap_to_leader": self.gap_to_leader.get(car_idx, 0.0),
                    "last_checkpoint": self.last_checkpoint.get(car_idx),
                    "last_checkpoint_time": self.last_checkpoint_time.get(car_idx),
                }
                for car_idx in self.running_order()
            },
        }

    def to_json(self) -> str:
        """Serialize to keyed JSON."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "PositionReport":
        """
        Deserialize from keyed JSON.

        Raises:
            ValueError: If the document has no "cars" object (for example
                the telemetry-array layout)
        """
        data = json.loads(json_str)
        if not isinstance(data, dict) or not isinstance(data.get("cars"), dict):
            raise ValueError("not a keyed position report (no 'cars' object)")
        report = cls(
            version=data.get("version", "1.1.0"),
            session_time=data.get("session_time", 0.0),
            generated_at=data.get("generated_at", time.time()),
        )
        for key, car in data["cars"].items():
            car_idx = int(key)
            report.positions[car_idx] = car.get("position", NOT_STARTED_POSITION)
            report.gap_to_car_ahead[car_idx] = car.get("gap_to_car_ahead", 0.0)
            report.gap_to_car_behind[car_idx] = car.get("gap_to_car_behind", 0.0)
            report.gap_to_leader[car_idx] = car.get("gap_to_leader", 0.0)
            if car.get("last_checkpoint") is not None:
                report.last_checkpoint[car_idx] = car["last_checkpoint"]
            if car.get("last_checkpoint_time") is not None:
                report.last_checkpoint_time[car_idx] = car["last_checkpoint_time"]
        return report

    def to_telemetry(self, num_slots: int = DEFAULT_NUM_SLOTS) -> Dict[str, Any]:
        """
        Project onto CarIdx* parallel arrays.

        Args:
            num_slots: Minimum array length; grows to fit the highest car index

        Returns:
            Dict with CarIdxPosition, CarIdxF2Time, CarIdxGapToLeader, SessionTime
        """
        size = max([num_slots] + [idx + 1 for idx in self.positions])
        positions = [0] * size
        f2_time = [0.0] * size
        gap_leader = [0.0] * size

        for car_idx, pos in self.positions.items():
            if car_idx < 0:
                continue
            positions[car_idx] = pos
            f2_time[car_idx] = self.gap_to_car_ahead.get(car_idx, 0.0)
            gap_leader[car_idx] = self.gap_to_leader.get(car_idx, 0.0)

        return {
            "CarIdxPosition": positions,
            "CarIdxF2Time": f2_time,
            "CarIdxGapToLeader": gap_leader,
            "SessionTime": self.session_time,
        }
