"""
Report Writer for gap-manager

Writes each tick's PositionReport to a JSON file (by default in /dev/shm)
for consumption by overlay widgets and other applications.

The file is updated atomically (write to temp, rename) to prevent partial
reads. Two layouts are available:
    - "telemetry": CarIdxPosition / CarIdxF2Time / CarIdxGapToLeader arrays
    - "keyed": PositionReport.to_json() form, readable by ReportReader

Usage:
    writer = ReportWriter('/dev/shm/gap_report.json')
    writer.write(report)
"""

import json
import os
import tempfile
import logging
from pathlib import Path
from typing import Optional

from ..config import DEFAULT_NUM_SLOTS
from ..interfaces.position_report import PositionReport

logger = logging.getLogger(__name__)

LAYOUT_TELEMETRY = "telemetry"
LAYOUT_KEYED = "keyed"


class ReportWriter:
    """
    Writes PositionReport to a file.

    Updates are atomic (write to temp file, then rename).
    """

    DEFAULT_PATH = "/dev/shm/gap_report.json"

    def __init__(
        self,
        report_path: Optional[str] = None,
        layout: str = LAYOUT_KEYED,
        num_slots: int = DEFAULT_NUM_SLOTS
    ):
        """
        Initialize report writer.

        Args:
            report_path: Output file (default: /dev/shm/gap_report.json)
            layout: "keyed" or "telemetry"
            num_slots: CarIdx array length for the telemetry layout
        """
        if layout not in (LAYOUT_KEYED, LAYOUT_TELEMETRY):
            raise ValueError(f"Unknown report layout: {layout}")

        self.report_path = Path(report_path or self.DEFAULT_PATH)
        self.layout = layout
        self.num_slots = num_slots
        self.write_count = 0

        self.report_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"ReportWriter initialized: {self.report_path} ({layout})")

    def _serialize(self, report: PositionReport) -> str:
        if self.layout == LAYOUT_TELEMETRY:
            return json.dumps(report.to_telemetry(self.num_slots))
        return report.to_json()

    def write(self, report: PositionReport) -> bool:
        """
        Write a report.

        Args:
            report: PositionReport to write

        Returns:
            True if successful, False on error
        """
        try:
            json_data = self._serialize(report)

            # Temp file must be in the same directory for an atomic rename
            fd, temp_path = tempfile.mkstemp(
                dir=self.report_path.parent,
                prefix='.gap_report_',
                suffix='.tmp'
            )

            try:
                with os.fdopen(fd, 'w') as f:
                    f.write(json_data)

                os.rename(temp_path, self.report_path)
            except Exception:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise

            self.write_count += 1

            if self.write_count % 600 == 0:
                logger.debug(
                    f"Report write #{self.write_count}: "
                    f"t={report.session_time:.2f}, cars={len(report)}"
                )

            return True

        except Exception as e:
            logger.error(f"Failed to write report: {e}")
            return False

    def clear(self):
        """Remove the report file."""
        try:
            if self.report_path.exists():
                self.report_path.unlink()
                logger.info(f"Cleared report: {self.report_path}")
        except OSError as e:
            logger.warning(f"Failed to clear report: {e}")


class ReportReader:
    """
    Reads a keyed PositionReport written by ReportWriter.

    Usage:
        reader = ReportReader('/dev/shm/gap_report.json')
        report = reader.read()
        if report:
            gap = report.gap_to_leader.get(car_idx)
    """

    DEFAULT_PATH = ReportWriter.DEFAULT_PATH

    def __init__(self, report_path: Optional[str] = None):
        self.report_path = Path(report_path or self.DEFAULT_PATH)
        self._read_count = 0

    def read(self) -> Optional[PositionReport]:
        """
        Read the current report.

        Returns:
            PositionReport, or None if unavailable or not in the keyed layout
        """
        try:
            if not self.report_path.exists():
                return None

            with open(self.report_path, 'r') as f:
                json_data = f.read()

            report = PositionReport.from_json(json_data)
            self._read_count += 1
            return report

        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in report: {e}")
            return None
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to read report: {e}")
            return None

    def gap_to_leader(self, car_idx: int) -> Optional[float]:
        """Convenience accessor for one car's gap to the leader."""
        report = self.read()
        if report:
            return report.gap_to_leader.get(car_idx)
        return None

    @property
    def available(self) -> bool:
        return self.report_path.exists()
