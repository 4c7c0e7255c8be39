"""
Configuration for gap-manager.

Engine tunables live in GapEngineConfig. The TOML file is loaded into a
plain dict by load_config(); sections:

    [engine]
    checkpoint_interval = 0.10
    max_checkpoints = 20
    default_lap_time_s = 90.0
    not_started_position = 999
    reset_on_session_rewind = true

    [output]
    report_path = "/dev/shm/gap_report.json"
    layout = "keyed"              # or "telemetry" (CarIdx* arrays)
    num_slots = 64
    health_port = 8080
"""

import copy
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml

logger = logging.getLogger(__name__)

CHECKPOINT_INTERVAL = 0.10     # Lap fraction between checkpoints
MAX_CHECKPOINTS = 20           # Checkpoints kept per car
NOT_STARTED_POSITION = 999     # Rank for cars not yet on their first lap
DEFAULT_NUM_SLOTS = 64         # CarIdx array length

# No circuit length is known to the engine, so this is a placeholder
# until a car records its first lap.
DEFAULT_LAP_TIME_S = 90.0

DEFAULT_CONFIG: Dict[str, Any] = {
    'engine': {
        'checkpoint_interval': CHECKPOINT_INTERVAL,
        'max_checkpoints': MAX_CHECKPOINTS,
        'default_lap_time_s': DEFAULT_LAP_TIME_S,
        'not_started_position': NOT_STARTED_POSITION,
        'reset_on_session_rewind': True,
    },
    'output': {
        'report_path': '/dev/shm/gap_report.json',
        'layout': 'keyed',
        'num_slots': DEFAULT_NUM_SLOTS,
        'health_port': 0,
    },
}


@dataclass
class GapEngineConfig:
    """Tunables for checkpointing and gap estimation."""
    checkpoint_interval: float = CHECKPOINT_INTERVAL
    max_checkpoints: int = MAX_CHECKPOINTS
    default_lap_time_s: float = DEFAULT_LAP_TIME_S
    not_started_position: int = NOT_STARTED_POSITION
    reset_on_session_rewind: bool = True  # Clear all history if SessionTime goes back
    num_slots: int = DEFAULT_NUM_SLOTS

    def __post_init__(self):
        if not 0 < self.checkpoint_interval <= 1:
            raise ValueError(f"checkpoint_interval must be in (0, 1], got {self.checkpoint_interval}")
        if self.max_checkpoints < 2:
            raise ValueError(f"max_checkpoints must be >= 2, got {self.max_checkpoints}")
        if self.default_lap_time_s < 0:
            raise ValueError(f"default_lap_time_s must be >= 0, got {self.default_lap_time_s}")
        if self.num_slots < 0:
            raise ValueError(f"num_slots must be >= 0, got {self.num_slots}")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "GapEngineConfig":
        """
        Build from a loaded configuration dictionary.

        Args:
            config: Full config dict ([engine] and [output] sections)

        Returns:
            GapEngineConfig with defaults for anything not set
        """
        engine = config.get('engine', {})
        output = config.get('output', {})
        return cls(
            checkpoint_interval=float(engine.get('checkpoint_interval', CHECKPOINT_INTERVAL)),
            max_checkpoints=int(engine.get('max_checkpoints', MAX_CHECKPOINTS)),
            default_lap_time_s=float(engine.get('default_lap_time_s', DEFAULT_LAP_TIME_S)),
            not_started_position=int(engine.get('not_started_position', NOT_STARTED_POSITION)),
            reset_on_session_rewind=bool(engine.get('reset_on_session_rewind', True)),
            num_slots=int(output.get('num_slots', DEFAULT_NUM_SLOTS)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a TOML file.

    Sections missing from the file are filled from DEFAULT_CONFIG. With no
    path (or a path that does not exist) the defaults are returned.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if not config_path:
        return config

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found: {path}, using defaults")
        return config

    with open(path, 'r') as f:
        loaded = toml.load(f)

    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values

    logger.info(f"Loaded config from {path}")
    return config
