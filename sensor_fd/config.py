"""
Configuration management for the sensor failure detection pipeline.

Contains the sensor channel set, derived feature definitions, the default
decision rule set, and processing/logging settings.
"""

from enum import Enum
import logging
import os
from typing import Dict, List, Tuple, Union


class Label(Enum):
    """Per-sample classification outcome"""
    FAILURE = "failure"
    NORMAL = "normal"

    @property
    def opposite(self) -> "Label":
        return Label.NORMAL if self is Label.FAILURE else Label.FAILURE


class PipelineState(Enum):
    """Orchestrator lifecycle states"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStage(Enum):
    """Pipeline stages, in execution order"""
    INGEST = "ingest"
    PREPARE = "prepare"
    MODEL = "model"
    CLASSIFY = "classify"
    AGGREGATE = "aggregate"


# Sensor channel configuration.
# missing_value is the imputation default used when a reading is absent or invalid.
SENSOR_CHANNELS: Dict[str, Dict] = {
    "temperature": {
        "display_name": "Temperature",
        "unit": "celsius",
        "required": True,
        "missing_value": 0.0,
        "valid_range": (-50.0, 200.0)
    },
    "vibration": {
        "display_name": "Vibration",
        "unit": "mm/s",
        "required": True,
        "missing_value": 0.0,
        "valid_range": (0.0, 50.0)
    },
    "pressure": {
        "display_name": "Pressure",
        "unit": "bar",
        "required": False,
        "missing_value": 0.0,
        "valid_range": (0.0, 300.0)
    },
    "rotational_speed": {
        "display_name": "Rotational Speed",
        "unit": "rpm",
        "required": False,
        "missing_value": 0.0,
        "valid_range": (0.0, 10000.0)
    }
}

# Columns used as the record identifier, in priority order.
# Falls back to the data row index when none is present.
ID_COLUMNS: Tuple[str, ...] = ("timestamp", "id", "sample_id")

# Derived features, computed per record from declared channels only
DERIVED_FEATURES: Dict[str, Dict] = {
    "thermal_vibration_load": {
        "operation": "product",
        "inputs": ["temperature", "vibration"]
    },
    "pressure_per_krpm": {
        "operation": "ratio",
        "inputs": ["pressure", "rotational_speed"],
        "scale": 1000.0
    }
}

DERIVED_OPERATIONS: Tuple[str, ...] = ("ratio", "product", "difference", "sum")

CONDITION_OPERATORS: Tuple[str, ...] = (">", ">=", "<", "<=", "==", "!=")

# Default decision policy: each rule is one tree of the ensemble and casts
# `vote` when all of its conditions hold, the opposite label otherwise.
DEFAULT_RULES: List[Dict] = [
    {
        "name": "overheat_with_vibration",
        "conditions": [
            {"feature": "temperature", "operator": ">", "threshold": 80.0},
            {"feature": "vibration", "operator": ">", "threshold": 5.0}
        ],
        "vote": "failure"
    },
    {
        "name": "severe_vibration",
        "conditions": [
            {"feature": "vibration", "operator": ">", "threshold": 7.0}
        ],
        "vote": "failure"
    },
    {
        "name": "critical_temperature",
        "conditions": [
            {"feature": "temperature", "operator": ">", "threshold": 95.0}
        ],
        "vote": "failure"
    },
    {
        "name": "thermal_vibration_load",
        "conditions": [
            {"feature": "thermal_vibration_load", "operator": ">", "threshold": 450.0}
        ],
        "vote": "failure"
    },
    {
        "name": "pressure_overload",
        "conditions": [
            {"feature": "pressure", "operator": ">", "threshold": 150.0},
            {"feature": "rotational_speed", "operator": ">", "threshold": 3000.0}
        ],
        "vote": "failure"
    }
]

# Progress reported after each stage completes (strictly increasing, 100 only at the end)
PROGRESS_STEPS: Dict[PipelineStage, Tuple[str, int]] = {
    PipelineStage.INGEST: ("Data format validated", 20),
    PipelineStage.PREPARE: ("Sensor data preprocessed", 40),
    PipelineStage.MODEL: ("Decision model loaded", 60),
    PipelineStage.CLASSIFY: ("Predictions generated", 80),
    PipelineStage.AGGREGATE: ("Analysis report generated", 100)
}

# Synthetic demonstration data
SAMPLE_DATA_CONFIG: Dict[str, Union[int, float]] = {
    "size": 100,
    "seed": 42,
    "failure_fraction": 0.15
}

# Processing configuration
PROCESSING_CONFIG: Dict = {
    "max_workers": int(os.environ.get("SFD_MAX_WORKERS", "1")),  # Per-record workers
    "parallel_threshold": 1000,   # Records below this are processed sequentially
    "reject_incomplete_rows": False,
    "require_samples": True
}

# Logging configuration
LOGGING_CONFIG: Dict = {
    "level": logging.INFO,
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "datefmt": "%Y-%m-%d %H:%M:%S"
}


def get_required_channels(channels: Dict[str, Dict] = SENSOR_CHANNELS) -> List[str]:
    """Names of channels that every input header must declare"""
    return [name for name, cfg in channels.items() if cfg.get("required", False)]


def validate_config() -> bool:
    """Validate configuration consistency"""
    if not SENSOR_CHANNELS:
        raise ValueError("At least one sensor channel must be configured")

    for name, cfg in SENSOR_CHANNELS.items():
        valid_range = cfg.get("valid_range")
        if valid_range and valid_range[0] >= valid_range[1]:
            raise ValueError(f"Invalid valid_range for channel {name}")

    for name, definition in DERIVED_FEATURES.items():
        if definition["operation"] not in DERIVED_OPERATIONS:
            raise ValueError(f"Unknown operation for derived feature {name}")

    percents = [percent for _, percent in PROGRESS_STEPS.values()]
    if percents != sorted(set(percents)) or percents[-1] != 100:
        raise ValueError("Progress steps must be strictly increasing and end at 100")

    return True


# Validate configuration on import
validate_config()
