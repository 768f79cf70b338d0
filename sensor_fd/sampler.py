"""
Synthetic demonstration data for the sensor failure detection pipeline.

Produces a fixed-size, fixed-seed sequence of SensorRecords so that the
demonstration analysis is identical across runs.
"""

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .config import SAMPLE_DATA_CONFIG, SENSOR_CHANNELS
from .io_reader import SensorRecord


logger = logging.getLogger(__name__)

# (mean, std) per channel for healthy and degrading equipment
NORMAL_PROFILE: Dict[str, tuple] = {
    "temperature": (55.0, 10.0),
    "vibration": (2.5, 1.0),
    "pressure": (100.0, 15.0),
    "rotational_speed": (1800.0, 300.0)
}

FAILURE_PROFILE: Dict[str, tuple] = {
    "temperature": (88.0, 5.0),
    "vibration": (8.0, 1.5),
    "pressure": (170.0, 15.0),
    "rotational_speed": (3400.0, 200.0)
}


class SyntheticDataGenerator:
    """
    Generates reproducible sensor records for demonstrations.

    A fraction of rows is drawn from a degrading-equipment profile, the rest
    from a healthy profile. Values are clipped to each channel's valid range
    so generated records satisfy the same invariants as parsed ones.
    """

    def __init__(
        self,
        size: int = SAMPLE_DATA_CONFIG["size"],
        seed: int = SAMPLE_DATA_CONFIG["seed"],
        failure_fraction: float = SAMPLE_DATA_CONFIG["failure_fraction"],
        channels: Dict[str, Dict] = SENSOR_CHANNELS
    ):
        if size <= 0:
            raise ValueError("Sample size must be positive")
        if not 0.0 <= failure_fraction <= 1.0:
            raise ValueError("failure_fraction must be between 0 and 1")

        self.size = size
        self.seed = seed
        self.failure_fraction = failure_fraction
        self.channels = channels

    def generate(self) -> List[SensorRecord]:
        """Generate the demonstration records"""
        rng = np.random.default_rng(self.seed)
        degrading = rng.random(self.size) < self.failure_fraction

        columns: Dict[str, np.ndarray] = {}
        for name, cfg in self.channels.items():
            normal_mean, normal_std = NORMAL_PROFILE.get(name, (0.0, 1.0))
            failure_mean, failure_std = FAILURE_PROFILE.get(name, (normal_mean, normal_std))

            values = np.where(
                degrading,
                rng.normal(failure_mean, failure_std, self.size),
                rng.normal(normal_mean, normal_std, self.size)
            )
            valid_range = cfg.get("valid_range")
            if valid_range:
                values = np.clip(values, *valid_range)
            columns[name] = np.round(values, 2)

        logger.info(
            f"Generated {self.size} synthetic records "
            f"({int(degrading.sum())} from the degrading profile, seed={self.seed})"
        )

        return [
            SensorRecord(
                identifier=i,
                channels={name: float(columns[name][i]) for name in self.channels}
            )
            for i in range(self.size)
        ]

    def generate_frame(self) -> pd.DataFrame:
        """Generate the demonstration records as a DataFrame"""
        return records_to_frame(self.generate())


def records_to_frame(records: List[SensorRecord], id_column: Optional[str] = "id") -> pd.DataFrame:
    """Tabulate records, one row per record; missing readings become NaN"""
    frame = pd.DataFrame(
        [{name: np.nan if value is None else value for name, value in r.channels.items()}
         for r in records]
    )
    if id_column:
        frame.insert(0, id_column, [r.identifier for r in records])
    return frame
