"""
Pytest configuration for sensor failure detection tests.
"""

from typing import Dict, List

import numpy as np
import pytest


@pytest.fixture
def scenario_channels() -> Dict[str, Dict]:
    """Two required channels with zero imputation"""
    return {
        "temperature": {
            "required": True,
            "missing_value": 0.0,
            "valid_range": (-50.0, 200.0)
        },
        "vibration": {
            "required": True,
            "missing_value": 0.0,
            "valid_range": (0.0, 50.0)
        }
    }


@pytest.fixture
def scenario_rules() -> List[Dict]:
    """Single rule: temperature > 80 and vibration > 5 votes failure"""
    return [
        {
            "name": "hot_and_shaking",
            "conditions": [
                {"feature": "temperature", "operator": ">", "threshold": 80},
                {"feature": "vibration", "operator": ">", "threshold": 5}
            ],
            "vote": "failure"
        }
    ]


@pytest.fixture
def scenario_csv() -> str:
    return "temperature,vibration\n90,8\n40,1\n85,6\n"


@pytest.fixture
def default_csv() -> str:
    """Full channel set, including one missing pressure reading"""
    return (
        "timestamp,temperature,vibration,pressure,rotational_speed\n"
        "2024-01-01T00:00,55.0,2.1,98.0,1750\n"
        "2024-01-01T00:01,91.5,8.4,172.0,3450\n"
        "2024-01-01T00:02,60.2,3.0,,1800\n"
        "2024-01-01T00:03,99.0,9.5,180.0,3600\n"
    )


# Set random seeds for reproducible tests
np.random.seed(42)
