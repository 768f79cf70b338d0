"""
Sensor Failure Detection Pipeline

Ingests tabular sensor telemetry, classifies every sample as failure or
normal with a fixed ensemble of threshold rules, and aggregates the
predictions into an analysis report.
"""

__version__ = "1.0.0"

from . import config
from . import utils
from .exceptions import (
    BusyError,
    ConfigurationError,
    EmptyInputError,
    FormatError,
    ModelUnavailableError,
    SensorPipelineError
)
from .pipeline import PipelineOrchestrator

__all__ = [
    "config",
    "utils",
    "PipelineOrchestrator",
    "SensorPipelineError",
    "FormatError",
    "EmptyInputError",
    "ConfigurationError",
    "ModelUnavailableError",
    "BusyError"
]
