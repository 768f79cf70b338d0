"""
Error taxonomy for the sensor failure detection pipeline.

Every error is terminal for the run that raised it. The orchestrator records
the originating stage on the error before surfacing it.
"""

from typing import Optional

from .config import PipelineStage


class SensorPipelineError(Exception):
    """Base class for pipeline errors"""

    def __init__(self, message: str, stage: Optional[PipelineStage] = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage is not None:
            return f"[{self.stage.value}] {message}"
        return message


class FormatError(SensorPipelineError):
    """Malformed input structure (header or column count)"""


class EmptyInputError(SensorPipelineError):
    """No data rows to process"""


class ConfigurationError(SensorPipelineError):
    """Invalid feature or rule configuration, detected at setup"""


class ModelUnavailableError(SensorPipelineError):
    """The decision rule set could not be loaded"""


class BusyError(SensorPipelineError):
    """A run is already in progress on this orchestrator"""


class PipelineCancelledError(SensorPipelineError):
    """The run was cancelled at a stage boundary"""


class PipelineStageError(SensorPipelineError):
    """Unexpected failure inside a stage"""
