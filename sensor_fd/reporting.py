"""
Result aggregation for sensor failure detection.

Reduces the ordered prediction sequence of one run into an AnalysisResult.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

import pandas as pd

from .config import PROCESSING_CONFIG, Label
from .exceptions import EmptyInputError
from .models import Prediction
from .utils import format_duration


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """Summary of one analysis run; predictions are in input order"""
    total_samples: int
    failure_predictions: int
    normal_predictions: int
    predictions: Tuple[Prediction, ...]
    processing_time: float  # seconds

    @property
    def processing_time_ms(self) -> int:
        return int(round(self.processing_time * 1000))

    @property
    def failure_rate(self) -> float:
        if not self.total_samples:
            return 0.0
        return self.failure_predictions / self.total_samples

    def summary(self) -> Dict[str, Any]:
        return {
            "total_samples": self.total_samples,
            "failure_predictions": self.failure_predictions,
            "normal_predictions": self.normal_predictions,
            "failure_rate": self.failure_rate,
            "processing_time_ms": self.processing_time_ms
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per prediction: identifier, prediction, confidence"""
        return pd.DataFrame(
            [
                {
                    "identifier": p.identifier,
                    "prediction": p.label.value,
                    "confidence": p.confidence
                }
                for p in self.predictions
            ],
            columns=["identifier", "prediction", "confidence"]
        )


class ResultAggregator:
    """Counts labels and attaches the run duration"""

    def __init__(self, require_samples: bool = PROCESSING_CONFIG["require_samples"]):
        self.require_samples = require_samples

    def aggregate(self, predictions: Sequence[Prediction], elapsed: float) -> AnalysisResult:
        predictions = tuple(predictions)

        if not predictions and self.require_samples:
            raise EmptyInputError("No predictions to aggregate")

        failures = sum(1 for p in predictions if p.label is Label.FAILURE)
        result = AnalysisResult(
            total_samples=len(predictions),
            failure_predictions=failures,
            normal_predictions=len(predictions) - failures,
            predictions=predictions,
            processing_time=max(float(elapsed), 0.0)
        )

        logger.info(
            f"Aggregated {result.total_samples} predictions: "
            f"{result.failure_predictions} failure, {result.normal_predictions} normal "
            f"in {format_duration(result.processing_time)}"
        )
        return result
