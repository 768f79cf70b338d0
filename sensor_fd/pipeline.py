"""
Pipeline orchestration for sensor failure detection.

Sequences ingestion, feature preparation, model loading, classification and
aggregation for one analysis run, reporting progress at each stage boundary.
A run is all-or-nothing: it either completes with an AnalysisResult or fails
with a single error naming the stage it came from.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from .config import (
    DERIVED_FEATURES,
    PROCESSING_CONFIG,
    PROGRESS_STEPS,
    SENSOR_CHANNELS,
    PipelineStage,
    PipelineState
)
from .exceptions import (
    BusyError,
    PipelineCancelledError,
    PipelineStageError,
    SensorPipelineError
)
from .features import FeaturePreparer
from .io_reader import RecordIngestor
from .models import BaseClassifier, RuleEnsembleClassifier, load_rules
from .reporting import AnalysisResult, ResultAggregator
from .sampler import SyntheticDataGenerator
from .utils import log_memory_usage, timed


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class ProgressEvent:
    """Advisory stage-boundary notification"""
    status: str
    percent: int
    stage: Optional[PipelineStage] = None


ProgressCallback = Callable[[ProgressEvent], None]


class TaskPool:
    """
    Distributes per-record work.

    Small inputs (or max_workers <= 1) run sequentially; larger ones use a
    thread pool. Output order always matches input order.
    """

    def __init__(
        self,
        max_workers: int = PROCESSING_CONFIG["max_workers"],
        parallel_threshold: int = PROCESSING_CONFIG["parallel_threshold"]
    ):
        self.max_workers = max_workers
        self.parallel_threshold = parallel_threshold

    def map(self, func: Callable[[T], R], items: Iterable[T]) -> List[R]:
        items = list(items)
        if self.max_workers <= 1 or len(items) < self.parallel_threshold:
            return [func(item) for item in items]

        logger.debug(f"Distributing {len(items)} items over {self.max_workers} workers")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(func, items))


class PipelineOrchestrator:
    """
    Drives one analysis run at a time.

    States: idle -> running -> completed | failed. A new run started from a
    terminal state passes through idle again. A second request while a run
    is in progress raises BusyError.
    """

    def __init__(
        self,
        channels: Dict[str, Dict] = SENSOR_CHANNELS,
        derived_features: Dict[str, Dict] = DERIVED_FEATURES,
        rules: Any = None,
        progress_callback: Optional[ProgressCallback] = None,
        reject_incomplete_rows: bool = PROCESSING_CONFIG["reject_incomplete_rows"],
        require_samples: bool = PROCESSING_CONFIG["require_samples"],
        max_workers: int = PROCESSING_CONFIG["max_workers"],
        parallel_threshold: int = PROCESSING_CONFIG["parallel_threshold"],
        validate_on_init: bool = True
    ):
        """
        Initialize the orchestrator.

        Args:
            channels: Sensor channel configuration
            derived_features: Derived feature definitions
            rules: Rule source for load_rules(), or a ready BaseClassifier
            progress_callback: Receives a ProgressEvent at each stage boundary
            reject_incomplete_rows: Drop rows missing required channels
            require_samples: Treat an empty prediction set as an error
            max_workers: Workers for per-record stages
            parallel_threshold: Minimum records before using workers
            validate_on_init: Load the rule set now so configuration errors
                surface at setup
        """
        self.ingestor = RecordIngestor(channels, reject_incomplete_rows=reject_incomplete_rows)
        self.preparer = FeaturePreparer(channels, derived_features)
        self.aggregator = ResultAggregator(require_samples=require_samples)
        self.task_pool = TaskPool(max_workers, parallel_threshold)
        self.rules = rules
        self.progress_callback = progress_callback

        self.progress_history: List[ProgressEvent] = []
        self.last_error: Optional[SensorPipelineError] = None

        self._state = PipelineState.IDLE
        self._run_lock = threading.Lock()
        self._cancel_requested = threading.Event()

        if validate_on_init:
            self._load_classifier()

    @property
    def state(self) -> PipelineState:
        return self._state

    def analyze(self, raw_input: Any) -> AnalysisResult:
        """Run the pipeline over CSV text/bytes or an iterable of records"""
        return self._run(lambda: self.ingestor.ingest(raw_input))

    def analyze_sample(self, generator: Optional[SyntheticDataGenerator] = None) -> AnalysisResult:
        """Run the pipeline over the fixed-seed demonstration data"""
        generator = generator or SyntheticDataGenerator(channels=self.ingestor.channels)
        return self._run(lambda: self.ingestor.ingest_records(generator.generate()))

    def cancel(self) -> None:
        """Request cancellation; observed at the next stage boundary"""
        if self._state is PipelineState.RUNNING:
            logger.info("Cancellation requested")
            self._cancel_requested.set()

    def reset(self) -> None:
        """Return a finished orchestrator to idle"""
        if self._state is PipelineState.RUNNING:
            raise BusyError("Cannot reset while an analysis is running")
        self._transition(PipelineState.IDLE)
        self.progress_history = []
        self.last_error = None

    def _run(self, ingest: Callable[[], list]) -> AnalysisResult:
        if not self._run_lock.acquire(blocking=False):
            raise BusyError("An analysis is already running on this orchestrator")

        try:
            if self._state is not PipelineState.IDLE:
                self._transition(PipelineState.IDLE)
            self._cancel_requested.clear()
            self.progress_history = []
            self.last_error = None
            self._transition(PipelineState.RUNNING)
            log_memory_usage(logger, "analysis start")

            try:
                result = self._execute(ingest)
            except SensorPipelineError as e:
                self.last_error = e
                self._transition(PipelineState.FAILED)
                logger.error(f"Analysis failed: {e}")
                raise
            except BaseException:
                self._transition(PipelineState.FAILED)
                raise

            self._transition(PipelineState.COMPLETED)
            self._notify(PipelineStage.AGGREGATE)
            log_memory_usage(logger, "analysis end")
            return result
        finally:
            self._run_lock.release()

    @timed("pipeline_run")
    def _execute(self, ingest: Callable[[], list]) -> AnalysisResult:
        start_time = time.perf_counter()

        records = self._stage(PipelineStage.INGEST, ingest)
        self._notify(PipelineStage.INGEST)

        vectors = self._stage(
            PipelineStage.PREPARE,
            lambda: self.task_pool.map(self.preparer.prepare, records)
        )
        self._notify(PipelineStage.PREPARE)

        classifier = self._stage(PipelineStage.MODEL, self._load_classifier)
        self._notify(PipelineStage.MODEL)

        predictions = self._stage(
            PipelineStage.CLASSIFY,
            lambda: self.task_pool.map(classifier.classify, vectors)
        )
        self._notify(PipelineStage.CLASSIFY)

        result = self._stage(
            PipelineStage.AGGREGATE,
            lambda: self.aggregator.aggregate(predictions, time.perf_counter() - start_time)
        )
        self._check_cancelled(PipelineStage.AGGREGATE)
        return result

    def _stage(self, stage: PipelineStage, func: Callable[[], T]) -> T:
        self._check_cancelled(stage)
        logger.debug(f"Stage {stage.value} started")
        try:
            return func()
        except SensorPipelineError as e:
            if e.stage is None:
                e.stage = stage
            raise
        except Exception as e:
            raise PipelineStageError(f"Unexpected error: {e}", stage=stage) from e

    def _check_cancelled(self, stage: PipelineStage) -> None:
        if self._cancel_requested.is_set():
            raise PipelineCancelledError("Analysis cancelled", stage=stage)

    def _load_classifier(self) -> BaseClassifier:
        if isinstance(self.rules, BaseClassifier):
            classifier = self.rules
        else:
            classifier = load_rules(self.rules)

        if isinstance(classifier, RuleEnsembleClassifier):
            classifier.validate_features(self.preparer.feature_names)
        return classifier

    def _notify(self, stage: PipelineStage) -> None:
        status, percent = PROGRESS_STEPS[stage]
        event = ProgressEvent(status=status, percent=percent, stage=stage)
        self.progress_history.append(event)
        logger.info(f"[{percent:3d}%] {status}")

        if self.progress_callback is None:
            return
        try:
            self.progress_callback(event)
        except Exception as e:
            logger.warning(f"Progress callback failed at {stage.value}: {e}")

    def _transition(self, new_state: PipelineState) -> None:
        logger.debug(f"Pipeline state {self._state.value} -> {new_state.value}")
        self._state = new_state
