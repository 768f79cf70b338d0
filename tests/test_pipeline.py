"""
Tests for pipeline orchestration.

Covers the end-to-end scenarios, progress reporting, the run state machine,
error surfacing and per-record work distribution.
"""

import pytest

from sensor_fd.config import Label, PipelineStage, PipelineState
from sensor_fd.exceptions import (
    BusyError,
    ConfigurationError,
    EmptyInputError,
    FormatError,
    ModelUnavailableError,
    PipelineCancelledError,
    PipelineStageError
)
from sensor_fd.models import BaseClassifier
from sensor_fd.pipeline import PipelineOrchestrator, TaskPool
from sensor_fd.sampler import SyntheticDataGenerator


@pytest.fixture
def events():
    return []


@pytest.fixture
def orchestrator(scenario_channels, scenario_rules, events):
    return PipelineOrchestrator(
        channels=scenario_channels,
        derived_features={},
        rules=scenario_rules,
        progress_callback=events.append
    )


class ExplodingClassifier(BaseClassifier):
    """Classifier that fails on every vector"""

    def __init__(self):
        super().__init__("Exploding")

    def classify(self, vector):
        raise RuntimeError("boom")


class TestScenarios:
    """End-to-end analysis scenarios"""

    def test_three_row_scenario(self, orchestrator, scenario_csv):
        result = orchestrator.analyze(scenario_csv)

        assert [p.label for p in result.predictions] == [Label.FAILURE, Label.NORMAL, Label.FAILURE]
        assert result.total_samples == 3
        assert result.failure_predictions == 2
        assert result.normal_predictions == 1
        assert result.processing_time >= 0.0

    def test_empty_data_section(self, orchestrator, events):
        with pytest.raises(EmptyInputError) as exc_info:
            orchestrator.analyze("temperature,vibration\n")

        assert exc_info.value.stage is PipelineStage.INGEST
        assert orchestrator.state is PipelineState.FAILED
        assert events == []

    def test_missing_vibration_is_imputed(self, orchestrator):
        """Missing vibration under zero imputation is classified as vibration=0"""
        result = orchestrator.analyze("temperature,vibration\n95,\n")

        assert result.total_samples == 1
        assert result.predictions[0].label is Label.NORMAL
        assert result.predictions[0].contributing_factors == ("vibration",)

    def test_missing_vibration_rejected_when_configured(self, scenario_channels, scenario_rules):
        orchestrator = PipelineOrchestrator(
            channels=scenario_channels,
            derived_features={},
            rules=scenario_rules,
            reject_incomplete_rows=True
        )
        result = orchestrator.analyze("temperature,vibration\n95,\n90,8\n")

        assert [p.identifier for p in result.predictions] == [1]

    def test_all_rows_rejected(self, scenario_channels, scenario_rules):
        orchestrator = PipelineOrchestrator(
            channels=scenario_channels,
            derived_features={},
            rules=scenario_rules,
            reject_incomplete_rows=True
        )
        with pytest.raises(EmptyInputError) as exc_info:
            orchestrator.analyze("temperature,vibration\n95,\n")
        assert exc_info.value.stage is PipelineStage.AGGREGATE

        orchestrator.aggregator.require_samples = False
        result = orchestrator.analyze("temperature,vibration\n95,\n")
        assert result.total_samples == 0

    def test_default_configuration(self, default_csv):
        result = PipelineOrchestrator().analyze(default_csv)

        assert [p.identifier for p in result.predictions] == [
            "2024-01-01T00:00", "2024-01-01T00:01", "2024-01-01T00:02", "2024-01-01T00:03"
        ]
        assert [p.label.value for p in result.predictions] == ["normal", "failure", "normal", "failure"]
        assert result.predictions[1].confidence == pytest.approx(0.8)

    def test_sample_analysis_is_reproducible(self):
        first = PipelineOrchestrator().analyze_sample()
        second = PipelineOrchestrator().analyze_sample()

        assert first.total_samples == 100
        assert first.predictions == second.predictions
        assert first.failure_predictions + first.normal_predictions == first.total_samples
        assert [p.identifier for p in first.predictions] == list(range(100))
        assert first.failure_predictions > 0


class TestProgress:
    """Progress notifications at stage boundaries"""

    def test_progress_on_success(self, orchestrator, scenario_csv, events):
        orchestrator.analyze(scenario_csv)

        percents = [event.percent for event in events]
        assert percents == [20, 40, 60, 80, 100]
        assert all(event.status for event in events)
        assert orchestrator.progress_history == events
        assert orchestrator.state is PipelineState.COMPLETED

    def test_progress_stops_at_failed_stage(self, scenario_channels, scenario_csv, events):
        orchestrator = PipelineOrchestrator(
            channels=scenario_channels,
            derived_features={},
            rules=ExplodingClassifier(),
            progress_callback=events.append
        )
        with pytest.raises(PipelineStageError) as exc_info:
            orchestrator.analyze(scenario_csv)

        assert exc_info.value.stage is PipelineStage.CLASSIFY
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert [event.percent for event in events] == [20, 40, 60]
        assert 100 not in [event.percent for event in events]

    def test_callback_failure_is_ignored(self, scenario_channels, scenario_rules, scenario_csv):
        def broken_callback(event):
            raise ValueError("display went away")

        orchestrator = PipelineOrchestrator(
            channels=scenario_channels,
            derived_features={},
            rules=scenario_rules,
            progress_callback=broken_callback
        )
        result = orchestrator.analyze(scenario_csv)

        assert result.total_samples == 3
        assert orchestrator.state is PipelineState.COMPLETED


class TestStateMachine:
    """Run lifecycle, re-entrancy and cancellation"""

    def test_initial_state(self, orchestrator):
        assert orchestrator.state is PipelineState.IDLE

    def test_format_error_fails_run(self, orchestrator, events):
        with pytest.raises(FormatError) as exc_info:
            orchestrator.analyze("temperature,vibration\n90,8\n40\n")

        assert exc_info.value.stage is PipelineStage.INGEST
        assert orchestrator.state is PipelineState.FAILED
        assert orchestrator.last_error is exc_info.value
        assert events == []

    def test_new_run_after_terminal_state(self, orchestrator, scenario_csv):
        with pytest.raises(FormatError):
            orchestrator.analyze("no,header,match\n1,2,3\n")

        result = orchestrator.analyze(scenario_csv)
        assert result.total_samples == 3
        assert orchestrator.state is PipelineState.COMPLETED
        assert orchestrator.last_error is None

        orchestrator.reset()
        assert orchestrator.state is PipelineState.IDLE
        assert orchestrator.progress_history == []

    def test_concurrent_run_rejected(self, scenario_channels, scenario_rules, scenario_csv):
        rejected = []

        def reenter(event):
            if event.stage is PipelineStage.INGEST:
                try:
                    orchestrator.analyze(scenario_csv)
                except BusyError as e:
                    rejected.append(e)

        orchestrator = PipelineOrchestrator(
            channels=scenario_channels,
            derived_features={},
            rules=scenario_rules,
            progress_callback=reenter
        )
        result = orchestrator.analyze(scenario_csv)

        assert len(rejected) == 1
        assert result.total_samples == 3
        assert orchestrator.state is PipelineState.COMPLETED

    def test_cancel_at_stage_boundary(self, scenario_channels, scenario_rules, scenario_csv):
        def cancel_after_ingest(event):
            orchestrator.cancel()

        orchestrator = PipelineOrchestrator(
            channels=scenario_channels,
            derived_features={},
            rules=scenario_rules,
            progress_callback=cancel_after_ingest
        )
        with pytest.raises(PipelineCancelledError) as exc_info:
            orchestrator.analyze(scenario_csv)

        assert exc_info.value.stage is PipelineStage.PREPARE
        assert orchestrator.state is PipelineState.FAILED
        assert [event.percent for event in orchestrator.progress_history] == [20]

    def test_cancel_when_idle_is_ignored(self, orchestrator, scenario_csv):
        orchestrator.cancel()
        assert orchestrator.analyze(scenario_csv).total_samples == 3


class TestSetupValidation:
    """Configuration problems surface at setup"""

    def test_undeclared_channel_in_derived_feature(self, scenario_channels):
        with pytest.raises(ConfigurationError):
            PipelineOrchestrator(channels=scenario_channels)

    def test_rule_references_unknown_feature(self, scenario_channels):
        rules = [{"conditions": [{"feature": "pressure", "operator": ">", "threshold": 1}]}]
        with pytest.raises(ConfigurationError):
            PipelineOrchestrator(channels=scenario_channels, derived_features={}, rules=rules)

    def test_missing_rule_file_at_setup(self, tmp_path):
        with pytest.raises(ModelUnavailableError):
            PipelineOrchestrator(rules=tmp_path / "absent.json")

    def test_undecodable_rule_file_at_setup(self, tmp_path):
        rule_file = tmp_path / "rules.json"
        rule_file.write_bytes(b"\xff\xfe\x00garbage")

        with pytest.raises(ModelUnavailableError):
            PipelineOrchestrator(rules=rule_file)

    def test_undecodable_input_bytes(self, orchestrator):
        with pytest.raises(FormatError) as exc_info:
            orchestrator.analyze(b"temperature,vibration\n\xff\xfe,1\n")

        assert exc_info.value.stage is PipelineStage.INGEST
        assert orchestrator.state is PipelineState.FAILED

    def test_missing_rule_file_during_run(self, tmp_path, default_csv, events):
        orchestrator = PipelineOrchestrator(
            rules=tmp_path / "absent.json",
            progress_callback=events.append,
            validate_on_init=False
        )
        with pytest.raises(ModelUnavailableError) as exc_info:
            orchestrator.analyze(default_csv)

        assert exc_info.value.stage is PipelineStage.MODEL
        assert [event.percent for event in events] == [20, 40]


class TestTaskPool:
    """Per-record work distribution"""

    def test_parallel_matches_sequential(self):
        items = list(range(50))

        sequential = TaskPool(max_workers=1).map(lambda x: x * x, items)
        parallel = TaskPool(max_workers=4, parallel_threshold=1).map(lambda x: x * x, items)

        assert parallel == sequential

    def test_parallel_pipeline_matches_sequential(self):
        generator = SyntheticDataGenerator(size=60, seed=3)

        sequential = PipelineOrchestrator(max_workers=1).analyze_sample(generator)
        parallel = PipelineOrchestrator(max_workers=4, parallel_threshold=10).analyze_sample(generator)

        assert parallel.predictions == sequential.predictions
