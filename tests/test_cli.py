"""
Tests for the command-line interface.
"""

import json

import pandas as pd
from typer.testing import CliRunner

from sensor_fd import __version__
from sensor_fd.cli import app


runner = CliRunner()


class TestCommands:
    """Exit codes and outputs of each command"""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_analyze_valid_file(self, tmp_path, default_csv):
        input_file = tmp_path / "readings.csv"
        input_file.write_text(default_csv)

        result = runner.invoke(app, ["analyze", str(input_file)])

        assert result.exit_code == 0
        assert "Analysis complete" in result.output

    def test_analyze_malformed_file(self, tmp_path):
        input_file = tmp_path / "broken.csv"
        input_file.write_text("temperature,vibration\n90,8\n40\n")

        result = runner.invoke(app, ["analyze", str(input_file)])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_analyze_writes_report(self, tmp_path, default_csv):
        input_file = tmp_path / "readings.csv"
        input_file.write_text(default_csv)
        report = tmp_path / "out" / "report.json"

        result = runner.invoke(app, ["analyze", str(input_file), "--report", str(report)])

        assert result.exit_code == 0
        with open(report) as f:
            saved = json.load(f)
        assert saved["summary"]["total_samples"] == 4
        assert saved["summary"]["failure_predictions"] == 2
        assert [p["prediction"] for p in saved["predictions"]] == ["normal", "failure", "normal", "failure"]
        assert saved["predictions"][0]["identifier"] == "2024-01-01T00:00"

    def test_analyze_undecodable_rule_file(self, tmp_path, default_csv):
        input_file = tmp_path / "readings.csv"
        input_file.write_text(default_csv)
        rule_file = tmp_path / "rules.json"
        rule_file.write_bytes(b"\xff\xfe\x00garbage")

        result = runner.invoke(app, ["analyze", str(input_file), "--rules", str(rule_file)])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_analyze_missing_file(self, tmp_path):
        result = runner.invoke(app, ["analyze", str(tmp_path / "absent.csv")])

        assert result.exit_code == 1

    def test_sample_analysis(self):
        result = runner.invoke(app, ["sample", "--size", "10", "--show", "0"])

        assert result.exit_code == 0
        assert "Analysis complete" in result.output

    def test_sample_rejects_non_positive_size(self):
        result = runner.invoke(app, ["sample", "--size", "0"])

        assert result.exit_code == 2

    def test_sample_export(self, tmp_path):
        output = tmp_path / "sample.csv"

        result = runner.invoke(app, ["sample", "--size", "10", "--output", str(output)])

        assert result.exit_code == 0
        frame = pd.read_csv(output)
        assert len(frame) == 10
        assert list(frame.columns) == ["id", "temperature", "vibration", "pressure", "rotational_speed"]

    def test_exported_sample_can_be_analyzed(self, tmp_path):
        output = tmp_path / "sample.csv"
        runner.invoke(app, ["sample", "--size", "25", "--output", str(output)])

        result = runner.invoke(app, ["analyze", str(output), "--show", "5"])

        assert result.exit_code == 0
        assert "Analysis complete" in result.output

    def test_rules_export(self, tmp_path):
        export = tmp_path / "rules.json"

        result = runner.invoke(app, ["rules", "--export", str(export)])

        assert result.exit_code == 0
        with open(export) as f:
            saved = json.load(f)
        assert len(saved["rules"]) == 5

    def test_rules_missing_file(self, tmp_path):
        result = runner.invoke(app, ["rules", "--rules", str(tmp_path / "absent.json")])

        assert result.exit_code == 1

    def test_rules_undecodable_file(self, tmp_path):
        rule_file = tmp_path / "rules.json"
        rule_file.write_bytes(b"\xff\xfe\x00garbage")

        result = runner.invoke(app, ["rules", "--rules", str(rule_file)])

        assert result.exit_code == 1

    def test_status(self):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Memory Usage" in result.output
