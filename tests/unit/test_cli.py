"""Tests for Sekoropo CLI commands."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from sekoropo.cli import app

runner = CliRunner()


class TestCLICommands:
    """Test suite for CLI commands."""

    def test_version_command(self) -> None:
        """Test version command."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "Sekoropo version" in result.stdout

    def test_info_command(self) -> None:
        """Test info command."""
        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "piece-job marketplace" in result.stdout
        assert "Currency: BWP" in result.stdout

    def test_info_with_config_file(self, tmp_path) -> None:
        path = tmp_path / "sekoropo.yaml"
        path.write_text("environment: staging\nplatform_currency: USD\n")

        result = runner.invoke(app, ["info", "--config", str(path)])

        assert result.exit_code == 0
        assert "Environment: staging" in result.stdout
        assert "Currency: USD" in result.stdout

    def test_help_command(self) -> None:
        """Test help command."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("stats", "seed", "version", "info"):
            assert command in result.stdout

    def test_stats_on_empty_store(self) -> None:
        result = runner.invoke(app, ["stats", "disputes"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["success"] is True
        assert payload["data"]["total_disputes"] == 0
        assert payload["data"]["average_resolution_hours"] == 0.0

    def test_stats_rejects_half_open_range(self) -> None:
        result = runner.invoke(app, ["stats", "payments", "--start", "2024-01-01T00:00:00Z"])

        assert result.exit_code == 1

    def test_stats_reports_invalid_range(self) -> None:
        """Test that a reversed date range is a failure envelope and exit code 1."""
        result = runner.invoke(
            app,
            ["stats", "payments", "--start", "2024-02-01T00:00:00Z", "--end", "2024-01-01T00:00:00Z"],
        )

        assert result.exit_code == 1
        payload = json.loads(result.stdout)
        assert payload["success"] is False
        assert "start must not be after end" in payload["error"]

    def test_stats_rejects_unknown_kind(self) -> None:
        result = runner.invoke(app, ["stats", "invoices"])

        assert result.exit_code != 0


class TestSeedCommand:
    """Test suite for the seed command."""

    def test_seed_missing_file(self, tmp_path) -> None:
        result = runner.invoke(app, ["seed", str(tmp_path / "absent.json")])

        assert result.exit_code == 1

    def test_seed_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        result = runner.invoke(app, ["seed", str(path)])

        assert result.exit_code == 1

    def test_seed_wrong_shape(self, tmp_path) -> None:
        path = tmp_path / "list.json"
        path.write_text(json.dumps([{"id": "a"}]))

        result = runner.invoke(app, ["seed", str(path)])

        assert result.exit_code == 1

    def test_seed_rejects_unsupported_values(self, tmp_path) -> None:
        path = tmp_path / "nested.json"
        path.write_text(json.dumps({"jobs": [{"id": "j1", "meta": {"a": 1}}]}))

        result = runner.invoke(app, ["seed", str(path), "--database", str(tmp_path / "s.duckdb")])

        assert result.exit_code == 1

    def test_seed_into_memory_store(self, tmp_path) -> None:
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"jobs": [{"title": "A"}, {"$id": "j2", "title": "B"}]}))

        result = runner.invoke(app, ["seed", str(path)])

        assert result.exit_code == 0
        assert "jobs: 2" in result.stdout
