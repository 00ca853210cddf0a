"""
Tests for the Orchestrator.

============================================================
PURPOSE
============================================================
Covers configuration loading, runtime wiring and the CLI.

============================================================
"""

import json
import logging
import pytest
from datetime import date, datetime, timezone

from core.clock import MockClock
from core.exceptions import ConfigurationError
from orchestrator.cli import create_parser, main, parse_sample, validate_args
from orchestrator.core import build_runtime
from orchestrator.models import EngineConfig
from scoring_engine.types import BiometricSample, MetricKind, ScoreKind


NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

ENV_KEYS = (
    "SCORING_TIMEZONE",
    "BASELINE_WINDOW_DAYS",
    "BASELINE_MIN_COVERAGE",
    "CACHE_CAPACITY",
    "DURABLE_MAX_RETRIES",
    "DURABLE_RETRY_DELAY_SECONDS",
    "RECENTLY_UPDATED_SECONDS",
    "INCOMPLETE_RETRY_SECONDS",
    "MAX_INCOMPLETE_RETRIES",
    "DATABASE_URL",
    "DATABASE_ECHO",
    "DURABLE_ENABLED",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clean_env(monkeypatch):
    """Environment without any engine settings."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def restore_logging():
    """Put back the root handlers replaced by setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def samples_file(tmp_path):
    """Thirteen days of HRV history, one morning reading and a malformed line."""
    lines = [
        json.dumps({"metric": "HRV", "timestamp": f"2025-03-{day:02d}T07:00:00+00:00", "value": 40.0})
        for day in range(1, 14)
    ]
    lines.append(json.dumps({"metric": "hrv", "timestamp": "2025-03-14T07:00:00+00:00", "value": 45.0}))
    lines.append("# comment")
    lines.append('{"metric": "HRV"}')
    path = tmp_path / "samples.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# ============================================================
# CONFIGURATION TESTS
# ============================================================

class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self, clean_env):
        config = EngineConfig.from_env()

        assert config.timezone is None
        assert config.baseline.window_days == 14
        assert config.cache.capacity == 100
        assert config.durable_enabled
        assert config.validate() == []

    def test_from_env(self, clean_env):
        """Test environment overrides."""
        clean_env.setenv("SCORING_TIMEZONE", "Europe/Berlin")
        clean_env.setenv("BASELINE_WINDOW_DAYS", "7")
        clean_env.setenv("CACHE_CAPACITY", "5")
        clean_env.setenv("MAX_INCOMPLETE_RETRIES", "2")
        clean_env.setenv("DURABLE_ENABLED", "false")
        clean_env.setenv("LOG_LEVEL", "debug")

        config = EngineConfig.from_env()

        assert config.timezone == "Europe/Berlin"
        assert config.baseline.window_days == 7
        assert config.baseline.min_coverage_for(MetricKind.HRV) == 3
        assert config.cache.capacity == 5
        assert config.coordinator.max_incomplete_retries == 2
        assert not config.durable_enabled
        assert config.log_level == "DEBUG"

    def test_validate_reports_problems(self):
        config = EngineConfig.for_testing(timezone="Mars/Olympus_Mons")
        config.log_format = "xml"

        errors = config.validate()

        assert any("timezone" in e for e in errors)
        assert any("log_format" in e for e in errors)

    def test_to_dict_is_json_ready(self):
        config = EngineConfig.for_testing()
        config.baseline.window_overrides[MetricKind.HRV] = 21

        data = json.loads(json.dumps(config.to_dict(), default=str))

        assert data["baseline"]["window_overrides"] == {"HRV": 21}


# ============================================================
# RUNTIME TESTS
# ============================================================

class TestRuntime:
    """Tests for build_runtime and ScoringRuntime."""

    def test_invalid_config_rejected(self):
        config = EngineConfig.for_testing()
        config.log_level = "LOUD"

        with pytest.raises(ConfigurationError):
            build_runtime(config)

    @pytest.mark.asyncio
    async def test_end_to_end_with_sqlite(self):
        """Test ingest, recompute and durable write through the wired runtime."""
        runtime = build_runtime(EngineConfig.for_testing(), clock=MockClock(NOW))
        batch = [
            BiometricSample(MetricKind.HRV, datetime(2025, 3, day, 7, tzinfo=timezone.utc), 40.0)
            for day in range(1, 14)
        ]
        batch.append(BiometricSample(MetricKind.HRV, datetime(2025, 3, 14, 7, tzinfo=timezone.utc), 45.0))

        async with runtime:
            await runtime.coordinator.on_samples(batch)
            await runtime.coordinator.wait_until_idle()
            await runtime.cache.flush()

            score = await runtime.query.current_score(ScoreKind.RECOVERY, date(2025, 3, 14))
            assert score.overall == 43
            assert runtime.cache.stats().durable_writes >= 14

        assert not runtime.is_running

    @pytest.mark.asyncio
    async def test_memory_only_runtime(self):
        config = EngineConfig.for_testing()
        config.durable_enabled = False
        runtime = build_runtime(config, clock=MockClock(NOW))

        async with runtime:
            assert runtime.database is None
            assert not runtime.cache.has_durable_tier


# ============================================================
# CLI TESTS
# ============================================================

class TestCli:
    """Tests for the command-line interface."""

    def test_parse_sample(self):
        sample = parse_sample('{"metric": "rem_sleep", "timestamp": "2025-03-14T05:00:00", "value": 30}')

        assert sample.metric_kind == MetricKind.REM_SLEEP
        assert sample.timestamp.tzinfo == timezone.utc
        assert sample.value == 30.0

    def test_parse_sample_rejects_malformed(self):
        with pytest.raises(ValueError):
            parse_sample('{"metric": "HRV"}')
        with pytest.raises(ValueError):
            parse_sample('{"metric": "STEPS", "timestamp": "2025-03-14T05:00:00", "value": 1}')

    def test_validate_args(self, tmp_path):
        parser = create_parser()

        args = parser.parse_args(["replay", "--samples", str(tmp_path / "missing.jsonl"), "--day", "14-03-2025"])
        errors = validate_args(args)

        assert len(errors) == 2

    def test_show_config(self, clean_env, capsys):
        exit_code = main(["show-config", "--timezone", "Asia/Tokyo"])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["timezone"] == "Asia/Tokyo"

    def test_show_config_invalid_timezone(self, clean_env, capsys):
        assert main(["show-config", "--timezone", "Nowhere/Special"]) == 1

    def test_replay(self, clean_env, samples_file, capsys, restore_logging):
        """Test a replay through the CLI without a durable tier."""
        exit_code = main([
            "replay",
            "--samples", str(samples_file),
            "--now", "2025-03-14T12:00:00+00:00",
            "--day", "2025-03-14",
            "--no-durable",
            "--log-level", "WARNING",
            "--log-format", "text",
        ])

        output = capsys.readouterr().out
        assert exit_code == 0
        assert "2025-03-14" in output
        assert "RECOVERY   43/100" in output
