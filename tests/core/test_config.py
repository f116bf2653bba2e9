"""Configuration tests -- EngineConfig defaults, environment overrides, invalid values"""

import pytest
from wisdomos.core.config import EngineConfig, get_db_path, load_engine_config
from wisdomos.core.models import BackoffStrategy, PeriodType


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.auto_spawn_confidence == 0.75
        assert config.area_similarity_threshold == 0.8
        assert config.time_lock_grace_days == 7
        assert config.time_lock_days == 90
        assert config.rollup_debounce_sec == 86400.0
        assert config.rollup_period == PeriodType.MONTH
        assert config.job_backoff == BackoffStrategy.EXPONENTIAL
        assert config.max_cascade_depth == 8
        assert config.max_cascade_steps == 200

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("WISDOMOS_MAX_CONCURRENT_JOBS", "9")
        monkeypatch.setenv("WISDOMOS_JOB_BACKOFF", "linear")
        monkeypatch.setenv("WISDOMOS_ROLLUP_PERIOD", "quarter")
        config = load_engine_config()
        assert config.max_concurrent_jobs == 9
        assert config.job_backoff == BackoffStrategy.LINEAR
        assert config.rollup_period == PeriodType.QUARTER

    def test_invalid_value_keeps_default(self, monkeypatch: pytest.MonkeyPatch):
        """One bad variable only resets its own field"""
        monkeypatch.setenv("WISDOMOS_AUTO_SPAWN_CONFIDENCE", "1.7")
        monkeypatch.setenv("WISDOMOS_TIME_LOCK_DAYS", "30")
        config = load_engine_config()
        assert config.auto_spawn_confidence == 0.75
        assert config.time_lock_days == 30

    def test_empty_value_ignored(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("WISDOMOS_POLL_INTERVAL_S", "")
        assert load_engine_config().poll_interval_s == 1.0


class TestPaths:
    def test_db_path_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path):
        monkeypatch.setenv("WISDOMOS_DB_PATH", str(tmp_path / "x.db"))
        assert get_db_path() == str(tmp_path / "x.db")

    def test_db_path_under_data_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path):
        monkeypatch.delenv("WISDOMOS_DB_PATH", raising=False)
        monkeypatch.setenv("WISDOMOS_DATA_DIR", str(tmp_path))
        assert get_db_path() == str(tmp_path / "sqlite" / "wisdomos.db")
