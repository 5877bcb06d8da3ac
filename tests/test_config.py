"""Tests for lighthouse.config — centralized configuration."""

from pathlib import Path

import pytest

from lighthouse.config import (
    CaptureSettings,
    Config,
    MatchingSettings,
    get_config,
    reset_config,
)


class TestMatchingSettings:
    def test_defaults(self):
        s = MatchingSettings()
        assert s.n_features == 500
        assert s.min_keypoints == 20
        assert s.histogram_bins == 8
        assert s.ratio == 0.75
        assert s.feature_weight == 0.7
        assert s.match_workers == 4
        assert s.keep_source_image is False

    def test_frozen(self):
        s = MatchingSettings()
        with pytest.raises(AttributeError):
            s.ratio = 0.5  # type: ignore[misc]

    @pytest.mark.parametrize("ratio", [0.0, -0.1, 1.5])
    def test_invalid_ratio(self, ratio):
        with pytest.raises(ValueError, match="ratio"):
            MatchingSettings(ratio=ratio)

    def test_invalid_feature_weight(self):
        with pytest.raises(ValueError, match="feature_weight"):
            MatchingSettings(feature_weight=1.2)

    def test_invalid_workers(self):
        with pytest.raises(ValueError, match="match_workers"):
            MatchingSettings(match_workers=0)


class TestCaptureSettings:
    def test_defaults(self):
        s = CaptureSettings()
        assert s.source == "0"
        assert s.device == 0
        assert s.poll_interval == 0.05


class TestConfig:
    def test_defaults(self):
        cfg = Config()
        assert cfg.data_dir == Path.home() / "lighthouse" / "Data"
        assert cfg.health_port == 8610
        assert cfg.webhook_url == ""
        assert cfg.log_level == "INFO"

    def test_singleton(self):
        assert get_config() is get_config()

    def test_reset(self):
        first = get_config()
        reset_config()
        assert get_config() is not first


class TestLoadFromEnv:
    def test_workspace_sets_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LIGHTHOUSE_WORKSPACE", str(tmp_path))
        assert get_config().data_dir == tmp_path / "Data"

    def test_data_dir_overrides_workspace(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LIGHTHOUSE_WORKSPACE", str(tmp_path / "ws"))
        monkeypatch.setenv("LIGHTHOUSE_DATA_DIR", str(tmp_path / "elsewhere"))
        assert get_config().data_dir == tmp_path / "elsewhere"

    def test_matching_overrides(self, monkeypatch):
        monkeypatch.setenv("LIGHTHOUSE_N_FEATURES", "1000")
        monkeypatch.setenv("LIGHTHOUSE_MATCH_RATIO", "0.8")
        monkeypatch.setenv("LIGHTHOUSE_MIN_SCORE", "0.25")
        monkeypatch.setenv("LIGHTHOUSE_MATCH_WORKERS", "2")
        monkeypatch.setenv("LIGHTHOUSE_KEEP_SOURCE_IMAGE", "yes")
        m = get_config().matching
        assert m.n_features == 1000
        assert m.ratio == 0.8
        assert m.min_score == 0.25
        assert m.match_workers == 2
        assert m.keep_source_image is True

    def test_capture_overrides(self, monkeypatch):
        monkeypatch.setenv("LIGHTHOUSE_CAMERA", "rtsp://cam/stream")
        monkeypatch.setenv("LIGHTHOUSE_POLL_INTERVAL", "0.01")
        monkeypatch.setenv("LIGHTHOUSE_IDENTIFY_ATTEMPTS", "10")
        c = get_config().capture
        assert c.device == "rtsp://cam/stream"
        assert c.poll_interval == 0.01
        assert c.identify_attempts == 10

    def test_service_overrides(self, monkeypatch):
        monkeypatch.setenv("LIGHTHOUSE_HEALTH_PORT", "9000")
        monkeypatch.setenv("LIGHTHOUSE_WEBHOOK_URL", "http://hook")
        monkeypatch.setenv("LIGHTHOUSE_LOG_LEVEL", "DEBUG")
        cfg = get_config()
        assert cfg.health_port == 9000
        assert cfg.webhook_url == "http://hook"
        assert cfg.log_level == "DEBUG"

    @pytest.mark.parametrize("value,expected", [("0", False), ("false", False), ("ON", True)])
    def test_bool_parsing(self, monkeypatch, value, expected):
        monkeypatch.setenv("LIGHTHOUSE_KEEP_SOURCE_IMAGE", value)
        assert get_config().matching.keep_source_image is expected

    def test_invalid_value_rejected(self, monkeypatch):
        monkeypatch.setenv("LIGHTHOUSE_MATCH_RATIO", "2.0")
        with pytest.raises(ValueError):
            get_config()
