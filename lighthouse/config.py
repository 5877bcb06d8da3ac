"""
Centralized configuration for Lighthouse.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from lighthouse.config import get_config
    cfg = get_config()
    print(cfg.data_dir)              # "~/lighthouse/Data" or $LIGHTHOUSE_DATA_DIR
    print(cfg.matching.ratio)        # 0.75
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class MatchingSettings:
    """Parameters of description extraction and similarity scoring."""

    n_features: int = 500
    min_keypoints: int = 20
    histogram_bins: int = 8  # per HSV channel
    ratio: float = 0.75  # Lowe's ratio test
    feature_weight: float = 0.7  # remainder goes to histogram correlation
    min_score: float = 0.0
    match_workers: int = 4
    keep_source_image: bool = False

    def __post_init__(self) -> None:
        if not 0.0 < self.ratio <= 1.0:
            raise ValueError(f"ratio must be in (0, 1], got {self.ratio}")
        if not 0.0 <= self.feature_weight <= 1.0:
            raise ValueError(f"feature_weight must be in [0, 1], got {self.feature_weight}")
        if self.match_workers < 1:
            raise ValueError(f"match_workers must be >= 1, got {self.match_workers}")


@dataclass(frozen=True)
class CaptureSettings:
    """Camera polling parameters.

    ``poll_interval`` bounds how long a preempted capture keeps running: lower
    values cancel faster at the cost of more wakeups.
    """

    source: str = "0"
    poll_interval: float = 0.05
    warmup_frames: int = 5
    min_sharpness: float = 50.0
    record_attempts: int = 100
    identify_attempts: int = 60

    @property
    def device(self) -> int | str:
        """Return an int for camera indexes, the raw string for URLs/files."""
        return int(self.source) if self.source.isdigit() else self.source


@dataclass(frozen=True)
class Config:
    """Top-level Lighthouse configuration."""

    data_dir: Path = field(default_factory=lambda: Path.home() / "lighthouse" / "Data")
    matching: MatchingSettings = field(default_factory=MatchingSettings)
    capture: CaptureSettings = field(default_factory=CaptureSettings)

    health_port: int = 8610
    webhook_url: str = ""
    log_level: str = "INFO"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    workspace = Path(os.environ.get("LIGHTHOUSE_WORKSPACE", Path.home() / "lighthouse"))
    data_dir = Path(os.environ.get("LIGHTHOUSE_DATA_DIR", workspace / "Data"))

    matching = MatchingSettings(
        n_features=int(os.environ.get("LIGHTHOUSE_N_FEATURES", "500")),
        min_keypoints=int(os.environ.get("LIGHTHOUSE_MIN_KEYPOINTS", "20")),
        histogram_bins=int(os.environ.get("LIGHTHOUSE_HISTOGRAM_BINS", "8")),
        ratio=float(os.environ.get("LIGHTHOUSE_MATCH_RATIO", "0.75")),
        feature_weight=float(os.environ.get("LIGHTHOUSE_FEATURE_WEIGHT", "0.7")),
        min_score=float(os.environ.get("LIGHTHOUSE_MIN_SCORE", "0.0")),
        match_workers=int(os.environ.get("LIGHTHOUSE_MATCH_WORKERS", "4")),
        keep_source_image=_env_bool("LIGHTHOUSE_KEEP_SOURCE_IMAGE", False),
    )

    capture = CaptureSettings(
        source=os.environ.get("LIGHTHOUSE_CAMERA", "0"),
        poll_interval=float(os.environ.get("LIGHTHOUSE_POLL_INTERVAL", "0.05")),
        warmup_frames=int(os.environ.get("LIGHTHOUSE_WARMUP_FRAMES", "5")),
        min_sharpness=float(os.environ.get("LIGHTHOUSE_MIN_SHARPNESS", "50.0")),
        record_attempts=int(os.environ.get("LIGHTHOUSE_RECORD_ATTEMPTS", "100")),
        identify_attempts=int(os.environ.get("LIGHTHOUSE_IDENTIFY_ATTEMPTS", "60")),
    )

    return Config(
        data_dir=data_dir,
        matching=matching,
        capture=capture,
        health_port=int(os.environ.get("LIGHTHOUSE_HEALTH_PORT", "8610")),
        webhook_url=os.environ.get("LIGHTHOUSE_WEBHOOK_URL", ""),
        log_level=os.environ.get("LIGHTHOUSE_LOG_LEVEL", "INFO"),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
