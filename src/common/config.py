# ABOUTME: Loads the tunable analytics engine configuration from YAML.
# ABOUTME: Frozen dataclasses hold the defaults used when no config file is given.

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .errors import InvalidInputError


@dataclass(frozen=True)
class ConfusionConfig:
    """Interaction bucketing and the ad hoc "high confusion" cut-off."""

    window_seconds: float = 10.0
    high_confusion_threshold: int = 70
    course_listing_limit: int = 20


@dataclass(frozen=True)
class DropoutConfig:
    smoothing_window: int = 3
    regression_degree: int = 2
    min_regression_points: int = 3
    default_threshold: float = 50.0
    high_risk_threshold: float = 70.0


@dataclass(frozen=True)
class LeaderboardConfig:
    revenue_weight: float = 0.3
    rating_weight: float = 0.2
    views_weight: float = 0.2
    enrollments_weight: float = 0.3
    default_limit: int = 10

    @property
    def weights(self) -> Dict[str, float]:
        return {
            "revenue": self.revenue_weight,
            "rating": self.rating_weight,
            "views": self.views_weight,
            "enrollments": self.enrollments_weight,
        }


@dataclass(frozen=True)
class ReportingConfig:
    """Windows used by summaries and trend queries."""

    momentum_days: int = 30
    productivity_weeks: int = 12
    productivity_history_limit: int = 12
    confusion_trend_days: int = 30


@dataclass(frozen=True)
class EngineConfig:
    confusion: ConfusionConfig = field(default_factory=ConfusionConfig)
    dropout: DropoutConfig = field(default_factory=DropoutConfig)
    leaderboard: LeaderboardConfig = field(default_factory=LeaderboardConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)


_SECTIONS = {
    "confusion": ConfusionConfig,
    "dropout": DropoutConfig,
    "leaderboard": LeaderboardConfig,
    "reporting": ReportingConfig,
}


def _build_section(name: str, cls, raw: Optional[Mapping[str, Any]]):
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise InvalidInputError(f"Config section '{name}' must be a mapping")
    allowed = {f.name for f in fields(cls)}
    unknown = set(raw) - allowed
    if unknown:
        raise InvalidInputError(f"Unknown keys in '{name}' config: {sorted(unknown)}")
    return cls(**raw)


def engine_config_from_dict(cfg: Optional[Mapping[str, Any]]) -> EngineConfig:
    cfg = cfg or {}
    if not isinstance(cfg, Mapping):
        raise InvalidInputError("Engine config must be a mapping of sections")
    unknown = set(cfg) - set(_SECTIONS)
    if unknown:
        raise InvalidInputError(f"Unknown config sections: {sorted(unknown)}")
    sections = {name: _build_section(name, cls, cfg.get(name)) for name, cls in _SECTIONS.items()}
    config = EngineConfig(**sections)

    total = sum(config.leaderboard.weights.values())
    if abs(total - 1.0) > 1e-9:
        raise InvalidInputError(f"Leaderboard weights must sum to 1.0, got {total:.4f}")
    if config.dropout.smoothing_window < 1:
        raise InvalidInputError("dropout.smoothing_window must be >= 1")
    if config.confusion.window_seconds < 0:
        raise InvalidInputError("confusion.window_seconds must be >= 0")
    return config


def load_engine_config(config_path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """Programmatic loader mirrored by the CLI ``--config`` option."""

    if config_path is None:
        return EngineConfig()
    with open(config_path) as f:
        cfg = yaml.safe_load(f)
    return engine_config_from_dict(cfg)
