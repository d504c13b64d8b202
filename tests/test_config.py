# ABOUTME: Tests YAML loading of the analytics engine configuration.
# ABOUTME: Unknown keys and leaderboard weights that do not sum to one are rejected.

from pathlib import Path

import pytest

from src.common.config import EngineConfig, engine_config_from_dict, load_engine_config
from src.common.errors import InvalidInputError

REPO_CONFIG = Path(__file__).resolve().parents[1] / "configs" / "analytics.yaml"


def test_defaults_without_file():
    config = load_engine_config()

    assert config == EngineConfig()
    assert config.confusion.window_seconds == 10
    assert config.dropout.regression_degree == 2
    assert config.leaderboard.weights == {"revenue": 0.3, "rating": 0.2, "views": 0.2, "enrollments": 0.3}


def test_shipped_config_matches_defaults():
    assert load_engine_config(REPO_CONFIG) == EngineConfig()


def test_partial_override(tmp_path):
    path = tmp_path / "analytics.yaml"
    path.write_text("dropout:\n  smoothing_window: 5\nreporting:\n  momentum_days: 7\n")

    config = load_engine_config(path)

    assert config.dropout.smoothing_window == 5
    assert config.dropout.high_risk_threshold == 70
    assert config.reporting.momentum_days == 7


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_engine_config(path) == EngineConfig()


@pytest.mark.parametrize(
    "raw",
    [
        {"scoring": {}},
        {"dropout": {"polynomial_degree": 3}},
        {"leaderboard": {"revenue_weight": 0.5}},
        {"dropout": {"smoothing_window": 0}},
        {"confusion": {"window_seconds": -1}},
    ],
)
def test_invalid_config_rejected(raw):
    with pytest.raises(InvalidInputError):
        engine_config_from_dict(raw)
