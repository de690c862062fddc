"""Tests for YAML configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from engine_config import EngineConfig, get_config, load_config, reset_config
from portfolio_engine import DeviationAnalyzer


def test_defaults_without_a_file() -> None:
    config = get_config()

    assert config == EngineConfig()
    assert config.deviation.target_sum_tolerance_percent == 0.5
    assert config.rebalancing.strategy == "strategic"
    assert config.tax.long_term_holding_days == 1095
    assert "RUB" in config.classification.known_currencies


def test_load_config_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text(
        "\n".join(
            [
                "deviation:",
                "  target_sum_tolerance_percent: 1.5",
                "rebalancing:",
                "  strategy: tax_aware",
                "  min_trade_size: 250",
                "classification:",
                "  known_currencies: [usd, eur]",
                "logging:",
                "  format: json",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.deviation.target_sum_tolerance_percent == 1.5
    assert config.rebalancing.strategy == "tax_aware"
    assert config.rebalancing.min_trade_size == 250
    assert config.classification.known_currencies == ["USD", "EUR"]
    assert config.logging.format == "json"
    assert get_config() is config
    assert DeviationAnalyzer().config is config

    reset_config()
    assert get_config() == EngineConfig()


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == EngineConfig()


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "costs:\n  commission_rate: 0.5\n",
        "rebalancing:\n  strategy: yolo\n",
        "classification:\n  known_currencies: [DOLLARS]\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_config_raises_value_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_failed_reload_keeps_loaded_config(tmp_path: Path) -> None:
    good = tmp_path / "good.yaml"
    good.write_text("rebalancing:\n  min_trade_size: 250\n", encoding="utf-8")
    bad = tmp_path / "bad.yaml"
    bad.write_text("rebalancing:\n  strategy: yolo\n", encoding="utf-8")

    load_config(good)
    with pytest.raises(ValueError):
        load_config(bad)

    assert get_config().rebalancing.min_trade_size == 250
