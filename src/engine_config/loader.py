"""YAML loading for EngineConfig with a process-wide current config."""

import logging
import yaml
from pathlib import Path
from typing import Optional

from .models import EngineConfig

logger = logging.getLogger(__name__)

_config: Optional[EngineConfig] = None


def load_config(config_path: str | Path) -> EngineConfig:
    """
    Read, validate and install the configuration at `config_path`.
    An empty file yields the defaults. Raises FileNotFoundError for a missing
    file and ValueError for anything that does not validate.
    """
    global _config

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict):
        raise ValueError(f"Invalid configuration: top level of {config_path} must be a mapping")

    try:
        _config = EngineConfig(**raw_config)
    except Exception as e:
        logger.error(f"Configuration validation failed for {config_path}: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    logger.info(
        f"Loaded {config_path}: strategy={_config.rebalancing.strategy}, "
        f"min_trade_size={_config.rebalancing.min_trade_size:,.2f}, "
        f"target tolerance={_config.deviation.target_sum_tolerance_percent}%, "
        f"tax short/long={_config.tax.short_term_rate:.2%}/{_config.tax.long_term_rate:.2%}"
    )
    return _config


def get_config() -> EngineConfig:
    """The loaded configuration, or defaults when nothing was loaded."""
    return _config if _config is not None else EngineConfig()


def reset_config() -> None:
    global _config
    _config = None
