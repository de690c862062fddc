"""Configuration management for the portfolio engine."""

from .models import (
    EngineConfig,
    ClassificationConfig,
    DeviationConfig,
    RebalancingConfig,
    CostModelConfig,
    TaxConfig,
    PatternDetectionConfig,
    LoggingConfig,
)
from .loader import load_config, get_config, reset_config

__all__ = [
    "EngineConfig",
    "ClassificationConfig",
    "DeviationConfig",
    "RebalancingConfig",
    "CostModelConfig",
    "TaxConfig",
    "PatternDetectionConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "reset_config",
]
