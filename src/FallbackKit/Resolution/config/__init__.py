"""
Resolution Configuration Package

Public API for loading and validating FallbackKit configuration.

Example:
    from FallbackKit.Resolution.config import load_config

    # Load from file with env/explicit overrides
    config = load_config(
        path="fallbackkit.yaml",
        cli_overrides={"probe": {"timeout_s": 3}},
    )

    # Get config hash for reproducibility
    config_id = config.config_hash()
"""

from .loader import DEFAULT_ENV_PREFIX, load_config
from .models import (
    FallbackKitConfig,
    LoggingConfig,
    ProbeConfig,
    TelemetryConfig,
)

__all__ = [
    # Models
    "FallbackKitConfig",
    "LoggingConfig",
    "ProbeConfig",
    "TelemetryConfig",
    # Loading
    "DEFAULT_ENV_PREFIX",
    "load_config",
]
