"""Shared fixtures for fallback resolution tests."""

from __future__ import annotations

import logging
import os
from typing import Iterator

import pytest

from FallbackKit.Resolution import ResolutionCache, reset_defaults
from FallbackKit.Resolution.config import DEFAULT_ENV_PREFIX
from FallbackKit.Resolution.logging_utils import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def isolated_defaults(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset process-wide wiring and strip FALLBACKKIT_* variables."""
    for name in list(os.environ):
        if name.startswith(DEFAULT_ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)
    reset_defaults()
    yield
    reset_defaults()


@pytest.fixture
def cache() -> ResolutionCache:
    return ResolutionCache()


@pytest.fixture
def fallback_logger() -> Iterator[logging.Logger]:
    """The package root logger; handlers installed by setup_logging are removed afterwards."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if getattr(handler, "_fallbackkit_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
