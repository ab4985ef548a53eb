"""
Loading FallbackKitConfig from layered sources.

Sources are applied in order, later ones winning:

- an optional YAML or JSON file
- ``FALLBACKKIT_*`` environment variables, where ``__`` separates nesting
  levels (``FALLBACKKIT_PROBE__TIMEOUT_S=3`` sets ``probe.timeout_s``)
- an explicit overrides mapping

Environment values are decoded as JSON when they parse as JSON, so lists,
numbers and booleans can be given directly; anything else stays a string.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from ..errors import ConfigurationError
from .models import FallbackKitConfig

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "FALLBACKKIT_"

_YAML_SUFFIXES = {".yaml", ".yml"}


def _parse_document(text: str, suffix: str, source: Path) -> Any:
    if suffix in _YAML_SUFFIXES:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {source}: {e}") from e
    if suffix == ".json":
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {source}: {e}") from e
    raise ConfigurationError(f"Unsupported file format: {suffix or '<none>'}. Use .yaml or .json")


def _read_file(path: str | Path) -> dict[str, Any]:
    """Return the mapping stored in ``path``; an empty file gives ``{}``.

    Raises:
        ConfigurationError: The file is missing, unreadable, malformed or
            does not hold a mapping at the top level.
    """
    source = Path(path)
    if not source.is_file():
        raise ConfigurationError(f"Config file not found: {source}")
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {source}: {e}") from e

    document = _parse_document(text, source.suffix.lower(), source)
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Config file {source} must contain a mapping at top level, "
            f"got {type(document).__name__}"
        )
    return document


def _decode_env_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        pass
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return raw


def _env_entries(env_prefix: str, environ: Mapping[str, str]) -> Iterator[tuple[list[str], Any]]:
    """Yield ``(path, value)`` for each prefixed variable, path as a key list."""
    for name, raw in environ.items():
        if not name.startswith(env_prefix) or len(name) == len(env_prefix):
            continue
        path = [part for part in name[len(env_prefix) :].lower().split("__") if part]
        if path:
            yield path, _decode_env_value(raw)


def _set_path(data: dict[str, Any], path: list[str], value: Any) -> None:
    node = data
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[path[-1]] = value


def _merge_env_overrides(
    data: dict[str, Any],
    env_prefix: str = DEFAULT_ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    for path, value in _env_entries(env_prefix, os.environ if environ is None else environ):
        _set_path(data, path, value)
        _LOGGER.debug(f"Config from environment: {'.'.join(path)} = {value!r}")
    return data


def _merge_overrides(data: dict[str, Any], overrides: Mapping[str, Any] | None) -> dict[str, Any]:
    """Deep-merge ``overrides`` into ``data``; nested mappings merge key by key."""
    for key, value in (overrides or {}).items():
        current = data.get(key)
        if isinstance(value, Mapping):
            base = current if isinstance(current, dict) else {}
            data[key] = _merge_overrides(base, value)
        else:
            data[key] = value
    return data


def load_config(
    path: str | Path | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> FallbackKitConfig:
    """
    Build a validated FallbackKitConfig.

    Args:
        path: Optional YAML (``.yaml``/``.yml``) or JSON (``.json``) file
        env_prefix: Prefix of environment variables to apply
        cli_overrides: Mapping applied last, e.g. from command-line flags

    Returns:
        The validated configuration

    Raises:
        ConfigurationError: The file cannot be read or parsed
        pydantic.ValidationError: A value is invalid or a key is unknown
    """
    data: dict[str, Any] = _read_file(path) if path else {}
    if path:
        _LOGGER.info(f"Loaded FallbackKit config file {path}")

    _merge_env_overrides(data, env_prefix)
    _merge_overrides(data, cli_overrides)

    config = FallbackKitConfig.model_validate(data)
    _LOGGER.debug(f"FallbackKit config validated (hash {config.config_hash()[:8]})")
    return config


__all__ = ["DEFAULT_ENV_PREFIX", "load_config"]
