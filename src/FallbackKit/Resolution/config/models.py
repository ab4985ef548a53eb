"""
Pydantic v2 Configuration Models for fallback resolution

Provides strict, typed configuration for the ambient parts of the engine:
- Default loader behaviour (HTTP method, timeouts, accepted content types)
- Logging (level, optional JSON log file)
- Attempt telemetry (optional JSONL sink)
- Top-level FallbackKitConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and explicit overrides follow: file < env < overrides precedence.
"""

from __future__ import annotations

import hashlib
import json
from typing import ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# Loader
# ============================================================================


class ProbeConfig(BaseModel):
    """Configuration for the default HTTP probe loader."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    method: Literal["HEAD", "GET"] = Field(default="HEAD", description="HTTP method used to probe")
    timeout_s: float = Field(default=10.0, description="Per-probe timeout in seconds")
    follow_redirects: bool = Field(default=True, description="Follow HTTP redirects")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    user_agent: str = Field(default="FallbackKit/Resolution", description="User-Agent string")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    accept_content_types: List[str] = Field(
        default_factory=lambda: ["image/"],
        description="Accepted Content-Type prefixes (empty accepts anything)",
    )
    get_on_method_not_allowed: bool = Field(
        default=True,
        description="Re-issue a HEAD answered with 405/501 as GET",
    )

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @field_validator("timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_s must be > 0")
        return v

    @field_validator("accept_content_types")
    @classmethod
    def normalize_content_types(cls, v: List[str]) -> List[str]:
        return [item.strip().lower() for item in v if item and item.strip()]


# ============================================================================
# Ambient stack
# ============================================================================


class LoggingConfig(BaseModel):
    """Configuration for FallbackKit logging."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", description="Log level name")
    json_path: Optional[str] = Field(default=None, description="Optional JSON-lines log file")
    max_log_size_mb: float = Field(default=5.0, description="Rotate the JSON log at this size")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        normalized = v.upper()
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        if normalized not in valid:
            raise ValueError(f"Invalid level: {v!r}. Must be in {sorted(valid)}")
        return normalized

    @field_validator("max_log_size_mb")
    @classmethod
    def validate_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("max_log_size_mb must be > 0")
        return v


class TelemetryConfig(BaseModel):
    """Configuration for per-attempt telemetry."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    jsonl_path: Optional[str] = Field(default=None, description="Attempt events JSONL path")


# ============================================================================
# Top-level
# ============================================================================


class FallbackKitConfig(BaseModel):
    """Top-level configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()


__all__ = [
    "FallbackKitConfig",
    "LoggingConfig",
    "ProbeConfig",
    "TelemetryConfig",
]
