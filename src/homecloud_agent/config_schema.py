"""Unified configuration schema for homecloud_agent.

Defines Pydantic models for the unified config structure with dedicated
sections for the watched directory, the engine and logging.

Usage:
    from homecloud_agent.config_schema import (
        UnifiedConfig, build_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=unified.fallbacks())
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from .sync.models import BackpressurePolicy, ScanNesting
from .sync.scanner import DEFAULT_IGNORE_PATTERNS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class AgentConfig(BaseModel):
    """What is watched and how it is enumerated.

    ``watch_dir`` is optional to support zero-config: the env var, CLI arg or
    the built-in ``~/homecloud`` default can supply it instead.
    """

    watch_dir: str | None = Field(
        default=None, description="Directory to watch"
    )
    recursive_watch: bool = Field(
        default=True,
        description="Register subdirectories with the OS watcher",
    )
    ignore_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS),
        description="Glob patterns matched against entry names",
    )
    compute_checksums: bool = Field(
        default=False,
        description="Compute MD5 checksums during the initial scan",
    )
    scan_nesting: ScanNesting = Field(
        default=ScanNesting.TREE,
        description="Initial scan nesting policy (tree or legacy)",
    )

    model_config = {"frozen": True}


class EngineConfig(BaseModel):
    """Timing, buffering and retry settings of the sync engine."""

    sync_latency: float = Field(
        default=2.0,
        ge=0,
        le=3600,
        description="Simulated upload latency in seconds",
    )
    status_capacity: int = Field(
        default=100,
        ge=1,
        le=100000,
        description="Status bus capacity (1-100000)",
    )
    event_capacity: int = Field(
        default=1000,
        ge=1,
        le=1000000,
        description="Event queue capacity (1-1000000)",
    )
    backpressure: BackpressurePolicy = Field(
        default=BackpressurePolicy.BLOCK,
        description="Full status bus behaviour (block or drop_oldest)",
    )
    max_retries: int = Field(
        default=3, ge=0, le=100, description="Upload retries (0-100)"
    )
    retry_backoff: float = Field(
        default=0.5,
        ge=0,
        le=600,
        description="Delay before the first upload retry in seconds",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    agent: AgentConfig = Field(default_factory=AgentConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def fallbacks(self) -> dict:
        """Flatten the agent and engine sections for ``load_config()``.

        ``None`` values are left out so they do not shadow defaults.
        """
        merged = {
            **self.agent.model_dump(mode="json"),
            **self.engine.model_dump(mode="json"),
        }
        return {k: v for k, v in merged.items() if v is not None}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)

