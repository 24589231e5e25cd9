"""Tests for the unified config schema: section models, build_config() and
the flattened fallbacks handed to load_config().
"""

import pytest
from pydantic import ValidationError

from homecloud_agent.config_schema import (
    AgentConfig,
    EngineConfig,
    LoggingConfig,
    UnifiedConfig,
    build_config,
)
from homecloud_agent.sync.models import BackpressurePolicy, ScanNesting

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    def test_empty_config_has_defaults(self):
        config = UnifiedConfig()
        assert config.agent.watch_dir is None
        assert config.agent.scan_nesting is ScanNesting.TREE
        assert config.agent.ignore_patterns == [
            ".DS_Store",
            "Thumbs.db",
            "*.tmp",
        ]
        assert config.engine.sync_latency == 2.0
        assert config.engine.status_capacity == 100
        assert config.engine.backpressure is BackpressurePolicy.BLOCK
        assert config.logging.level == "INFO"

    def test_full_config(self):
        config = UnifiedConfig(
            agent=AgentConfig(
                watch_dir="/srv/share",
                recursive_watch=False,
                scan_nesting="legacy",
            ),
            engine=EngineConfig(status_capacity=10, backpressure="drop_oldest"),
            logging=LoggingConfig(level="DEBUG", file="/tmp/agent.log"),
        )
        assert config.agent.watch_dir == "/srv/share"
        assert config.agent.scan_nesting is ScanNesting.LEGACY
        assert config.engine.backpressure is BackpressurePolicy.DROP_OLDEST
        assert config.logging.file == "/tmp/agent.log"

    def test_unknown_sections_ignored(self):
        config = UnifiedConfig(
            **{"agent": {"watch_dir": "/w"}, "server": {"url": "x"}}
        )
        assert config.agent.watch_dir == "/w"
        assert not hasattr(config, "server")

    def test_frozen_model_prevents_mutation(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.agent = AgentConfig(watch_dir="/elsewhere")  # type: ignore[misc]


class TestEngineConfigBounds:
    @pytest.mark.parametrize(
        "field, value",
        [
            ("sync_latency", -0.1),
            ("status_capacity", 0),
            ("event_capacity", 0),
            ("max_retries", 101),
            ("retry_backoff", -1),
        ],
    )
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            EngineConfig(**{field: value})

    def test_unknown_backpressure_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(backpressure="drop_newest")


# ---------------------------------------------------------------------------
# build_config() / fallbacks()
# ---------------------------------------------------------------------------


class TestBuildConfig:
    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config({"engine": {"max_retries": 5}})
        assert config.engine.max_retries == 5
        assert config.agent == AgentConfig()

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"agent": {"scan_nesting": "sideways"}})


class TestFallbacks:
    def test_flattens_agent_and_engine(self):
        fb = build_config(
            {
                "agent": {"watch_dir": "/w", "scan_nesting": "legacy"},
                "engine": {"sync_latency": 0.5},
            }
        ).fallbacks()

        assert fb["watch_dir"] == "/w"
        assert fb["scan_nesting"] == "legacy"
        assert fb["sync_latency"] == 0.5
        assert fb["backpressure"] == "block"
        assert "level" not in fb

    def test_none_values_dropped(self):
        fb = UnifiedConfig().fallbacks()
        assert "watch_dir" not in fb
