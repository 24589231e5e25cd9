"""Flat agent configuration.

Reads agent settings from CLI args, environment variables, .env files, and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    HOMECLOUD_WATCH_DIR: Directory to watch (optional, default: ~/homecloud)
    HOMECLOUD_SYNC_LATENCY: Simulated upload latency in seconds (optional, default: 2.0)
    HOMECLOUD_STATUS_CAPACITY: Status bus capacity (optional, default: 100)
    HOMECLOUD_SCAN_NESTING: Initial scan nesting, tree or legacy (optional, default: tree)
    HOMECLOUD_COMPUTE_CHECKSUMS: Checksum files during the scan (optional, default: false)
    HOMECLOUD_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .sync.models import BackpressurePolicy, ScanNesting
from .sync.scanner import DEFAULT_IGNORE_PATTERNS

logger = logging.getLogger(__name__)


def default_watch_dir() -> str:
    """Return the built-in watch directory, ``~/homecloud``."""
    return str(Path.home() / "homecloud")


@dataclass
class Config:
    watch_dir: str
    recursive_watch: bool = True
    ignore_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS)
    )
    compute_checksums: bool = False
    scan_nesting: ScanNesting = ScanNesting.TREE
    sync_latency: float = 2.0
    status_capacity: int = 100
    event_capacity: int = 1000
    backpressure: BackpressurePolicy = BackpressurePolicy.BLOCK
    max_retries: int = 3
    retry_backoff: float = 0.5
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Normalizes ``watch_dir`` to an absolute path and the enum fields to
    their enum types.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the watch directory or a numeric setting is invalid.
    """
    if not config.watch_dir or not config.watch_dir.strip():
        raise ValueError(
            "Watch directory cannot be empty. Set HOMECLOUD_WATCH_DIR "
            "environment variable."
        )
    config.watch_dir = os.path.abspath(
        os.path.expanduser(config.watch_dir.strip())
    )
    if os.path.exists(config.watch_dir) and not os.path.isdir(
        config.watch_dir
    ):
        raise ValueError(
            f"Invalid watch directory '{config.watch_dir}': not a directory"
        )

    try:
        config.scan_nesting = ScanNesting(config.scan_nesting)
    except ValueError:
        raise ValueError(
            f"Invalid scan nesting '{config.scan_nesting}': must be 'tree' or 'legacy'"
        ) from None
    try:
        config.backpressure = BackpressurePolicy(config.backpressure)
    except ValueError:
        raise ValueError(
            f"Invalid backpressure policy '{config.backpressure}': "
            "must be 'block' or 'drop_oldest'"
        ) from None

    if config.sync_latency < 0:
        raise ValueError(
            f"Invalid sync latency {config.sync_latency}: must be >= 0"
        )
    if config.status_capacity < 1:
        raise ValueError(
            f"Invalid status capacity {config.status_capacity}: must be >= 1"
        )
    if config.event_capacity < 1:
        raise ValueError(
            f"Invalid event capacity {config.event_capacity}: must be >= 1"
        )
    if config.max_retries < 0:
        raise ValueError(
            f"Invalid max retries {config.max_retries}: must be >= 0"
        )
    if config.retry_backoff < 0:
        raise ValueError(
            f"Invalid retry backoff {config.retry_backoff}: must be >= 0"
        )

    if config.scan_nesting is ScanNesting.LEGACY:
        logger.warning(
            "Legacy scan nesting enabled: files below subdirectories are "
            "not tracked until they change."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, cast: type, minimum: float) -> float | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number >= {minimum}"
        ) from None
    if value < minimum:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number >= {minimum}"
        )
    return value


def load_config(
    watch_dir: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        watch_dir: Override watch directory (takes precedence over env var and YAML).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened ``agent`` and ``engine`` sections of the YAML
            config (see ``UnifiedConfig.fallbacks()``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is invalid after checking all sources.
    """
    fb = yaml_fallbacks or {}

    final_watch_dir = (
        watch_dir
        or os.getenv("HOMECLOUD_WATCH_DIR")
        or fb.get("watch_dir")
        or default_watch_dir()
    )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("HOMECLOUD_DEBUG")
        final_debug = env_debug if env_debug is not None else False

    env_checksums = _get_bool_env("HOMECLOUD_COMPUTE_CHECKSUMS")
    final_checksums = (
        env_checksums
        if env_checksums is not None
        else bool(fb.get("compute_checksums", False))
    )

    env_latency = _get_number_env("HOMECLOUD_SYNC_LATENCY", float, 0)
    final_latency = (
        env_latency
        if env_latency is not None
        else float(fb.get("sync_latency", 2.0))
    )

    env_capacity = _get_number_env("HOMECLOUD_STATUS_CAPACITY", int, 1)
    final_capacity = (
        int(env_capacity)
        if env_capacity is not None
        else int(fb.get("status_capacity", 100))
    )

    final_nesting = os.getenv("HOMECLOUD_SCAN_NESTING") or fb.get(
        "scan_nesting", ScanNesting.TREE.value
    )

    config = Config(
        watch_dir=final_watch_dir,
        recursive_watch=bool(fb.get("recursive_watch", True)),
        ignore_patterns=list(
            fb.get("ignore_patterns", DEFAULT_IGNORE_PATTERNS)
        ),
        compute_checksums=final_checksums,
        scan_nesting=final_nesting,
        sync_latency=final_latency,
        status_capacity=final_capacity,
        event_capacity=int(fb.get("event_capacity", 1000)),
        backpressure=fb.get("backpressure", BackpressurePolicy.BLOCK.value),
        max_retries=int(fb.get("max_retries", 3)),
        retry_backoff=float(fb.get("retry_backoff", 0.5)),
        debug=final_debug,
    )

    validate_config(config)

    return config
