"""
YAML config files for homecloud-agent.

Config files are optional.  When present they are found by convention,
may pull in other files with ``!include`` and may reference environment
variables as ``${VAR}`` or ``${VAR:-default}``.  ``load_hierarchical_config``
returns the merged raw mapping; ``config_schema.build_config`` validates it.

``homecloud-agent --init-config`` writes a commented starter file through
``ensure_config``.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "HOMECLOUD_CONFIG"
PROJECT_CONFIG_DIR = ".homecloud"
CONFIG_NAMES = ("config.yml", "config.yaml")

_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when no
    default is given.  An unterminated ``${`` is kept as is.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m.group(1)) or m.group(2) or "", value
    )


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include``.

    Registered on this subclass only, so plain ``yaml.safe_load`` keeps
    rejecting the tag.  ``chain`` lists the files being loaded, outermost
    first.
    """

    def __init__(self, stream: Any, chain: tuple[Path, ...] = ()) -> None:
        super().__init__(stream)
        self.chain = chain

    def include(self, node: yaml.ScalarNode) -> Any:
        including = self.chain[-1]
        target = Path(self.construct_scalar(node)).expanduser()
        if not target.is_absolute():
            target = including.parent / target
        target = target.resolve()

        if target in self.chain:
            cycle = " -> ".join(str(p) for p in (*self.chain, target))
            raise ValueError(f"Circular include detected: {cycle}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} (referenced from {including})"
            )
        return _load_yaml_with_includes(target, _chain=self.chain)


ConfigLoader.add_constructor("!include", ConfigLoader.include)


def _load_yaml_with_includes(
    path: Path, *, _chain: tuple[Path, ...] = ()
) -> Any:
    path = Path(path).resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh, chain=(*_chain, path))
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def _candidate_paths() -> list[Path]:
    candidates = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.extend(project / name for name in CONFIG_NAMES)
    candidates.append(Path.home() / ".config" / "homecloud" / CONFIG_NAMES[0])
    return candidates


def discover_config_files() -> list[Path]:
    """Return the config files on disk, highest precedence first.

    Precedence: the ``HOMECLOUD_CONFIG`` path, then
    ``./.homecloud/config.yml``, ``./.homecloud/config.yaml`` and finally
    ``~/.config/homecloud/config.yml``.
    """
    return [path for path in _candidate_paths() if path.exists()]


_STARTER_CONFIG = """\
# homecloud-agent configuration
#
# Every setting is optional. Environment variables take precedence:
#   HOMECLOUD_WATCH_DIR, HOMECLOUD_SYNC_LATENCY, HOMECLOUD_STATUS_CAPACITY,
#   HOMECLOUD_SCAN_NESTING, HOMECLOUD_COMPUTE_CHECKSUMS
#
# agent:
#   watch_dir: ~/homecloud
#   recursive_watch: true
#   ignore_patterns: [".DS_Store", "Thumbs.db", "*.tmp"]
#   compute_checksums: false
#   scan_nesting: tree          # or: legacy
#
# engine:
#   sync_latency: 2.0
#   status_capacity: 100
#   event_capacity: 1000
#   backpressure: block         # or: drop_oldest
#   max_retries: 3
#   retry_backoff: 0.5
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the file that is, or would be, read first.

    Falls back to ``./.homecloud/config.yml`` when no file exists yet.
    Nothing is created.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / CONFIG_NAMES[0]


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a starter file if there is none.

    Args:
        target: Where to write the starter file.  Defaults to
            ``resolve_config_path()``.  Ignored when a config file already
            exists.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one raw mapping.

    Files are applied from lowest to highest precedence and a top-level
    section from a later file replaces the earlier one wholesale.  Env
    references are expanded after the merge.  Zero files yield ``{}``.

    Raises:
        yaml.YAMLError: If a file is not valid YAML.
        OSError: If a file or one of its includes cannot be read.
        ValueError: On circular includes.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except (OSError, ValueError, yaml.YAMLError):
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )
    return _interpolate_recursive(merged)
