"""Settings loader for impact selection using TOML files.

Two files are merged, later wins:

* ``~/.impact-selector/config.toml`` (relocatable with ``IMPACT_SELECTOR_HOME``)
* ``<repo>/.impact-selector.toml``

Both hold a ``[selector]`` table whose keys match :class:`SelectorSettings`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import toml

from . import config

logger = logging.getLogger(__name__)

_TUPLE_KEYS = {"test_suffixes", "source_extensions", "test_functions", "vendor_dirs", "runner_command"}


@dataclass(frozen=True)
class SelectorSettings:
    test_suffixes: Tuple[str, ...] = config.DEFAULT_TEST_SUFFIXES
    source_extensions: Tuple[str, ...] = config.DEFAULT_SOURCE_EXTENSIONS
    test_functions: Tuple[str, ...] = config.DEFAULT_TEST_FUNCTIONS
    vendor_dirs: Tuple[str, ...] = config.DEFAULT_VENDOR_DIRS
    max_command_length: int = config.DEFAULT_MAX_COMMAND_LENGTH
    runner_command: Tuple[str, ...] = config.DEFAULT_RUNNER_COMMAND
    timeout: Optional[float] = None
    max_workers: int = 1

    def is_test_file(self, path: str) -> bool:
        return path.endswith(self.test_suffixes)

    def is_source_file(self, path: str) -> bool:
        return path.endswith(self.source_extensions)

    def is_vendored(self, path: str) -> bool:
        parts = Path(path.replace("\\", "/")).parts
        return any(part in self.vendor_dirs for part in parts)

    def with_overrides(self, **overrides: Any) -> "SelectorSettings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_toml_section(path: Path) -> Dict[str, Any]:
    """Read the ``[selector]`` table of *path*; missing or broken files yield ``{}``."""
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    section = data.get("selector", {})
    if not isinstance(section, dict):
        logger.warning("Ignoring [selector] in %s: expected a table", path)
        return {}
    return section


def _coerce(raw: Dict[str, Any], source: Path) -> Dict[str, Any]:
    known = {f.name for f in fields(SelectorSettings)}
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning("Unknown setting '%s' in %s", key, source)
            continue
        if key in _TUPLE_KEYS:
            if isinstance(value, str):
                value = [value]
            values[key] = tuple(str(v) for v in value)
        elif key == "timeout":
            values[key] = float(value) if value else None
        else:
            values[key] = int(value)
    return values


def load_settings(repo_path: Optional[Path] = None) -> SelectorSettings:
    """Build settings from the global file and, if given, the repository file."""
    merged: Dict[str, Any] = {}
    sources = [config.GLOBAL_CONFIG_FILE]
    if repo_path is not None:
        sources.append(Path(repo_path) / config.PROJECT_CONFIG_NAME)
    for source in sources:
        merged.update(_coerce(load_toml_section(source), source))
    return SelectorSettings(**merged)


def save_settings(settings: SelectorSettings, path: Path) -> None:
    """Write *settings* as a ``[selector]`` table, preserving other sections."""
    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    section = {}
    for f_ in fields(SelectorSettings):
        value = getattr(settings, f_.name)
        if value is None:
            continue
        section[f_.name] = list(value) if isinstance(value, tuple) else value
    data["selector"] = section
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(data, f)
