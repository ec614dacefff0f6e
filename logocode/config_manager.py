"""TOML-backed settings, split into one explicit struct per mode."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from . import config

logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Options read by the source analyzer and file discovery.

    ``exclude_pattern`` replaces the built-in exclusion set when given.
    ``extensions`` lists the file suffixes the analyzer parses; other files
    found by the include pattern are ignored.
    """
    include_pattern: str = config.DEFAULT_INCLUDE_PATTERN
    exclude_pattern: Optional[str] = None
    extensions: List[str] = field(default_factory=lambda: list(config.SUPPORTED_EXTENSIONS))


@dataclass
class SearchConfig:
    max_files: int = 5000
    max_results: int = 200
    preview_length: int = 120


@dataclass
class ApplyOptions:
    """Options read by the apply step.

    backup: copy every accepted file aside before the commit so it can be undone.
    save: persist each modified file after a successful commit.
    """
    backup: bool = True
    save: bool = True


@dataclass
class LogoCodeConfig:
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    apply: ApplyOptions = field(default_factory=ApplyOptions)


def _section(raw: Dict[str, Any], name: str, cls: type) -> Any:
    values = raw.get(name, {}) or {}
    known = {k: v for k, v in values.items() if k in cls.__dataclass_fields__}
    unknown = sorted(set(values) - set(known))
    if unknown:
        logger.warning("Ignoring unknown [%s] keys in config: %s", name, ", ".join(unknown))
    return cls(**known)


def load_config(path: Optional[Path] = None) -> LogoCodeConfig:
    """Load settings from TOML, falling back to defaults.

    A missing file yields defaults silently; an unreadable one is logged.
    """
    path = path or config.CONFIG_FILE
    if not path.exists():
        return LogoCodeConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Could not read config %s: %s", path, exc)
        return LogoCodeConfig()
    return LogoCodeConfig(
        analysis=_section(raw, "analysis", AnalysisConfig),
        search=_section(raw, "search", SearchConfig),
        apply=_section(raw, "apply", ApplyOptions),
    )


def save_config(settings: LogoCodeConfig, path: Optional[Path] = None) -> Path:
    """Write every section of *settings* to TOML and return the file path."""
    path = path or config.CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {name: _drop_none(value) for name, value in asdict(settings).items()}
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(payload, f)
    return path


def _drop_none(section: Dict[str, Any]) -> Dict[str, Any]:
    # TOML has no null
    return {k: v for k, v in section.items() if v is not None}
