"""Configuration paths and analysis constants for LogoCode."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("LOGOCODE_HOME", str(Path.home() / ".logocode"))).expanduser()
BACKUP_DIR = BASE_DIR / "backups"
CONFIG_FILE = BASE_DIR / "config.toml"

SUPPORTED_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")
DEFAULT_INCLUDE_PATTERN = "**/*.{ts,tsx,js,jsx}"

# Probed in order when a relative import does not exist verbatim.
RESOLUTION_SUFFIXES = (".ts", ".tsx", ".js", ".jsx", "/index.ts", "/index.js")

# Build output, dependency and cache directories never scanned by default.
DEFAULT_EXCLUDED_DIRS = frozenset({
    "node_modules", ".git", "dist", "build", ".next", "out", "coverage",
    ".cache", "tmp", "temp", ".vscode", ".idea", ".vs",
})
DEFAULT_EXCLUDED_FILES = ("*.min.js", "*.bundle.js")

PATCH_MARKER = "[LogoCode] Modified by agent"


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    BACKUP_DIR.mkdir(parents=True, exist_ok=True)
