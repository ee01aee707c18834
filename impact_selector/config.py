"""Configuration defaults for impact selection."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("IMPACT_SELECTOR_HOME", str(Path.home() / ".impact-selector"))).expanduser()
GLOBAL_CONFIG_FILE = BASE_DIR / "config.toml"
PROJECT_CONFIG_NAME = ".impact-selector.toml"

DEFAULT_TEST_SUFFIXES = (
    ".spec.ts", ".test.ts",
    ".spec.tsx", ".test.tsx",
    ".spec.js", ".test.js",
    ".spec.jsx", ".test.jsx",
)
DEFAULT_SOURCE_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")
DEFAULT_TEST_FUNCTIONS = ("test", "it", "describe")
DEFAULT_VENDOR_DIRS = (
    "node_modules", ".git", "dist", "build", "coverage", ".next", ".turbo",
)

# Conservative ceiling for a single runner argument (Windows cmd.exe caps at 8191).
DEFAULT_MAX_COMMAND_LENGTH = 8000

DEFAULT_RUNNER_COMMAND = ("npx", "playwright", "test")

ALL_COMMITS_REF = "ALL"
