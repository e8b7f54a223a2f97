# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
RunAlert Paths — single source of truth for all data file locations.

Resolution order:
  1. RUNALERT_DATA_DIR environment variable
  2. Default: ~/.runalert/

Usage:
    from core.paths import get_paths
    p = get_paths()
    p.config_file       # ~/.runalert/config.json
    p.sent_keys_file    # ~/.runalert/sent_keys.json

For tests:
    from core.paths import configure
    configure(tmp_path)  # all paths now rooted under tmp_path
"""

import os
from pathlib import Path
from typing import Optional


class RunAlertPaths:
    """Central registry of every file and directory RunAlert uses."""

    def __init__(self, data_dir: Optional[Path] = None):
        if data_dir is not None:
            self._root = Path(data_dir)
        else:
            env = os.environ.get("RUNALERT_DATA_DIR")
            if env:
                self._root = Path(env).expanduser()
            else:
                self._root = Path.home() / ".runalert"

    # ------------------------------------------------------------------
    # Root
    # ------------------------------------------------------------------
    @property
    def data_dir(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Config + dedupe record
    # ------------------------------------------------------------------
    @property
    def config_file(self) -> Path:
        return self._root / "config.json"

    @property
    def sent_keys_file(self) -> Path:
        return self._root / "sent_keys.json"

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------
    @property
    def log_file(self) -> Path:
        return self._root / "runalert.log"

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


# ===========================================================================
# Singleton
# ===========================================================================

_instance: Optional[RunAlertPaths] = None


def get_paths() -> RunAlertPaths:
    """Return the global RunAlertPaths singleton (lazy-init)."""
    global _instance
    if _instance is None:
        _instance = RunAlertPaths()
    return _instance


def configure(data_dir: Path) -> RunAlertPaths:
    """
    Override the global paths singleton. Used by tests and CLI --data-dir.

    Returns the new instance for convenience.
    """
    global _instance
    _instance = RunAlertPaths(data_dir=data_dir)
    return _instance


def reset() -> None:
    """Reset singleton so next get_paths() re-reads env."""
    global _instance
    _instance = None
