# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Watcher config — defaults, logging setup, config document loading.

The document is re-read on every watch tick, so edits to config.json (or the
remote copy) take effect without a restart. A document that can't be parsed
or validated never replaces the last good one.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

import aiohttp
from pydantic import ValidationError

from core.paths import get_paths
from daemon.schemas import ConfigError, WatcherConfig, load_validated

logger = logging.getLogger("runalert.config")

REMOTE_URL_ENV = "RUNALERT_REMOTE_CONFIG_URL"
REMOTE_POLL_ENV = "RUNALERT_REMOTE_CONFIG_POLL"
DEFAULT_REMOTE_POLL = 5.0

# Written by `runalert check-config --init` when no config exists yet.
DEFAULT_CONFIG = {
    "streamers": [],
    "defaultMilestones": {
        "nether": {"thresholdSec": 240, "enabled": True},
    },
    "profiles": {},
    "quietHours": None,
    "clock": "IGT",
}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure runalert logging to file + stderr. Safe to call twice."""
    paths = get_paths()
    paths.ensure_dirs()
    level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger("runalert")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    # File handler: append to runalert.log
    fh = logging.FileHandler(str(paths.log_file), mode="a", encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(fh)

    # Stderr handler for when running in foreground
    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root.addHandler(sh)

    return root


def _env_poll_interval() -> float:
    raw = os.environ.get(REMOTE_POLL_ENV)
    if not raw:
        return DEFAULT_REMOTE_POLL
    try:
        value = float(raw)
    except ValueError:
        logger.warning("%s=%r is not a number; using %ss", REMOTE_POLL_ENV, raw, DEFAULT_REMOTE_POLL)
        return DEFAULT_REMOTE_POLL
    return value if value > 0 else DEFAULT_REMOTE_POLL


class ConfigSource:
    """
    Where the watcher gets its config from.

    Local file by default. With a remote URL, the last successfully fetched
    remote document takes precedence over the file.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        remote_url: Optional[str] = None,
        poll_interval: float = DEFAULT_REMOTE_POLL,
    ):
        self._path = Path(path) if path is not None else get_paths().config_file
        self._remote_url = remote_url or None
        self._poll_interval = poll_interval
        self._remote: Optional[WatcherConfig] = None
        self._last_good: Optional[WatcherConfig] = None
        self._last_error: Optional[str] = None

    @classmethod
    def from_env(cls, path: Optional[Path] = None) -> "ConfigSource":
        return cls(
            path=path,
            remote_url=os.environ.get(REMOTE_URL_ENV, "").strip() or None,
            poll_interval=_env_poll_interval(),
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def remote_url(self) -> Optional[str]:
        return self._remote_url

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    def load(self) -> WatcherConfig:
        """Current config. Falls back to the last good document on errors."""
        if self._remote is not None:
            return self._remote
        try:
            config = load_validated(self._path, WatcherConfig)
        except ConfigError as e:
            message = str(e)
            # Logged once per distinct error; this runs every tick.
            if message != self._last_error:
                self._last_error = message
                if self._last_good is not None:
                    logger.error("Config unreadable, keeping last good config: %s", message)
                else:
                    logger.error("Config unreadable, using defaults: %s", message)
            return self._last_good if self._last_good is not None else WatcherConfig()

        if self._last_error is not None:
            logger.info("Config readable again: %s", self._path)
            self._last_error = None
        self._last_good = config
        return config

    async def sync_remote(self, session: aiohttp.ClientSession) -> bool:
        """Fetch the remote document once. True if it was applied."""
        if not self._remote_url:
            return False
        try:
            async with session.get(self._remote_url) as resp:
                if resp.status >= 400:
                    raise ConfigError(f"GET {self._remote_url} {resp.status}")
                data = await resp.json(content_type=None)
            config = WatcherConfig.model_validate(data)
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
            logger.warning("Remote config fetch failed (%s); keeping previous config", e)
            return False
        except (ConfigError, ValidationError, ValueError) as e:
            logger.warning("Remote config rejected (%s); keeping previous config", e)
            return False

        if self._remote is None or self._remote != config:
            logger.info("Remote config applied from %s (%d streamers)", self._remote_url, len(config.streamers))
        self._remote = config
        return True

    def write_default(self) -> Path:
        """Create config.json with defaults if it doesn't exist yet."""
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(DEFAULT_CONFIG, indent=2) + "\n")
            logger.info("Wrote default config to %s", self._path)
        return self._path
