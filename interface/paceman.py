# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Paceman API client — run discovery, run snapshots and the live-runs feed.

Endpoints:
    GET {stats}/getRecentRuns?name=<name>&limit=<n>   -> [{id, ...}, ...]
    GET {stats}/getWorld/?worldId=<id>                -> {isLive, data: {...}}
    GET {live}                                        -> [{nickname, eventList, ...}]

Transport failures and non-2xx responses raise UpstreamError. A 404 on run
lookups means "nothing there" and comes back as None / [].
The live-runs feed is throttled through the injected TTLCache.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from daemon.cache import LIVE_RUNS_TTL, CacheKeys, TTLCache
from daemon.schemas import LiveRun, RunSnapshot, UpstreamError

logger = logging.getLogger("runalert.interface.paceman")

STATS_API = "https://paceman.gg/stats/api"
LIVE_RUNS_URL = "https://paceman.gg/api/ars/liveruns"
REQUEST_TIMEOUT = 15.0


class PacemanClient:
    """Async client. Use as `async with PacemanClient() as client:`."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        cache: Optional[TTLCache] = None,
        base_url: str = STATS_API,
        live_runs_url: str = LIVE_RUNS_URL,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self._session = session
        self._owns_session = session is None
        self._cache = cache if cache is not None else TTLCache()
        self._base_url = base_url.rstrip("/")
        self._live_runs_url = live_runs_url
        self._timeout = timeout

    async def __aenter__(self) -> "PacemanClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None, missing_ok: bool = False) -> Any:
        """GET and decode JSON. None on 404 when missing_ok."""
        session = self._get_session()
        try:
            async with session.get(url, params=params) as resp:
                if resp.status == 404 and missing_ok:
                    return None
                if resp.status >= 400:
                    raise UpstreamError(f"GET {url} {resp.status}", status=resp.status)
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise UpstreamError(f"GET {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"GET {url}: timed out") from e
        except ValueError as e:
            raise UpstreamError(f"GET {url}: invalid JSON ({e})") from e

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def get_recent_runs(self, name: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Most recent runs for a streamer, newest first."""
        data = await self._get_json(
            f"{self._base_url}/getRecentRuns",
            params={"name": name, "limit": str(limit)},
            missing_ok=True,
        )
        return data if isinstance(data, list) else []

    async def get_recent_run_id(self, name: str) -> Optional[int]:
        """Numeric id of the streamer's latest run, e.g. 112309. None if none."""
        runs = await self.get_recent_runs(name, limit=1)
        if not runs or not isinstance(runs[0], dict):
            return None
        return runs[0].get("id")

    async def get_world(self, run_id: int) -> Optional[RunSnapshot]:
        """Snapshot for one run. None if the run is gone upstream."""
        data = await self._get_json(
            f"{self._base_url}/getWorld/",
            params={"worldId": str(run_id)},
            missing_ok=True,
        )
        if data is None:
            return None
        try:
            return RunSnapshot.model_validate(data)
        except ValidationError as e:
            raise UpstreamError(f"getWorld {run_id}: unexpected payload ({e.error_count()} errors)") from e

    # ------------------------------------------------------------------
    # Live feed
    # ------------------------------------------------------------------

    async def get_live_runs(self) -> List[LiveRun]:
        """All currently live runs. Cached for LIVE_RUNS_TTL seconds."""
        cached = self._cache.get(CacheKeys.LIVE_RUNS)
        if cached is not None:
            return cached

        data = await self._get_json(self._live_runs_url)
        runs: List[LiveRun] = []
        for entry in data if isinstance(data, list) else []:
            try:
                runs.append(LiveRun.model_validate(entry))
            except ValidationError:
                logger.debug("Skipping malformed live run entry")
        self._cache.set(CacheKeys.LIVE_RUNS, runs, LIVE_RUNS_TTL)
        return runs
