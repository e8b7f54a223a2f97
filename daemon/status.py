# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Streamer status — "what is this runner doing right now?"

summarize_status() is pure: snapshot + live feed entry (+ previous run's
snapshot) in, StreamerStatus out. collect_statuses() / collect_profiles()
do the fetching and go through the injected TTLCache.

Activity rules:
  - active = live, or snapshot updated within ACTIVE_WINDOW_SEC
  - a matching live feed entry forces live/active
  - lastUpdatedSec prefers the live feed's lastUpdated when the last
    milestone came from the live feed
  - recentFinish surfaces the previous run's finish for FINISH_GRACE_SEC
    when the latest run hasn't finished (runner instantly reset)
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

from daemon.cache import PROFILE_TTL, STATUS_TTL, CacheKeys, TTLCache
from daemon.schemas import (
    IGT, RTA, SOURCE_LIVE, LiveRun, RunSnapshot, StreamerProfile, StreamerStatus, UpstreamError,
)
from daemon.splits import MILESTONES, find_live_run_for_streamer, last_milestone, resolve_split
from interface.paceman import PacemanClient

logger = logging.getLogger("runalert.status")

ACTIVE_WINDOW_SEC = 15 * 60
FINISH_GRACE_SEC = 2 * 60

# Names per status/profile request
MAX_NAMES = 15


def normalize_updated_sec(value: Any) -> Optional[float]:
    """Epoch seconds. The live feed sometimes reports milliseconds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value or value <= 0:
        return None
    return value // 1000 if value > 1_000_000_000_000 else value


def summarize_status(
    run_id: Optional[int],
    snapshot: Optional[RunSnapshot],
    live_run: Optional[LiveRun] = None,
    prev_snapshot: Optional[RunSnapshot] = None,
    now_sec: Optional[float] = None,
    milestones: Iterable[str] = MILESTONES,
) -> StreamerStatus:
    """Status summary for one streamer's latest run."""
    if snapshot is None:
        return StreamerStatus(run_id=run_id)
    if now_sec is None:
        now_sec = time.time()

    last_updated = snapshot.update_time
    is_live = snapshot.is_live
    is_active = is_live or (last_updated is not None and now_sec - last_updated <= ACTIVE_WINDOW_SEC)
    if live_run is not None:
        is_live = is_active = True

    status = StreamerStatus(
        run_id=run_id,
        is_live=is_live,
        is_active=is_active,
        run_is_active=is_active,
        last_updated_sec=last_updated,
        run_start_sec=snapshot.insert_time,
    )

    last = last_milestone(snapshot, live_run, tuple(milestones))
    if last is not None:
        milestone, sample = last
        status.last_milestone = milestone
        status.last_milestone_ms = sample.ms
        status.last_milestone_source = sample.source
        if sample.source == SOURCE_LIVE and live_run is not None:
            live_updated = normalize_updated_sec(live_run.last_updated)
            if live_updated is not None:
                status.last_updated_sec = live_updated

    if status.last_milestone != "finish" and prev_snapshot is not None:
        prev_finish = resolve_split(prev_snapshot, None, "finish", IGT, RTA)
        prev_updated = prev_snapshot.update_time
        if prev_finish is not None and prev_updated is not None and now_sec - prev_updated <= FINISH_GRACE_SEC:
            status.recent_finish_ms = prev_finish.ms
            status.recent_finish_updated_sec = prev_updated

    return status


def _check_names(names: List[str]) -> List[str]:
    cleaned = [n.strip() for n in names if n and n.strip()]
    if not cleaned:
        raise ValueError("at least one streamer name is required")
    if len(cleaned) > MAX_NAMES:
        raise ValueError(f"too many names (max {MAX_NAMES})")
    return cleaned


async def _status_for(
    client: PacemanClient,
    name: str,
    live_runs: Optional[List[LiveRun]],
    now_sec: float,
) -> StreamerStatus:
    runs = await client.get_recent_runs(name, limit=2)
    run_id = runs[0].get("id") if runs and isinstance(runs[0], dict) else None
    prev_run_id = runs[1].get("id") if len(runs) > 1 and isinstance(runs[1], dict) else None
    if not run_id:
        return StreamerStatus()

    snapshot = await client.get_world(run_id)
    live_run = None
    if snapshot is not None:
        live_run = find_live_run_for_streamer(live_runs, [name, snapshot.nickname, snapshot.twitch])

    status = summarize_status(run_id, snapshot, live_run, now_sec=now_sec)
    if status.last_milestone != "finish" and prev_run_id:
        prev_snapshot = await client.get_world(prev_run_id)
        status = summarize_status(run_id, snapshot, live_run, prev_snapshot, now_sec=now_sec)
    return status


async def collect_statuses(
    client: PacemanClient,
    names: List[str],
    cache: TTLCache,
    now: Callable[[], float] = time.time,
) -> Dict[str, StreamerStatus]:
    """name -> StreamerStatus. One name failing yields an all-default entry."""
    names = _check_names(names)
    try:
        live_runs: Optional[List[LiveRun]] = await client.get_live_runs()
    except UpstreamError as e:
        logger.debug("Live feed unavailable for status: %s", e)
        live_runs = None

    statuses: Dict[str, StreamerStatus] = {}
    for name in names:
        key = CacheKeys.status(name)
        cached = cache.get(key)
        if cached is not None:
            statuses[name] = cached
            continue
        try:
            status = await _status_for(client, name, live_runs, now())
        except UpstreamError as e:
            logger.warning("Status for %s unavailable: %s", name, e)
            status = StreamerStatus()
        cache.set(key, status, STATUS_TTL)
        statuses[name] = status
    return statuses


def avatar_url(twitch: Optional[str], uuid: Optional[str]) -> Optional[str]:
    """Public avatar for a streamer: twitch picture, else Minecraft head."""
    if twitch:
        return f"https://unavatar.io/twitch/{quote(twitch, safe='')}"
    if uuid:
        return f"https://crafatar.com/avatars/{quote(uuid, safe='')}?size=256&overlay"
    return None


async def collect_profiles(
    client: PacemanClient,
    names: List[str],
    cache: TTLCache,
) -> Dict[str, StreamerProfile]:
    """name -> StreamerProfile, cached for PROFILE_TTL. Best effort per name."""
    names = _check_names(names)
    profiles: Dict[str, StreamerProfile] = {}
    for name in names:
        key = CacheKeys.profile(name)
        cached = cache.get(key)
        if cached is not None:
            profiles[name] = cached
            continue

        run_id, twitch, uuid = None, None, None
        try:
            run_id = await client.get_recent_run_id(name)
            if run_id:
                snapshot = await client.get_world(run_id)
                if snapshot is not None:
                    twitch, uuid = snapshot.twitch, snapshot.uuid
        except UpstreamError as e:
            logger.warning("Profile for %s unavailable: %s", name, e)
            run_id, twitch, uuid = None, None, None

        profile = StreamerProfile(run_id=run_id, twitch=twitch, uuid=uuid, avatar_url=avatar_url(twitch, uuid))
        cache.set(key, profile, PROFILE_TTL)
        profiles[name] = profile
    return profiles
