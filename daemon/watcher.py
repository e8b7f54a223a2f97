# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Run watcher — discover live runs, poll their splits, notify on fast paces.

Per streamer (StreamerWatcher):

    IDLE ──every 20s──> DISCOVERING ──new run id, live──> WATCHING(run)
      ^                                                     │
      └───────── run retracted / ended + grace over ────────┘
    any state ──streamer removed from config──> STOPPED

Per live run (RunWatcher), every 5s:
  1. reload config, stop if the streamer was removed
  2. fetch the snapshot (None = retracted, stop)
  3. stop if the run was never observed live
  4. for each enabled milestone: resolve split -> decide -> alert once
  5. after the run goes non-live, keep polling up to POST_RUN_GRACE_SECONDS
     while an enabled milestone is still missing its split

Delivery goes through Notifier: dry-run first, then quiet hours, then the
channel. The dedupe key is consumed before delivery, so a split suppressed
by quiet hours is not re-sent when quiet hours end.

WatchSupervisor keeps one StreamerWatcher per configured streamer, re-syncing
the set every 5s. Everything shares one event loop; a crash inside one
streamer's task is logged at the task boundary and never reaches the others.
"""

import asyncio
import logging
import signal
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set

import aiohttp

from daemon.cache import TTLCache
from daemon.config import ConfigSource
from daemon.decision import should_notify
from daemon.dedupe import DedupeStore, alert_identity
from daemon.milestones import build_rule_set, log_config_summary, validate_config
from daemon.notification_format import format_notification_title, ms_to_mmss, stream_url
from daemon.quiet_hours import in_quiet_hours
from daemon.scheduler import RepeatingTask, StopFlag
from daemon.schemas import (
    Delivery, DedupeStoreError, LiveRun, RunSnapshot, SplitSample, UpstreamError, WatcherConfig,
)
from daemon.splits import find_live_run_for_streamer, resolve_split
from interface import notify as notify_channels
from interface.paceman import REQUEST_TIMEOUT, PacemanClient

logger = logging.getLogger("runalert.watcher")

# Intervals (seconds)
POLL_RECENT_SECONDS = 20
POLL_WORLD_SECONDS = 5
POST_RUN_GRACE_SECONDS = 120
SYNC_STREAMERS_SECONDS = 5
HEARTBEAT_SECONDS = 60

# 12 failed ticks at 5s = one minute of upstream errors; logged at ERROR from then on
FAILURES_BEFORE_ERROR = 12

SendFn = Callable[..., Awaitable[bool]]


class WatchState:
    """Per-streamer lifecycle states."""
    IDLE = "idle"
    DISCOVERING = "discovering"
    WATCHING = "watching"
    STOPPED = "stopped"


@dataclass
class WatchOptions:
    """Command-line toggles. Each is independent of the others."""
    once: bool = False
    dry_run: bool = False
    force_send: bool = False
    ignore_quiet: bool = False

    def describe(self) -> str:
        return (
            f"once={self.once} dry_run={self.dry_run} "
            f"force={self.force_send} ignore_quiet={self.ignore_quiet}"
        )


# ============================================================================
# Delivery
# ============================================================================

class Notifier:
    """
    The notification-delivery call the watcher makes.

    notify() reports what happened: Delivery.DRY_RUN, Delivery.SUPPRESSED_QUIET,
    Delivery.SENT, or Delivery.FAILED when the channel reported an error.
    Quiet hours are read from the current config at delivery time. No outcome
    gives the dedupe key back.
    """

    def __init__(
        self,
        options: WatchOptions,
        load_config: Callable[[], WatcherConfig],
        send: Optional[SendFn] = None,
        now: Callable[[], datetime] = datetime.now,
        channel: str = notify_channels.CHANNEL_DESKTOP,
    ):
        self._options = options
        self._load_config = load_config
        self._send = send if send is not None else notify_channels.send
        self._now = now
        self._channel = channel

    async def notify(self, title: str, body: str, open_url: Optional[str] = None) -> str:
        if self._options.dry_run:
            logger.info("[dry-run] %s | %s", title, body)
            return Delivery.DRY_RUN

        spans = self._load_config().quiet_spans
        if in_quiet_hours(spans, self._now(), override=self._options.ignore_quiet):
            logger.info("[quiet-hours] suppressed: %s | %s", title, body)
            return Delivery.SUPPRESSED_QUIET

        ok = await self._send(title, body, channel=self._channel, open_url=open_url)
        if not ok:
            logger.warning("Delivery reported failure for: %s", title)
            return Delivery.FAILED
        return Delivery.SENT


# ============================================================================
# One run
# ============================================================================

class RunWatcher:
    """Watches one live run until it ends, is retracted, or we're stopped."""

    def __init__(
        self,
        streamer: str,
        run_id: int,
        client: PacemanClient,
        config: ConfigSource,
        store: DedupeStore,
        notifier: Notifier,
        options: WatchOptions,
        stop: Optional[StopFlag] = None,
        poll_interval: float = POLL_WORLD_SECONDS,
        grace_seconds: float = POST_RUN_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.streamer = streamer
        self.run_id = run_id
        self._client = client
        self._config = config
        self._store = store
        self._notifier = notifier
        self._options = options
        self._stop = stop if stop is not None else StopFlag()
        self._poll_interval = poll_interval
        self._grace_seconds = grace_seconds
        self._clock = clock

        self.was_live = False
        self.post_run_until: Optional[float] = None
        self.failures = 0
        self.ticks = 0
        self.outcomes: List[str] = []

    async def run(self) -> None:
        logger.info("Watching run %s for %s", self.run_id, self.streamer)
        try:
            while await self.tick():
                if await self._stop.sleep(self._poll_interval):
                    break
        finally:
            logger.info("Stopped watching run %s for %s", self.run_id, self.streamer)

    async def tick(self) -> bool:
        """One watch iteration. Returns False when this run's watch is over."""
        self.ticks += 1
        if self._stop.is_set():
            return False

        config = self._config.load()
        if self.streamer not in config.streamers:
            logger.info("%s removed from config; stopping run %s", self.streamer, self.run_id)
            return False

        try:
            snapshot = await self._client.get_world(self.run_id)
        except UpstreamError as e:
            # No failure cap: retry until the run resolves or we're stopped.
            self.failures += 1
            level = logging.ERROR if self.failures % FAILURES_BEFORE_ERROR == 0 else logging.WARNING
            logger.log(
                level, "Run %s (%s): snapshot fetch failed (%d in a row), retrying: %s",
                self.run_id, self.streamer, self.failures, e,
            )
            return True
        self.failures = 0

        if snapshot is None:
            logger.info("Run %s (%s) no longer exists upstream; stopping", self.run_id, self.streamer)
            return False

        is_live = snapshot.is_live
        self.was_live = self.was_live or is_live
        if not self.was_live:
            logger.info("Run %s (%s) was never live; not evaluating", self.run_id, self.streamer)
            return False

        live_run = await self._find_live_run(snapshot) if is_live else None
        missing = await self.evaluate(config, snapshot, live_run)

        if is_live:
            self.post_run_until = None
            return True

        now = self._clock()
        if self.post_run_until is None:
            self.post_run_until = now + self._grace_seconds
            logger.info(
                "Run %s (%s) ended; grace polling for up to %ss",
                self.run_id, self.streamer, self._grace_seconds,
            )
        if not missing:
            logger.info("Run %s (%s) ended with all enabled splits in", self.run_id, self.streamer)
            return False
        if now >= self.post_run_until:
            logger.info("Run %s (%s) grace period over", self.run_id, self.streamer)
            return False
        return True

    async def _find_live_run(self, snapshot: RunSnapshot) -> Optional[LiveRun]:
        try:
            live_runs = await self._client.get_live_runs()
        except UpstreamError as e:
            logger.debug("Live feed unavailable: %s", e)
            return None
        return find_live_run_for_streamer(
            live_runs, [self.streamer, snapshot.nickname, snapshot.twitch],
        )

    async def evaluate(
        self,
        config: WatcherConfig,
        snapshot: RunSnapshot,
        live_run: Optional[LiveRun],
    ) -> bool:
        """Evaluate every milestone once. Returns True if an enabled split is missing."""
        primary, fallback = config.clocks()
        missing = False

        for milestone, rule in build_rule_set(config, self.streamer).items():
            if not rule.enabled:
                logger.debug("%s %s: disabled", self.streamer, milestone)
                continue

            split = resolve_split(snapshot, live_run, milestone, primary, fallback)
            if split is None:
                missing = True
                logger.debug("%s %s: no split yet", self.streamer, milestone)
                continue

            logger.debug(
                "%s %s: %s ≈ %ss (%s, %s) cutoff=%s",
                self.streamer, milestone, ms_to_mmss(split.ms), split.seconds,
                split.clock, split.source, rule.threshold_sec,
            )
            if not should_notify(split, rule.enabled, rule.threshold_sec, self._options.force_send):
                continue
            try:
                await self.alert_once(milestone, split, snapshot)
            except Exception as e:
                logger.exception("%s %s: alert failed: %s", self.streamer, milestone, e)

        return missing

    async def alert_once(self, milestone: str, split: SplitSample, snapshot: RunSnapshot) -> Optional[str]:
        """Deliver at most one notification per (milestone, streamer, run)."""
        identity = alert_identity(self.streamer, self.run_id, milestone, split.clock, split.seconds)
        try:
            is_new = self._store.mark_if_new(identity)
        except DedupeStoreError as e:
            # Still recorded in memory; only a restart could repeat this alert.
            logger.error("DEDUPE RECORD NOT SAVED, notifying anyway: %s", e)
            is_new = True
        if not is_new:
            logger.debug("Already notified: %s", identity.canonical)
            return None

        title = format_notification_title(milestone, split.ms, self.streamer)
        body = f"Run {self.run_id}"
        url = stream_url(snapshot.twitch or snapshot.nickname or self.streamer)
        outcome = await self._notifier.notify(title, body, open_url=url)
        self.outcomes.append(outcome)
        logger.info("[notify:%s] %s | %s", outcome, title, body)
        return outcome


# ============================================================================
# One streamer
# ============================================================================

class StreamerWatcher:
    """Discovery loop for one streamer; spawns a RunWatcher per new live run."""

    def __init__(
        self,
        streamer: str,
        client: PacemanClient,
        config: ConfigSource,
        store: DedupeStore,
        notifier: Notifier,
        options: WatchOptions,
        discovery_interval: float = POLL_RECENT_SECONDS,
        poll_interval: float = POLL_WORLD_SECONDS,
        grace_seconds: float = POST_RUN_GRACE_SECONDS,
    ):
        self.streamer = streamer
        self._client = client
        self._config = config
        self._store = store
        self._notifier = notifier
        self._options = options
        self._discovery_interval = discovery_interval
        self._poll_interval = poll_interval
        self._grace_seconds = grace_seconds

        self.stop_flag = StopFlag()
        self.last_run_id: Optional[int] = None
        self._discovering = False
        self._runs: Set[asyncio.Task] = set()

    @property
    def state(self) -> str:
        if self.stop_flag.is_set():
            return WatchState.STOPPED
        if self._discovering:
            return WatchState.DISCOVERING
        if self._runs:
            return WatchState.WATCHING
        return WatchState.IDLE

    def stop(self) -> None:
        self.stop_flag.set()

    def _run_watcher(self, run_id: int) -> RunWatcher:
        return RunWatcher(
            self.streamer, run_id, self._client, self._config, self._store,
            self._notifier, self._options, stop=self.stop_flag,
            poll_interval=self._poll_interval, grace_seconds=self._grace_seconds,
        )

    async def discover(self) -> Optional[RunWatcher]:
        """Check for a new live run. Returns a watcher for it, or None."""
        self._discovering = True
        try:
            run_id = await self._client.get_recent_run_id(self.streamer)
            logger.debug("%s: most recent run %s", self.streamer, run_id)
            if not run_id or run_id == self.last_run_id:
                return None

            # Only remember the run once its snapshot was fetched; a failed
            # fetch is retried on the next discovery.
            snapshot = await self._client.get_world(run_id)
            self.last_run_id = run_id
            if snapshot is None or not snapshot.is_live:
                logger.debug("%s: run %s is not live; skipping", self.streamer, run_id)
                return None
            logger.info("%s: new live run %s", self.streamer, run_id)
            return self._run_watcher(run_id)
        finally:
            self._discovering = False

    async def run_once(self) -> Optional[RunWatcher]:
        """Single discovery-to-notify pass: discover, then one watch tick."""
        watcher = await self.discover()
        if watcher is not None:
            await watcher.tick()
        return watcher

    async def run(self) -> None:
        logger.info("Streamer loop started: %s", self.streamer)
        try:
            while not self.stop_flag.is_set():
                try:
                    watcher = await self.discover()
                except UpstreamError as e:
                    logger.warning("%s: discovery failed: %s", self.streamer, e)
                except Exception as e:
                    logger.exception("%s: discovery crashed: %s", self.streamer, e)
                else:
                    if watcher is not None:
                        task = asyncio.create_task(
                            self._watch(watcher), name=f"run:{self.streamer}:{watcher.run_id}",
                        )
                        self._runs.add(task)
                        task.add_done_callback(self._runs.discard)
                if await self.stop_flag.sleep(self._discovery_interval):
                    break
        finally:
            if self._runs:
                await asyncio.gather(*self._runs, return_exceptions=True)
            logger.info("Streamer loop stopped: %s", self.streamer)

    async def _watch(self, watcher: RunWatcher) -> None:
        try:
            await watcher.run()
        except Exception as e:
            logger.exception("%s: run %s watch crashed: %s", self.streamer, watcher.run_id, e)


# ============================================================================
# All streamers
# ============================================================================

class WatchSupervisor:
    """Keeps the set of StreamerWatchers in line with config.streamers."""

    def __init__(
        self,
        client: PacemanClient,
        config: ConfigSource,
        store: DedupeStore,
        notifier: Notifier,
        options: WatchOptions,
        session: Optional[aiohttp.ClientSession] = None,
        watcher_factory: Optional[Callable[[str], StreamerWatcher]] = None,
        cache: Optional[TTLCache] = None,
    ):
        self._client = client
        self._config = config
        self._store = store
        self._notifier = notifier
        self._options = options
        self._session = session
        self._factory = watcher_factory or self._new_watcher
        self._cache = cache
        self._stop = StopFlag()
        self.watchers: Dict[str, StreamerWatcher] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._started = time.monotonic()

    def _new_watcher(self, name: str) -> StreamerWatcher:
        return StreamerWatcher(name, self._client, self._config, self._store, self._notifier, self._options)

    def stop(self) -> None:
        self._stop.set()

    async def sync_streamers(self) -> None:
        """Start loops for new streamers, stop loops for removed ones."""
        wanted = list(dict.fromkeys(self._config.load().streamers))

        for name in list(self.watchers):
            if name not in wanted:
                logger.info("Streamer removed: %s", name)
                self.watchers.pop(name).stop()

        for name in wanted:
            if name not in self.watchers:
                logger.info("Streamer added: %s", name)
                watcher = self._factory(name)
                self.watchers[name] = watcher
                task = asyncio.create_task(self._guard(watcher), name=f"streamer:{name}")
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _guard(self, watcher: StreamerWatcher) -> None:
        try:
            await watcher.run()
        except Exception as e:
            logger.exception("Streamer loop for %s crashed: %s", watcher.streamer, e)

    async def heartbeat(self) -> None:
        states = ", ".join(f"{n}={w.state}" for n, w in self.watchers.items()) or "(none)"
        uptime = int(time.monotonic() - self._started)
        cache = self._cache.stats() if self._cache is not None else "-"
        logger.info("Heartbeat: up %ss, %s, dedupe=%s, cache=%s", uptime, states, self._store.stats, cache)

    async def run_once(self) -> None:
        """Every configured streamer: one discovery-to-notify pass, then return."""
        names = list(dict.fromkeys(self._config.load().streamers))
        results = await asyncio.gather(
            *(self._factory(name).run_once() for name in names), return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error("%s: single pass failed: %s", name, result)

    async def run(self) -> None:
        periodic = [
            RepeatingTask("sync-streamers", self.sync_streamers, SYNC_STREAMERS_SECONDS, stop=self._stop),
            RepeatingTask("heartbeat", self.heartbeat, HEARTBEAT_SECONDS, stop=self._stop, run_immediately=False),
        ]
        if self._config.remote_url and self._session is not None:
            periodic.append(RepeatingTask(
                "remote-config", self._sync_remote, self._config.poll_interval, stop=self._stop,
            ))
        for job in periodic:
            job.start()

        await self._stop.wait()
        logger.info("Shutting down %d streamer loops", len(self.watchers))

        for watcher in self.watchers.values():
            watcher.stop()
        await asyncio.gather(*(job.join() for job in periodic), return_exceptions=True)
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _sync_remote(self) -> None:
        await self._config.sync_remote(self._session)


# ============================================================================
# Entry point
# ============================================================================

def _install_signal_handlers(supervisor: WatchSupervisor) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, supervisor.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops don't support add_signal_handler
            pass


async def run_watcher(
    options: WatchOptions,
    config: Optional[ConfigSource] = None,
    store: Optional[DedupeStore] = None,
    send: Optional[SendFn] = None,
) -> None:
    """Start watching every configured streamer. Returns when stopped."""
    config = config if config is not None else ConfigSource.from_env()
    store = store if store is not None else DedupeStore()

    timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        if config.remote_url:
            await config.sync_remote(session)

        current = config.load()
        if validate_config(current):
            logger.warning("Some config issues were detected; continuing anyway")
        log_config_summary(current)
        logger.info("Clock: %s | %s", current.clock, options.describe())

        cache = TTLCache()
        client = PacemanClient(session=session, cache=cache)
        notifier = Notifier(options, config.load, send=send)
        supervisor = WatchSupervisor(client, config, store, notifier, options, session=session, cache=cache)

        if options.once:
            await supervisor.run_once()
            return

        _install_signal_handlers(supervisor)
        await supervisor.run()
