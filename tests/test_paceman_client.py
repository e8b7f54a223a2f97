# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tests for the Paceman client against a local aiohttp server."""

import asyncio
import json
from pathlib import Path

import pytest
from aiohttp import web

from daemon.cache import CacheKeys, TTLCache
from daemon.schemas import UpstreamError
from interface.paceman import PacemanClient

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(name):
    return json.loads((FIXTURES / name).read_text())


class FakeUpstream:
    """Serves the three Paceman endpoints from in-memory data."""

    def __init__(self):
        self.recent = {"xQcOW": [{"id": 112309}, {"id": 112301}]}
        self.worlds = {"112309": load_fixture("paceman_world_xqc.json")}
        self.live = load_fixture("paceman_liveruns.json")
        self.live_status = 200
        self.hits = {"recent": 0, "world": 0, "live": 0}
        self.last_query = {}

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/stats/api/getRecentRuns", self.get_recent_runs)
        app.router.add_get("/stats/api/getWorld/", self.get_world)
        app.router.add_get("/api/ars/liveruns", self.get_live_runs)
        return app

    async def get_recent_runs(self, request):
        self.hits["recent"] += 1
        self.last_query = dict(request.query)
        name = request.query.get("name", "")
        limit = int(request.query.get("limit", "5"))
        if name not in self.recent:
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(self.recent[name][:limit])

    async def get_world(self, request):
        self.hits["world"] += 1
        world_id = request.query.get("worldId", "")
        if world_id == "500":
            return web.Response(status=500, text="oops")
        if world_id == "badjson":
            return web.Response(text="<html>", content_type="text/html")
        if world_id not in self.worlds:
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(self.worlds[world_id])

    async def get_live_runs(self, request):
        self.hits["live"] += 1
        if self.live_status != 200:
            return web.json_response({"error": "down"}, status=self.live_status)
        return web.json_response(self.live)


def run_with_client(upstream: FakeUpstream, fn, cache=None):
    """Start the fake upstream, run `fn(client)`, tear everything down."""

    async def run():
        runner = web.AppRunner(upstream.app())
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        port = runner.addresses[0][1]
        base = f"http://127.0.0.1:{port}"
        try:
            async with PacemanClient(
                cache=cache,
                base_url=f"{base}/stats/api",
                live_runs_url=f"{base}/api/ars/liveruns",
                timeout=5,
            ) as client:
                return await fn(client)
        finally:
            await runner.cleanup()

    return asyncio.run(run())


@pytest.fixture
def upstream():
    return FakeUpstream()


class TestRecentRuns:

    def test_recent_runs(self, upstream):
        runs = run_with_client(upstream, lambda c: c.get_recent_runs("xQcOW", limit=2))
        assert [r["id"] for r in runs] == [112309, 112301]
        assert upstream.last_query == {"name": "xQcOW", "limit": "2"}

    def test_recent_run_id(self, upstream):
        assert run_with_client(upstream, lambda c: c.get_recent_run_id("xQcOW")) == 112309

    def test_unknown_streamer(self, upstream):
        assert run_with_client(upstream, lambda c: c.get_recent_run_id("nobody")) is None


class TestWorld:

    def test_snapshot_parsed(self, upstream):
        snap = run_with_client(upstream, lambda c: c.get_world(112309))
        assert snap.is_live is True
        assert snap.data["nether"] == 179852
        assert snap.twitch == "xqcow"

    def test_404_is_absent(self, upstream):
        assert run_with_client(upstream, lambda c: c.get_world(1)) is None

    def test_500_raises(self, upstream):
        with pytest.raises(UpstreamError) as exc:
            run_with_client(upstream, lambda c: c.get_world(500))
        assert exc.value.status == 500

    def test_invalid_json_raises(self, upstream):
        with pytest.raises(UpstreamError):
            run_with_client(upstream, lambda c: c.get_world("badjson"))

    def test_connection_refused_raises(self):
        async def run():
            async with PacemanClient(base_url="http://127.0.0.1:9", timeout=2) as client:
                return await client.get_world(1)

        with pytest.raises(UpstreamError):
            asyncio.run(run())


class TestLiveRuns:

    def test_parsed(self, upstream):
        runs = run_with_client(upstream, lambda c: c.get_live_runs())
        assert len(runs) == 2
        assert runs[0].nickname == "xQcOW"
        assert runs[0].event_list[0].event_id == "rsg.enter_nether"
        assert runs[1].identities() == ["Feinberg"]

    def test_cached_between_calls(self, upstream):
        cache = TTLCache()

        async def twice(client):
            await client.get_live_runs()
            return await client.get_live_runs()

        runs = run_with_client(upstream, twice, cache=cache)
        assert len(runs) == 2
        assert upstream.hits["live"] == 1
        assert cache.get(CacheKeys.LIVE_RUNS) is runs

    def test_malformed_entries_skipped(self, upstream):
        upstream.live = [{"nickname": "ok", "eventList": []}, {"eventList": "nope"}, "junk"]
        runs = run_with_client(upstream, lambda c: c.get_live_runs())
        assert [r.nickname for r in runs] == ["ok"]

    def test_error_raises(self, upstream):
        upstream.live_status = 503
        with pytest.raises(UpstreamError):
            run_with_client(upstream, lambda c: c.get_live_runs())
