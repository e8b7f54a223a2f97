# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Test configuration — paths isolation and upstream payload fixtures."""

import json
import pytest
from pathlib import Path

from core.paths import configure, reset
from daemon.schemas import LiveRun, RunSnapshot

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture(name: str):
    return json.loads((FIXTURES / name).read_text())


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path):
    """Route all RunAlert data to a temp directory for test isolation."""
    paths = configure(tmp_path)
    paths.ensure_dirs()
    yield paths
    reset()


@pytest.fixture
def world_xqc():
    """Live xQcOW run: nether IGT 179852 / RTA 181812, bastion not reached."""
    return RunSnapshot.model_validate(load_fixture("paceman_world_xqc.json"))


@pytest.fixture
def live_runs():
    return [LiveRun.model_validate(r) for r in load_fixture("paceman_liveruns.json")]


class FakePaceman:
    """In-memory stand-in for PacemanClient. Errors can be queued per call."""

    def __init__(self):
        self.recent = {}       # name -> [run ids, newest first]
        self.worlds = {}       # run id -> RunSnapshot
        self.live = []
        self.errors = {}       # method name -> [exceptions to raise, in order]
        self.calls = []

    def _maybe_fail(self, method):
        self.calls.append(method)
        queued = self.errors.get(method)
        if queued:
            raise queued.pop(0)

    async def get_recent_runs(self, name, limit=5):
        self._maybe_fail("get_recent_runs")
        return [{"id": rid} for rid in self.recent.get(name, [])[:limit]]

    async def get_recent_run_id(self, name):
        self._maybe_fail("get_recent_run_id")
        runs = self.recent.get(name, [])
        return runs[0] if runs else None

    async def get_world(self, run_id):
        self._maybe_fail("get_world")
        return self.worlds.get(run_id)

    async def get_live_runs(self):
        self._maybe_fail("get_live_runs")
        return list(self.live)


@pytest.fixture
def paceman():
    return FakePaceman()
