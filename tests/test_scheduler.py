# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Tests for StopFlag and RepeatingTask."""

import asyncio

from daemon.scheduler import RepeatingTask, StopFlag


class TestStopFlag:

    def test_sleep_times_out(self):
        async def run():
            return await StopFlag().sleep(0.01)

        assert asyncio.run(run()) is False

    def test_sleep_wakes_on_set(self):
        async def run():
            flag = StopFlag()
            asyncio.get_running_loop().call_later(0.01, flag.set)
            return await asyncio.wait_for(flag.sleep(30), timeout=1)

        assert asyncio.run(run()) is True

    def test_already_set(self):
        async def run():
            flag = StopFlag()
            flag.set()
            return await flag.sleep(30)

        assert asyncio.run(run()) is True


class TestRepeatingTask:

    def test_runs_until_stopped(self):
        calls = []

        async def job():
            calls.append(1)

        async def run():
            task = RepeatingTask("job", job, interval=0.01)
            task.start()
            await asyncio.sleep(0.1)
            task.stop()
            await asyncio.wait_for(task.join(), timeout=1)
            return task

        task = asyncio.run(run())
        assert len(calls) >= 2
        assert task.runs == len(calls)
        assert not task.running

    def test_failure_does_not_stop_schedule(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first run fails")

        async def run():
            task = RepeatingTask("flaky", flaky, interval=0.01)
            task.start()
            await asyncio.sleep(0.1)
            task.stop()
            await task.join()

        asyncio.run(run())
        assert len(calls) >= 2

    def test_delayed_start(self):
        calls = []

        async def job():
            calls.append(1)

        async def run():
            task = RepeatingTask("late", job, interval=30, run_immediately=False)
            task.start()
            await asyncio.sleep(0.02)
            task.stop()
            await task.join()

        asyncio.run(run())
        assert calls == []

    def test_shared_stop_flag(self):
        async def noop():
            pass

        async def run():
            stop = StopFlag()
            tasks = [RepeatingTask(f"t{i}", noop, interval=30, stop=stop) for i in range(3)]
            for t in tasks:
                t.start()
            await asyncio.sleep(0.01)
            stop.set()
            await asyncio.wait_for(asyncio.gather(*(t.join() for t in tasks)), timeout=1)
            return tasks

        tasks = asyncio.run(run())
        assert all(t.runs == 1 for t in tasks)
