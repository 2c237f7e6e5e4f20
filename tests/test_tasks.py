from __future__ import annotations

import asyncio

from norruva.core.tasks import BackgroundTaskRunner


class TestBackgroundTaskRunner:
    """Detached jobs run after the caller returns and leave nothing behind."""

    async def test_spawn_returns_before_job_finishes(self) -> None:
        runner = BackgroundTaskRunner()
        release = asyncio.Event()
        finished = []

        async def job() -> None:
            await release.wait()
            finished.append("job")

        handle = runner.spawn(job, name="job")

        assert handle.name == "job"
        assert handle.done() is False
        assert runner.pending == 1

        release.set()
        await runner.drain()

        assert handle.done() is True
        assert finished == ["job"]
        assert runner.pending == 0

    async def test_failing_job_does_not_escape(self) -> None:
        runner = BackgroundTaskRunner()

        async def boom() -> None:
            raise RuntimeError("unexpected")

        handle = runner.spawn(boom, name="boom")
        await runner.drain()

        assert handle.done() is True
        assert runner.pending == 0

    async def test_drain_waits_for_follow_up_jobs(self) -> None:
        runner = BackgroundTaskRunner()
        order = []

        async def second() -> None:
            order.append("second")

        async def first() -> None:
            order.append("first")
            runner.spawn(second, name="second")

        runner.spawn(first, name="first")
        await runner.drain()

        assert order == ["first", "second"]
        assert runner.pending == 0
