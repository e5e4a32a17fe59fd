"""
Tests for the worker thread bridge.
"""

import asyncio
import threading
import time

import pytest

from hydra_migration.bridge import run_in_worker_thread


class TestRunInWorkerThread:
    """Test cases for run_in_worker_thread."""

    @pytest.mark.asyncio
    async def test_runs_off_the_loop_thread(self):
        loop_thread = threading.current_thread()

        thread = await run_in_worker_thread(threading.current_thread, thread_name="hydra-test")

        assert thread is not loop_thread
        assert thread.name == "hydra-test"
        assert not thread.is_alive()

    @pytest.mark.asyncio
    async def test_passes_arguments(self):
        def combine(a, b, sep="-"):
            return f"{a}{sep}{b}"

        assert await run_in_worker_thread(combine, "x", "y", sep="+") == "x+y"

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        def fail():
            raise ValueError("engine unavailable")

        with pytest.raises(ValueError, match="engine unavailable"):
            await run_in_worker_thread(fail)

    @pytest.mark.asyncio
    async def test_loop_stays_responsive(self):
        """Other coroutines keep running while the worker blocks."""
        ticks = []

        async def ticker():
            for _ in range(3):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        await run_in_worker_thread(time.sleep, 0.2)
        await task

        assert len(ticks) == 3
