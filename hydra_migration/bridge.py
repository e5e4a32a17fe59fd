"""
Bridge between the asyncio event loop and blocking clients.

Clients such as docker-py manage their own connection pools and threads
and must never be driven inline from a coroutine. run_in_worker_thread
spawns one dedicated thread per call, runs the blocking function there and
hands the result back to the loop through a future completed with
call_soon_threadsafe. The awaiting coroutine suspends until the result
arrives and then joins the thread.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def run_in_worker_thread(
    func: Callable[..., T],
    *args: Any,
    thread_name: str = "hydra-worker",
    **kwargs: Any
) -> T:
    """
    Run a blocking callable on a dedicated thread and await its result.

    Exceptions raised by the callable are re-raised in the awaiting
    coroutine. If the awaiting coroutine is cancelled the thread is not
    interrupted; it runs to completion and its result is discarded.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def _deliver(result: Any, error: Any) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def _target() -> None:
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            outcome = (None, e)
        else:
            outcome = (result, None)

        try:
            loop.call_soon_threadsafe(_deliver, *outcome)
        except RuntimeError:
            logger.warning(f"Event loop closed before {thread_name} delivered its result")

    thread = threading.Thread(target=_target, name=thread_name, daemon=True)
    thread.start()
    logger.debug(f"Started worker thread {thread.name}")

    try:
        return await future
    finally:
        if not future.cancelled():
            thread.join()
            logger.debug(f"Joined worker thread {thread.name}")
