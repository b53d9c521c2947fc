from __future__ import annotations

import asyncio
from typing import Coroutine, TypeVar

import anyio

T = TypeVar("T")


def _in_event_loop_thread() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Drive a coroutine to completion from synchronous service code.

    - Inside a FastAPI threadpool worker the coroutine runs on the app's loop
      via anyio.from_thread.run.
    - With no AnyIO worker context (worker scripts, sync tests) a fresh loop
      is started with anyio.run.
    - From the event loop thread itself this is a programming error.

    Raises TimeoutError when timeout (seconds) elapses first.
    """
    if _in_event_loop_thread():
        coro.close()
        raise RuntimeError("run_async called from async context; use await instead")

    async def _bounded() -> T:
        with anyio.fail_after(timeout):
            return await coro

    try:
        return anyio.from_thread.run(_bounded)
    except RuntimeError:
        # Not an AnyIO worker thread
        return anyio.run(_bounded)
