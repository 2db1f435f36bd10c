"""Executor handles shared by the clients, the controller and cover traffic.

RPCs are awaited directly on the event loop. Everything else is dispatched to
one of these explicitly injected pools:

- ``background``: blocking collaborator calls, such as connectivity checks.
- ``lightweight``: fast synchronous transforms (payload building, hashing,
  response capture).
- ``sleep``: the scheduled-delay primitive used by cover traffic.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

T = TypeVar("T")


@dataclass
class UploadExecutors:
    background: Executor
    lightweight: Executor
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    @classmethod
    def create(cls, background_workers: int = 4, lightweight_workers: int = 2) -> UploadExecutors:
        return cls(
            background=ThreadPoolExecutor(max_workers=background_workers, thread_name_prefix="keyupload-bg"),
            lightweight=ThreadPoolExecutor(max_workers=lightweight_workers, thread_name_prefix="keyupload-light"),
        )

    async def run_background(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await self._run(self.background, fn, *args, **kwargs)

    async def run_lightweight(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await self._run(self.lightweight, fn, *args, **kwargs)

    @staticmethod
    async def _run(executor: Executor, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, functools.partial(fn, *args, **kwargs))

    def shutdown(self, wait: bool = True) -> None:
        self.background.shutdown(wait=wait)
        self.lightweight.shutdown(wait=wait)
