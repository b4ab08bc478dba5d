"""Bounded FIFO executor for async tasks.

Tasks are zero-argument callables returning an awaitable. At most
``concurrency`` of them run at once; the rest wait in submission order.
A failing task resolves its own future with the exception and never
affects its siblings.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Set, Tuple

from loguru import logger

Task = Callable[[], Awaitable[Any]]


class TaskQueue:
    """FIFO queue that runs at most ``concurrency`` tasks at a time.

    Usage:
        queue = TaskQueue(concurrency=4)
        future = queue.submit(lambda: process(path))
        result = await future
        await queue.join()
    """

    def __init__(self, concurrency: int = 1, name: str = "queue") -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.name = name
        self._queue: Deque[Tuple[Task, asyncio.Future]] = deque()
        self._running = 0
        self._tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def running(self) -> int:
        return self._running

    def submit(self, task: Task) -> asyncio.Future:
        """Enqueue a task and return a future for its result."""
        future = asyncio.get_running_loop().create_future()
        self._queue.append((task, future))
        self._idle.clear()
        self._pump()
        return future

    async def join(self) -> None:
        """Wait until nothing is queued or running."""
        await self._idle.wait()

    def _pump(self) -> None:
        while self._running < self.concurrency and self._queue:
            task, future = self._queue.popleft()
            self._running += 1
            t = asyncio.create_task(self._run(task, future))
            self._tasks.add(t)
            t.add_done_callback(self._tasks.discard)

    async def _run(self, task: Task, future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            logger.debug(f"[{self.name}] task failed: {e}")
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._running -= 1
            self._pump()
            if self._running == 0 and not self._queue:
                self._idle.set()

