"""
In-process work queue for detached document analysis.

An asyncio.Queue drained by a fixed pool of worker tasks. The HTTP handler
submits and returns; workers own each job start to finish. A job that raises
is logged and dropped so the worker loop keeps running.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class AnalysisQueue:
    def __init__(self, handler: Callable[[Any], Awaitable[Any]], workers: int = 4):
        self._handler = handler
        self._workers = max(1, workers)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Spawn the workers on the running loop. Idempotent."""
        if self._tasks:
            return
        for i in range(self._workers):
            self._tasks.append(asyncio.create_task(self._run(i), name=f"analysis-worker-{i}"))
        logger.info("Analysis queue started (%d workers)", self._workers)

    def submit(self, job: Any) -> None:
        self.start()
        self._queue.put_nowait(job)

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        await self._queue.join()

    async def close(self, timeout: Optional[float] = None) -> None:
        """Cancel the workers. In-flight jobs see CancelledError."""
        if not self._tasks:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.wait(self._tasks, timeout=timeout)
        self._tasks.clear()
        logger.info("Analysis queue stopped (%d jobs left unprocessed)", self.pending)

    async def _run(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._handler(job)
            except Exception:
                logger.exception("Analysis worker %d: job %r crashed", index, job)
            finally:
                self._queue.task_done()
