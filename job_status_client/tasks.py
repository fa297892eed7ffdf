import asyncio
from typing import Any, Coroutine, Optional, Set

from loguru import logger


class BackgroundTasks:
    """Spawns detached tasks and holds references to them until they finish.

    Nothing here cancels a task on its own; `cancel_all` is for shutdown.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self.logger = logger

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.debug(f"Background task {task.get_name()} cancelled")
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Background task {task.get_name()} failed: {error!r}")

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
