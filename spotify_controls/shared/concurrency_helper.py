from asyncio import Task
from typing import Any, Awaitable, Callable, Coroutine, Optional, Set
import asyncio

import structlog


class ConcurrencyHelper:
    """
    Owns every background coroutine started on behalf of one indicator, so a
    failing task is always logged and teardown can cancel whatever is left.
    """

    def __init__(self, logger=None):
        self.logger = logger or structlog.get_logger()
        self._running_tasks: Set[Task] = set()

    @property
    def pending(self) -> int:
        return len(self._running_tasks)

    def _task_name(self, coro: Awaitable[Any]) -> str:
        return getattr(coro, "__qualname__", repr(coro).split(" object")[0])

    def create_task(
        self,
        coro: Coroutine[Any, Any, Any],
        on_finish: Optional[Callable[[Any], None]] = None,
    ) -> Task:
        """
        Schedules a coroutine on the running loop and tracks it until it is done.
        Must be called from the loop thread.
        """
        coro_name = self._task_name(coro)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise
        task = loop.create_task(coro, name=coro_name)
        self._running_tasks.add(task)

        def done_callback(task: Task):
            self._running_tasks.discard(task)
            if task.cancelled():
                self.logger.debug(f"Async task {coro_name} cancelled.")
                return
            exception = task.exception()
            if exception:
                self.logger.error(
                    f"Async task {coro_name} failed: {exception}",
                    exc_info=exception,
                )
            elif on_finish:
                try:
                    on_finish(task.result())
                except Exception as e:
                    self.logger.error(
                        f"Completion callback of {coro_name} failed: {e}",
                        exc_info=True,
                    )

        task.add_done_callback(done_callback)
        return task

    async def wait_idle(self) -> None:
        """Waits until every tracked task, including ones spawned meanwhile, is done."""
        while self._running_tasks:
            await asyncio.gather(*list(self._running_tasks), return_exceptions=True)

    def cleanup_tasks(self) -> None:
        """Cancels all outstanding work when the indicator is destroyed."""
        for task in list(self._running_tasks):
            if not task.done():
                task.cancel()
                self.logger.debug(f"Cancelled async task: {task.get_name()}")
        self.logger.debug("Concurrent tasks cleanup complete.")
