"""Owner-scoped registry for in-flight background tasks.

Every fetch started on behalf of a session or a widget is spawned here with
its owner key, so closing the session or removing the widget cancels the
work instead of letting a stale response land later.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import TypeAlias, TypeVar

from instrukt_ai_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SessionOwner:
    session_id: str


@dataclass(frozen=True)
class WidgetOwner:
    screen: str
    widget_id: str


TaskOwner: TypeAlias = SessionOwner | WidgetOwner


class OwnedTaskRegistry:
    """Registry for tracking background asyncio tasks by owner.

    Example:
        registry = OwnedTaskRegistry()

        # Spawn tracked task
        registry.spawn(fetch_news(), owner=SessionOwner("1718000000"), name="news")

        # Session closed
        registry.cancel_owner(SessionOwner("1718000000"))

        # Graceful shutdown
        await registry.shutdown(timeout=5.0)
    """

    def __init__(self) -> None:
        self._tasks: dict[asyncio.Task[object], TaskOwner] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def _on_task_done(self, task: asyncio.Task[object]) -> None:
        """Drop the finished task and log any exception it raised."""
        self._tasks.pop(task, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)

    def spawn(
        self,
        coro: Coroutine[object, object, T],
        *,
        owner: TaskOwner,
        name: str | None = None,
    ) -> asyncio.Task[T]:
        """Spawn a tracked background task bound to `owner`."""
        task = asyncio.create_task(coro, name=name)
        self._tasks[task] = owner  # type: ignore[index]
        task.add_done_callback(self._on_task_done)  # type: ignore[arg-type]
        logger.debug("Spawned task %s for %s (total: %d)", task.get_name(), owner, len(self._tasks))
        return task

    def tasks_for(self, owner: TaskOwner) -> list[asyncio.Task[object]]:
        return [task for task, task_owner in self._tasks.items() if task_owner == owner]

    def cancel_owner(self, owner: TaskOwner) -> int:
        """Cancel every pending task of `owner`. Returns how many were cancelled."""
        cancelled = 0
        for task in self.tasks_for(owner):
            if not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.debug("Cancelled %d task(s) for %s", cancelled, owner)
        return cancelled

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel all tracked tasks and wait for them to complete."""
        if not self._tasks:
            logger.debug("No tasks to shutdown")
            return

        tasks = list(self._tasks)
        logger.info("Shutting down %d tracked tasks (timeout=%.1fs)", len(tasks), timeout)
        for task in tasks:
            if not task.done():
                task.cancel()

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(
                "Shutdown timeout: %d/%d tasks still pending after %.1fs",
                len(pending),
                len(tasks),
                timeout,
            )
        else:
            logger.info("All %d tasks shut down", len(tasks))
