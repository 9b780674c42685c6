import asyncio
from typing import Coroutine, Optional, Set

# Strong references to fire-and-forget tasks so they are not collected mid-flight
_background_tasks: Set[asyncio.Task] = set()


def run_in_background(coro: Coroutine) -> asyncio.Task:
    """
    Schedule ``coro`` on the running loop without awaiting it.

    Raises:
        RuntimeError: If no event loop is running
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        coro.close()
        raise
    task = loop.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def drain_background_tasks(timeout: Optional[float] = 5.0) -> None:
    """Wait up to ``timeout`` seconds for pending background tasks, then cancel the rest."""
    loop = asyncio.get_running_loop()
    pending = [task for task in _background_tasks if not task.done() and task.get_loop() is loop]
    if not pending:
        return
    _, still_running = await asyncio.wait(pending, timeout=timeout)
    for task in still_running:
        task.cancel()
