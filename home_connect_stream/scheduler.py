""" Named one-shot jobs on the asyncio event loop """
from __future__ import annotations
import asyncio
import logging
from collections.abc import Awaitable, Callable

_LOGGER = logging.getLogger(__name__)


class Scheduler():
    """ Runs a coroutine function after a delay

    Jobs are identified by name and scheduling a job replaces a pending job with the same name,
    so at most one instance of each job is ever pending.
    """

    def __init__(self) -> None:
        self._jobs:dict[str, asyncio.TimerHandle] = {}
        self._tasks:set[asyncio.Task] = set()

    def run_in(self, delay:float, callback:Callable[[], Awaitable[None]], name:str) -> None:
        """ Schedule the callback to run in delay seconds """
        self.cancel(name)
        loop = asyncio.get_running_loop()
        self._jobs[name] = loop.call_later(delay, self._run, name, callback)
        _LOGGER.debug("Scheduled job %s in %ss", name, delay)

    def cancel(self, name:str) -> None:
        """ Cancel a pending job, does nothing if it isn't pending """
        handle = self._jobs.pop(name, None)
        if handle:
            handle.cancel()

    def cancel_all(self) -> None:
        """ Cancel every pending job """
        for name in list(self._jobs):
            self.cancel(name)

    def is_scheduled(self, name:str) -> bool:
        """ Check if a job is pending """
        return name in self._jobs

    def _run(self, name:str, callback:Callable[[], Awaitable[None]]) -> None:
        self._jobs.pop(name, None)
        task = asyncio.create_task(callback(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._job_done)

    def _job_done(self, task:asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception():
            _LOGGER.error("Scheduled job %s failed", task.get_name(), exc_info=task.exception())
