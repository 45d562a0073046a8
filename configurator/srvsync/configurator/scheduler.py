import asyncio
import logging
import typing

from . import config, util
from .reconciler import Reconciler


class Scheduler:
    """
    Runs reconciliation cycles at a fixed interval.

    Ticks that arrive while a cycle is still running are handled according to the
    overlap policy. The first exception that escapes a cycle stops the scheduler and is
    raised from ``run``.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        interval: float,
        overlap_policy: config.OverlapPolicy = config.OverlapPolicy.SKIP,
    ):
        self.reconciler = reconciler
        self.interval = interval
        self.overlap_policy = overlap_policy
        #: The number of ticks that were dropped because a cycle was active
        self.skipped = 0
        self._active: typing.Set[asyncio.Task] = set()
        self._queued = False
        self._failure: typing.Optional[asyncio.Future] = None
        self._logger = logging.getLogger(__name__)

    async def _cycle(self):
        self._logger.debug("Starting refresh cycle")
        await self.reconciler.reconcile()
        self._logger.debug("Refresh cycle completed successfully")

    def _launch(self):
        task = asyncio.create_task(self._cycle())
        self._active.add(task)
        task.add_done_callback(self._cycle_done)

    def _cycle_done(self, task: asyncio.Task):
        self._active.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            if self._failure is not None and not self._failure.done():
                self._failure.set_exception(exc)
        elif self._queued and self._failure is not None and not self._failure.done():
            self._queued = False
            self._launch()

    def tick(self):
        """
        Starts a cycle unless the overlap policy says otherwise.
        """
        if self._active:
            if self.overlap_policy == config.OverlapPolicy.SKIP:
                self.skipped += 1
                self._logger.debug("Previous refresh cycle still running, skipping tick")
                return
            if self.overlap_policy == config.OverlapPolicy.QUEUE:
                self._queued = True
                self._logger.debug("Previous refresh cycle still running, queueing tick")
                return
        self._launch()

    async def run(self):
        """
        Runs cycles until one of them fails.
        """
        loop = asyncio.get_running_loop()
        self._failure = loop.create_future()
        self._logger.info(
            "Scheduling refresh cycles every %sms [overlap policy: %s]",
            int(self.interval * 1000),
            self.overlap_policy.value,
        )
        deadline = loop.time()
        try:
            while True:
                self.tick()
                # Ticks missed while the loop was busy are dropped rather than fired in a burst
                now = loop.time()
                deadline += self.interval
                while deadline <= now:
                    deadline += self.interval
                # Waiting on the failure future means a failed cycle ends the wait early
                done, _ = await asyncio.wait(
                    [self._failure], timeout=max(deadline - loop.time(), 0)
                )
                if done:
                    self._failure.result()
        finally:
            self._queued = False
            for task in list(self._active):
                if not task.done():
                    await util.task_cancel_and_wait(task)

    @classmethod
    def from_config(
        cls, config_obj: config.ConfiguratorConfig, reconciler: Reconciler
    ) -> "Scheduler":
        """
        Initialises a scheduler for the given reconciler from a config object.
        """
        return cls(
            reconciler,
            config_obj.refresh_interval / 1000,
            config_obj.overlap_policy,
        )
