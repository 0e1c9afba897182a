"""Long-running loop that re-runs every source on a fixed interval."""

import asyncio
import logging
import signal
import time
from collections.abc import Awaitable, Callable

from config.config_loader import SourceConfig
from pigeon.models import CycleReport

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SEC = 24 * 60 * 60

RunCycle = Callable[[SourceConfig], Awaitable[CycleReport]]


class Scheduler:
    """Idle/Running loop over the configured sources.

    A pass runs immediately on start and again once more than interval_sec
    has elapsed since the previous pass finished. Sources run one at a time
    in configured order. Shutdown stops the loop after any in-flight pass.
    """

    def __init__(
        self,
        sources: list[SourceConfig],
        run_cycle: RunCycle,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
        poll_interval_sec: float = 1.0,
        on_pass_complete: Callable[[list[CycleReport]], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sources = list(sources)
        self._run_cycle = run_cycle
        self.interval_sec = interval_sec
        self.poll_interval_sec = poll_interval_sec
        self._on_pass_complete = on_pass_complete
        self._clock = clock

        self.running = False
        self.in_pass = False
        self.last_pass_at: float | None = None
        self.passes_completed = 0
        self._shutdown_requested = False
        self._stop_event: asyncio.Event | None = None

    def is_due(self) -> bool:
        if self.last_pass_at is None:
            return True
        return self._clock() - self.last_pass_at > self.interval_sec

    async def run_pass(self) -> list[CycleReport]:
        """Run every source once. Individual source failures do not fail the pass."""
        self.in_pass = True
        logger.info("Starting pass over %d sources", len(self._sources))
        reports: list[CycleReport] = []
        try:
            for source in self._sources:
                reports.append(await self._run_cycle(source))
        finally:
            self.in_pass = False
            self.last_pass_at = self._clock()
        self.passes_completed += 1

        failed = sum(1 for r in reports if r.status == "failed")
        logger.info("Pass complete: %d sources, %d failed", len(reports), failed)
        if self._on_pass_complete:
            self._on_pass_complete(reports)
        return reports

    async def run_once(self) -> list[CycleReport]:
        return await self.run_pass()

    def request_shutdown(self) -> None:
        """Ask the loop to stop. Repeated requests are ignored."""
        if self._shutdown_requested:
            logger.debug("Shutdown already in progress, ignoring request")
            return
        self._shutdown_requested = True
        logger.info("Shutting down%s", " after the current pass" if self.in_pass else "")
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # add_signal_handler is unavailable on Windows event loops.
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self._on_signal, signum))

    def _on_signal(self, sig: int) -> None:
        logger.info("Received %s", signal.Signals(sig).name)
        self.request_shutdown()

    async def start(self) -> None:
        """Run until request_shutdown() is called."""
        if self.running:
            logger.warning("Scheduler is already running")
            return
        self._stop_event = asyncio.Event()
        if self._shutdown_requested:
            return
        self.running = True
        logger.info("Scheduler started. Processing every %.1f hours", self.interval_sec / 3600)

        while self.running:
            if self.is_due():
                await self.run_pass()
                if not self.running:
                    break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval_sec)
            except TimeoutError:
                pass

        logger.info("Scheduler stopped after %d passes", self.passes_completed)
