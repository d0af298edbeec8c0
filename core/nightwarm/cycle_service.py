"""
Cycle Service

Background service that triggers a controller run at a fixed interval.
Only used when no external cron trigger is configured.
"""

import asyncio
import logging

from .controller import TemperatureController

logger = logging.getLogger(__name__)


class CycleService:
    """
    Background service for periodic controller runs.

    Each run recomputes everything from the stored profiles, so a failed
    run is simply logged and the next interval tries again.
    """

    def __init__(self, controller: TemperatureController, interval_minutes: int = 5):
        self.controller = controller
        self.interval_minutes = interval_minutes

        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the periodic run loop."""
        if self._running:
            logger.warning("Cycle service already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Cycle service started (interval: {self.interval_minutes} minutes)")

    async def stop(self):
        """Stop the periodic run loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Cycle service stopped")

    async def run_once(self):
        """Run the controller once, logging instead of raising."""
        try:
            await self.controller.run_cycle()
        except Exception as e:
            logger.error(f"Controller run failed: {e}", exc_info=True)

    async def _run_loop(self):
        """Main loop - runs the controller every interval."""
        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval_minutes * 60)
