"""
app/services/reminder_service.py

Purpose: Periodic follow-up reminders

- Runs the order service's reminder sweep on a fixed interval
- Stops promptly when signalled
- A failing sweep is logged and the loop continues
"""

import asyncio
from typing import Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.services.order_service import OrderService

logger = get_logger(__name__)


class ReminderScheduler:
    def __init__(self, service: OrderService, interval_seconds: Optional[float] = None):
        self.service = service
        self.interval_seconds = interval_seconds or settings.REMINDER_CHECK_INTERVAL_MINUTES * 60
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> list:
        try:
            reminded = await self.service.check_consultation_timeouts()
        except Exception as e:
            logger.error(f"Reminder sweep failed: {e}", exc_info=True)
            return []

        if reminded:
            logger.info(f"Reminders sent: {len(reminded)}")
        return reminded

    async def run(self) -> None:
        """
        Sweeps immediately, then every `interval_seconds` until stopped.
        """
        logger.info(f"Reminder scheduler started (interval={self.interval_seconds}s)")

        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info("Reminder scheduler stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run(), name="reminder-scheduler")
        return self._task

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
