"""
core/timer_manager.py — One cancellable recurring timer per enabled cron job.

Per job id a timer is ABSENT (never created or destroyed), ARMED (its
asyncio task is sleeping until the next occurrence) or DISARMED (task
stopped, timer object kept so re-enabling is a plain restart).
"""

import asyncio
import enum
import logging
import threading
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from core.cron_schedule import next_fire_time

logger = logging.getLogger("core.timer_manager")

FireCallback = Callable[[str], Awaitable[None]]
SleepFunc = Callable[[float], Awaitable[None]]


class TimerState(str, enum.Enum):
    ABSENT = "absent"
    ARMED = "armed"
    DISARMED = "disarmed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CronTimer:
    """Recurring timer for a single job."""

    def __init__(self, job_id: str, schedule: str, on_fire: FireCallback, sleep: SleepFunc = asyncio.sleep):
        self.job_id = job_id
        self.schedule = schedule
        self.next_fire_at: Optional[datetime] = None
        self._on_fire = on_fire
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self.next_fire_at = next_fire_time(self.schedule, _utcnow())
        self._task = loop.create_task(self._run(), name=f"cron-timer:{self.job_id}")

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.next_fire_at = None

    async def _run(self):
        try:
            while True:
                delay = (self.next_fire_at - _utcnow()).total_seconds()
                if delay > 0:
                    await self._sleep(delay)
                fired = self.next_fire_at
                try:
                    await self._on_fire(self.job_id)
                except Exception as e:
                    logger.error(f"❌ Cron timer callback failed for {self.job_id}: {e}", exc_info=True)
                # Never schedule before "now", so a late wake-up does not replay missed slots
                self.next_fire_at = next_fire_time(self.schedule, max(fired, _utcnow()))
        except asyncio.CancelledError:
            logger.debug(f"Cron timer for {self.job_id} cancelled")
            raise


class TimerManager:
    """Owns the live timers, keyed by job id."""

    def __init__(self, on_fire: FireCallback, sleep: SleepFunc = asyncio.sleep):
        self._on_fire = on_fire
        self._sleep = sleep
        self._timers: Dict[str, CronTimer] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._timers)

    def state(self, job_id: str) -> TimerState:
        with self._lock:
            timer = self._timers.get(job_id)
            if timer is None:
                return TimerState.ABSENT
            return TimerState.ARMED if timer.running else TimerState.DISARMED

    def next_fire_at(self, job_id: str) -> Optional[datetime]:
        timer = self._timers.get(job_id)
        return timer.next_fire_at if timer is not None and timer.running else None

    def arm(self, job_id: str, schedule: str) -> TimerState:
        """ABSENT → ARMED (create) or DISARMED → ARMED (restart). No-op when armed."""
        with self._lock:
            timer = self._timers.get(job_id)
            if timer is None:
                timer = CronTimer(job_id, schedule, self._on_fire, self._sleep)
                timer.start()
                self._timers[job_id] = timer
                logger.debug(f"Cron timer created for {job_id} ({schedule})")
            elif not timer.running:
                timer.start()
                logger.debug(f"Cron timer restarted for {job_id}")
            return TimerState.ARMED

    def disarm(self, job_id: str) -> TimerState:
        """ARMED → DISARMED. The timer object is kept for a later restart."""
        with self._lock:
            timer = self._timers.get(job_id)
            if timer is None:
                return TimerState.ABSENT
            timer.stop()
            logger.debug(f"Cron timer stopped for {job_id}")
            return TimerState.DISARMED

    def destroy(self, job_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(job_id, None)
            if timer is not None:
                timer.stop()
                logger.debug(f"Cron timer destroyed for {job_id}")

    def shutdown(self) -> None:
        with self._lock:
            for timer in self._timers.values():
                timer.stop()
            self._timers.clear()
